"""
Code Enrichment Resolver.

Attaches legend descriptions to financial line items that arrive without
one, and records every code the legend does not know in ``unmapped_codes``
(a cross-entity catalog, keyed by the bare code).

A resolver lives for one ingestion run: each distinct unmapped code is
counted at most once per resolver, so ``occurrences`` grows by exactly one
per ingestion that encounters the code.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from registry_kernel.db.dialect import upsert_insert
from registry_kernel.domain.clock import Clock, SystemClock
from registry_kernel.logging_config import get_logger

from registry_ingestion.domain.types import BalanceLine
from registry_ingestion.models.registry import LegendCode, UnmappedCode

logger = get_logger("ingestion.enrichment")


class CodeEnrichmentResolver:
    """Legend lookup with a per-run memo and unmapped-code bookkeeping."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._legend: dict[str, str | None] = {}
        self._recorded: set[str] = set()

    def describe(self, codes: Iterable[str]) -> dict[str, str | None]:
        """Legend description per code (None when absent), memoised."""
        codes = list(codes)
        wanted = {c for c in codes if c not in self._legend}
        if wanted:
            rows = self._session.execute(
                select(LegendCode.code, LegendCode.description).where(LegendCode.code.in_(wanted))
            ).all()
            found = {code: description for code, description in rows}
            for code in wanted:
                self._legend[code] = found.get(code)
        return {c: self._legend.get(c) for c in codes}

    def enrich(self, lines: Iterable[BalanceLine]) -> tuple[BalanceLine, ...]:
        """
        Return ``lines`` with descriptions attached where the legend has one.

        Lines that already carry a description are returned unchanged.
        Misses are upserted into unmapped_codes after the whole batch.
        """
        lines = tuple(lines)
        pending = [line for line in lines if not line.description]
        descriptions = self.describe(line.code for line in pending)

        enriched: list[BalanceLine] = []
        missed: dict[str, str] = {}
        for line in lines:
            if line.description:
                enriched.append(line)
                continue
            description = descriptions.get(line.code)
            if description:
                enriched.append(replace(line, description=description))
            else:
                missed.setdefault(line.code, line.statement.value)
                enriched.append(line)

        self.record_unmapped(missed)
        return tuple(enriched)

    def record_unmapped(self, codes: dict[str, str | None]) -> int:
        """Upsert each not-yet-recorded code; returns how many were counted."""
        now = self._clock.now()
        counted = 0
        for code, statement_guess in sorted(codes.items()):
            if code in self._recorded:
                continue
            table = UnmappedCode.__table__
            stmt = upsert_insert(self._session, table).values(
                code=code,
                statement_guess=statement_guess,
                first_seen_at=now,
                last_seen_at=now,
                occurrences=1,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.code],
                set_={
                    "occurrences": table.c.occurrences + 1,
                    "last_seen_at": stmt.excluded.last_seen_at,
                    "statement_guess": stmt.excluded.statement_guess,
                },
            )
            self._session.execute(stmt)
            self._recorded.add(code)
            counted += 1

        if counted:
            logger.info("unmapped_codes_recorded", extra={"count": counted})
        return counted
