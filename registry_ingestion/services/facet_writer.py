"""
Facet row writers.

Contract:
    FacetWriter.write_rows() inserts append-only facet rows.  Each scalar
    field is routed through SchemaEvolutionManager.ensure_column first, so a
    field the table has never seen becomes a typed column before the insert.
    Values that do not fit their column's type are dropped from the row with
    a ``type_mismatch`` warning; the full sub-object always lands in
    raw_json.

    BalanceEntryWriter.upsert_lines() upserts financial line items on
    (entity_id, fiscal_year, statement, code).  A line whose content hash
    equals the stored one is left alone, so re-ingesting identical lines
    writes nothing.

Architecture: registry_ingestion/services. Flushes, never commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import Table, column, insert, select, table as table_clause
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import TableClause

from registry_kernel.db.dialect import upsert_insert
from registry_kernel.domain.clock import Clock, SystemClock
from registry_kernel.exceptions import InvalidColumnNameError
from registry_kernel.logging_config import get_logger
from registry_kernel.utils.hashing import hash_payload, to_json_safe

from registry_ingestion.domain.effective_date import year_end
from registry_ingestion.domain.paths import MISSING, is_scalar
from registry_ingestion.domain.types import (
    BalanceLine,
    ColumnChange,
    ColumnKind,
    ExtractionWarning,
    FacetRow,
)
from registry_ingestion.models.registry import BalanceEntry
from registry_ingestion.services.schema_evolution import (
    KIND_TYPES,
    SchemaEvolutionManager,
    coerce_value,
)

logger = get_logger("ingestion.facet_writer")


@dataclass
class FacetWriteResult:
    """Outcome of writing one section's rows."""

    written: int = 0
    unchanged: int = 0
    created_columns: list[ColumnChange] = field(default_factory=list)
    warnings: list[ExtractionWarning] = field(default_factory=list)


class FacetWriter:
    """Promotion-aware INSERT for append-only facet tables."""

    def __init__(self, session: Session, schema: SchemaEvolutionManager):
        self._session = session
        self._schema = schema

    def write_rows(self, table_name: str, entity_id: UUID, rows: Iterable[FacetRow]) -> FacetWriteResult:
        result = FacetWriteResult()
        table = self._schema.ensure_table(table_name)
        for row in rows:
            self._write_row(table, entity_id, row, result)
            result.written += 1
        return result

    def _write_row(self, table: Table, entity_id: UUID, row: FacetRow, result: FacetWriteResult) -> None:
        values: dict[str, Any] = {}
        kinds: dict[str, ColumnKind] = {}
        for field_name, value in row.values.items():
            if value is None or not (is_scalar(value) or isinstance(value, Decimal)):
                continue
            try:
                change = self._schema.ensure_column(table.name, field_name, value)
            except InvalidColumnNameError:
                result.warnings.append(ExtractionWarning(
                    table=table.name,
                    reason="invalid_column",
                    row={"field": field_name},
                ))
                continue
            if change.created:
                result.created_columns.append(change)
            if change.column in values:
                result.warnings.append(ExtractionWarning(
                    table=table.name,
                    reason="duplicate_column",
                    row={"field": field_name, "column": change.column},
                ))
                continue
            coerced = coerce_value(change.kind, value)
            if coerced is MISSING:
                result.warnings.append(ExtractionWarning(
                    table=table.name,
                    reason="type_mismatch",
                    row={
                        "field": field_name,
                        "column": change.column,
                        "type": change.kind.value,
                        "value": to_json_safe(value),
                    },
                ))
                continue
            values[change.column] = coerced
            kinds[change.column] = change.kind

        values.update(
            id=uuid4(),
            entity_id=entity_id,
            effective_date=row.effective_date,
            raw_json=to_json_safe(row.raw),
        )
        self._session.execute(insert(self._target(table, values, kinds)).values(**values))

    @staticmethod
    def _target(table: Table, values: dict[str, Any], kinds: dict[str, ColumnKind]) -> TableClause:
        """Lightweight table clause covering exactly the columns being written."""
        cols = []
        for name in values:
            if name in table.c:
                cols.append(column(name, table.c[name].type))
            else:
                cols.append(column(name, KIND_TYPES[kinds[name]]))
        return table_clause(table.name, *cols)


def line_hash(line: BalanceLine) -> str:
    """Content hash of a line's canonical form."""
    return hash_payload({
        "fiscal_year": line.fiscal_year,
        "statement": line.statement.value,
        "code": line.code,
        "description": line.description,
        "amount": None if line.amount is None else str(line.amount),
        "currency": line.currency,
        "source_path": line.source_path,
        "note": line.note,
    })


class BalanceEntryWriter:
    """Natural-key upsert of financial line items."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def stored_hashes(self, entity_id: UUID) -> dict[tuple[int, str, str], str | None]:
        rows = self._session.execute(
            select(
                BalanceEntry.fiscal_year,
                BalanceEntry.statement,
                BalanceEntry.code,
                BalanceEntry.content_hash,
            ).where(BalanceEntry.entity_id == entity_id)
        ).all()
        return {(year, statement, code): content_hash for year, statement, code, content_hash in rows}

    def upsert_lines(self, entity_id: UUID, lines: Iterable[BalanceLine]) -> FacetWriteResult:
        result = FacetWriteResult()
        stored = self.stored_hashes(entity_id)
        now = self._clock.now()
        table = BalanceEntry.__table__

        for line in lines:
            content_hash = line_hash(line)
            if stored.get(line.natural_key) == content_hash:
                result.unchanged += 1
                continue

            stmt = upsert_insert(self._session, table).values(
                id=uuid4(),
                entity_id=entity_id,
                fiscal_year=line.fiscal_year,
                statement=line.statement.value,
                code=line.code,
                description=line.description,
                amount=line.amount,
                currency=line.currency,
                source_path=line.source_path,
                note=line.note,
                content_hash=content_hash,
                effective_date=year_end(line.fiscal_year),
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["entity_id", "fiscal_year", "statement", "code"],
                set_={
                    name: stmt.excluded[name]
                    for name in (
                        "description",
                        "amount",
                        "currency",
                        "source_path",
                        "note",
                        "content_hash",
                        "effective_date",
                        "updated_at",
                    )
                },
            )
            self._session.execute(stmt)
            stored[line.natural_key] = content_hash
            result.written += 1

        logger.debug(
            "balance_lines_upserted",
            extra={"written": result.written, "unchanged": result.unchanged},
        )
        return result
