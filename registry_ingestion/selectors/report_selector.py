"""
Module: registry_ingestion.selectors.report_selector
Responsibility: Read-only reporting over ingested registry data: the latest
    company with its facets, financial totals per year and statement, and the
    catalog of unmapped statement codes.
Architecture position: Ingestion > Selectors.

Facet tables are reflected on every call so that columns promoted at runtime
appear in the report next to the declared ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import MetaData, Table, func, inspect, select
from sqlalchemy import table as table_clause

from registry_kernel.logging_config import get_logger

from registry_ingestion.models.registry import (
    BalanceEntry,
    Company,
    CompanyVersion,
    FACET_TABLES,
    IngestionRun,
    RawSection,
    UnmappedCode,
)
from registry_ingestion.selectors.base import BaseSelector

logger = get_logger("ingestion.report_selector")

# Tables counted in CompanyReport.stats, keyed by stat name
STAT_TABLES = {
    "total_companies": "companies",
    "contacts": "contacts",
    "addresses": "addresses",
    "ateco": "ateco",
    "balance_entries": "balance_entries",
    "ingestions": "ingestions",
}


@dataclass(frozen=True)
class BalanceSummaryRow:
    fiscal_year: int
    statement: str
    currency: str
    entries_count: int
    total_amount: Decimal | None


@dataclass(frozen=True)
class UnmappedCodeRow:
    code: str
    statement_guess: str | None
    occurrences: int
    first_seen_at: datetime
    last_seen_at: datetime


@dataclass(frozen=True)
class CompanyReport:
    """Everything stored about one company, newest rows first."""

    company: dict[str, Any]
    contacts: tuple[dict[str, Any], ...] = ()
    addresses: tuple[dict[str, Any], ...] = ()
    ateco: tuple[dict[str, Any], ...] = ()
    balance_entries: tuple[dict[str, Any], ...] = ()
    company_versions: tuple[dict[str, Any], ...] = ()
    raw_sections: tuple[dict[str, Any], ...] = ()
    ingestions: tuple[dict[str, Any], ...] = ()
    stats: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "company": self.company,
            "contacts": list(self.contacts),
            "addresses": list(self.addresses),
            "ateco": list(self.ateco),
            "balance_entries": list(self.balance_entries),
            "company_versions": list(self.company_versions),
            "raw_sections": list(self.raw_sections),
            "ingestions": list(self.ingestions),
            "stats": dict(self.stats),
        }


def _rows(result) -> tuple[dict[str, Any], ...]:
    return tuple(dict(row) for row in result.mappings())


class RegistryReportSelector(BaseSelector):
    """Reporting queries.  Never writes."""

    def latest_company_report(self) -> CompanyReport | None:
        """Report for the most recently created company, or None if there is none."""
        company_table = Company.__table__
        company = self.session.execute(
            select(company_table).order_by(company_table.c.created_at.desc()).limit(1)
        ).mappings().first()
        if company is None:
            return None
        return self.company_report(company["entity_id"])

    def company_report(self, entity_id: UUID) -> CompanyReport | None:
        company_table = Company.__table__
        company = self.session.execute(
            select(company_table).where(company_table.c.entity_id == entity_id)
        ).mappings().first()
        if company is None:
            return None

        facets = {name: self._facet_rows(name, entity_id) for name in FACET_TABLES}

        balance = BalanceEntry.__table__
        versions = CompanyVersion.__table__
        raw = RawSection.__table__
        runs = IngestionRun.__table__

        report = CompanyReport(
            company=dict(company),
            contacts=facets["contacts"],
            addresses=facets["addresses"],
            ateco=facets["ateco"],
            balance_entries=_rows(self.session.execute(
                select(balance)
                .where(balance.c.entity_id == entity_id)
                .order_by(balance.c.fiscal_year.desc(), balance.c.statement, balance.c.code)
            )),
            company_versions=_rows(self.session.execute(
                select(
                    versions.c.id,
                    versions.c.effective_date,
                    versions.c.content_hash,
                    versions.c.ingested_at,
                )
                .where(versions.c.entity_id == entity_id)
                .order_by(versions.c.effective_date.desc(), versions.c.ingested_at.desc())
            )),
            raw_sections=_rows(self.session.execute(
                select(raw.c.id, raw.c.section, raw.c.effective_date, raw.c.created_at)
                .where(raw.c.entity_id == entity_id)
                .order_by(raw.c.created_at.desc())
            )),
            ingestions=_rows(self.session.execute(
                select(runs)
                .where(runs.c.entity_id == entity_id)
                .order_by(runs.c.started_at.desc())
            )),
            stats=self.stats(),
        )
        logger.debug("company_report_built", extra={"entity_id": str(entity_id)})
        return report

    def stats(self) -> dict[str, int]:
        """Row counts of the main tables."""
        inspector = inspect(self.session.connection())
        counts = {}
        for name, table_name in STAT_TABLES.items():
            if not inspector.has_table(table_name):
                counts[name] = 0
                continue
            counts[name] = self.session.execute(
                select(func.count()).select_from(table_clause(table_name))
            ).scalar_one()
        return counts

    def balance_summary(self, entity_id: UUID | None = None) -> list[BalanceSummaryRow]:
        """Line count and amount total per (fiscal_year, statement, currency)."""
        balance = BalanceEntry.__table__
        stmt = (
            select(
                balance.c.fiscal_year,
                balance.c.statement,
                balance.c.currency,
                func.count().label("entries_count"),
                func.sum(balance.c.amount).label("total_amount"),
            )
            .group_by(balance.c.fiscal_year, balance.c.statement, balance.c.currency)
            .order_by(balance.c.fiscal_year.desc(), balance.c.statement, balance.c.currency)
        )
        if entity_id is not None:
            stmt = stmt.where(balance.c.entity_id == entity_id)
        return [
            BalanceSummaryRow(
                fiscal_year=row.fiscal_year,
                statement=row.statement,
                currency=row.currency,
                entries_count=row.entries_count,
                total_amount=Decimal(str(row.total_amount)) if row.total_amount is not None else None,
            )
            for row in self.session.execute(stmt)
        ]

    def unmapped_codes(self, limit: int | None = None) -> list[UnmappedCodeRow]:
        """Unmapped codes, most frequent first."""
        table = UnmappedCode.__table__
        stmt = select(table).order_by(
            table.c.occurrences.desc(), table.c.last_seen_at.desc(), table.c.code
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [
            UnmappedCodeRow(
                code=row.code,
                statement_guess=row.statement_guess,
                occurrences=row.occurrences,
                first_seen_at=row.first_seen_at,
                last_seen_at=row.last_seen_at,
            )
            for row in self.session.execute(stmt)
        ]

    def _facet_rows(self, table_name: str, entity_id: UUID) -> tuple[dict[str, Any], ...]:
        connection = self.session.connection()
        if not inspect(connection).has_table(table_name):
            return ()
        table = Table(table_name, MetaData(), autoload_with=connection)
        return _rows(self.session.execute(
            select(table)
            .where(table.c.entity_id == str(entity_id))
            .order_by(table.c.effective_date.desc(), table.c.created_at.desc())
        ))
