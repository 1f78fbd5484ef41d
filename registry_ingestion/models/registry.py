"""
Registry ORM models.

Contract:
    Company is the only mutable projection.  CompanyVersion and RawSection are
    immutable snapshots.  Contact, Address and AtecoClassification are
    append-only facet rows whose tables may gain promoted columns at runtime
    (see SchemaEvolutionManager); the ORM only maps the base columns.
    BalanceEntry is upserted on its natural key.  LegendCode, UnmappedCode and
    UnknownField are catalogs.  IngestionRun and IngestionErrorModel are the
    run bookkeeping.

Architecture: registry_ingestion/models. Imports from registry_kernel.db only.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from registry_kernel.db.base import (
    Base,
    CreatedAtMixin,
    JSONDocument,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    UUIDString,
)

STATEMENT_VALUES = ("SP_A", "SP_P", "CE")
RUN_STATUS_VALUES = ("UPDATED", "UNCHANGED", "OUTDATED", "PARTIAL", "ERROR")

# Columns every facet table has; never promotion targets
RESERVED_COLUMNS = frozenset({
    "id",
    "entity_id",
    "effective_date",
    "raw_json",
    "created_at",
    "updated_at",
})


def _in_check(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


def _entity_fk() -> ForeignKey:
    return ForeignKey("companies.entity_id", ondelete="CASCADE")


# =============================================================================
# Entity and snapshots
# =============================================================================


class Company(TimestampMixin, Base):
    """Mutable company projection; last write wins per field."""

    __tablename__ = "companies"

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True)
    vat_code: Mapped[str | None] = mapped_column(String(32), index=True)
    tax_code: Mapped[str | None] = mapped_column(String(32), index=True)
    company_name: Mapped[str | None] = mapped_column(Text)
    legal_form: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(Text)
    cciaa: Mapped[str | None] = mapped_column(String(16))
    rea_code: Mapped[str | None] = mapped_column(String(32))
    country_code: Mapped[str | None] = mapped_column(String(8))
    current_content_hash: Mapped[str | None] = mapped_column(String(64))


class CompanyVersion(UUIDPrimaryKeyMixin, Base):
    """Immutable snapshot, one per distinct (entity_id, content_hash)."""

    __tablename__ = "company_versions"
    __table_args__ = (
        UniqueConstraint("entity_id", "content_hash", name="uq_company_versions_entity_hash"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    raw_json: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class RawSection(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Lossless capture of a document section."""

    __tablename__ = "raw_sections"
    __table_args__ = (Index("idx_raw_sections_entity", "entity_id", "section"),)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), nullable=False)
    section: Mapped[str] = mapped_column(String(100), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    raw_json: Mapped[Any] = mapped_column(JSONDocument, nullable=False)


# =============================================================================
# Append-only facets
# =============================================================================


class Contact(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "contacts"
    __table_args__ = (Index("idx_contacts_entity", "entity_id", "effective_date"),)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    phone: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    pec: Mapped[str | None] = mapped_column(Text)
    website: Mapped[str | None] = mapped_column(Text)
    raw_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument)


class Address(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "addresses"
    __table_args__ = (Index("idx_addresses_entity", "entity_id", "effective_date"),)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    address_type: Mapped[str | None] = mapped_column(String(32))
    street: Mapped[str | None] = mapped_column(Text)
    zip_code: Mapped[str | None] = mapped_column(String(16))
    town: Mapped[str | None] = mapped_column(Text)
    province: Mapped[str | None] = mapped_column(String(16))
    region: Mapped[str | None] = mapped_column(Text)
    country: Mapped[str | None] = mapped_column(String(16))
    raw_json: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument)


class AtecoClassification(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Industry classification code, one row per classification type."""

    __tablename__ = "ateco"
    __table_args__ = (Index("idx_ateco_entity", "entity_id", "classification_type"),)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    classification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    ateco_code: Mapped[str | None] = mapped_column(String(32))
    ateco_description: Mapped[str | None] = mapped_column(Text)
    raw_json: Mapped[Any] = mapped_column(JSONDocument, nullable=True)


# =============================================================================
# Financial line items
# =============================================================================


class BalanceEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Financial line item; upserted on (entity_id, fiscal_year, statement, code)."""

    __tablename__ = "balance_entries"
    __table_args__ = (
        UniqueConstraint(
            "entity_id", "fiscal_year", "statement", "code",
            name="uq_balance_entries_natural_key",
        ),
        CheckConstraint(_in_check("statement", STATEMENT_VALUES), name="ck_balance_entries_statement"),
        Index("idx_balance_entries_year", "fiscal_year", "statement"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    statement: Mapped[str] = mapped_column(String(4), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    amount: Mapped[Decimal | None] = mapped_column()
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    source_path: Mapped[str | None] = mapped_column(Text)
    note: Mapped[str | None] = mapped_column(Text)
    content_hash: Mapped[str | None] = mapped_column(String(64))
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# =============================================================================
# Catalogs
# =============================================================================


class LegendCode(Base):
    """Reference catalog: statement code -> description."""

    __tablename__ = "legend_codes"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    statement: Mapped[str | None] = mapped_column(String(4))
    extra: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument)


class UnmappedCode(Base):
    """Codes seen in documents but absent from legend_codes."""

    __tablename__ = "unmapped_codes"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    statement_guess: Mapped[str | None] = mapped_column(String(4))
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    occurrences: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class UnknownField(Base):
    """Scalar document paths not mapped to any column, per entity."""

    __tablename__ = "unknown_fields"

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), _entity_fk(), primary_key=True)
    section: Mapped[str] = mapped_column(String(100), primary_key=True)
    json_path: Mapped[str] = mapped_column(String(500), primary_key=True)
    value_json: Mapped[Any] = mapped_column(JSONDocument, nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    occurrences: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# =============================================================================
# Run bookkeeping
# =============================================================================


class IngestionRun(Base):
    """
    One row per ingestion attempt.

    entity_id carries no foreign key: an ERROR run is recorded after the
    company row it refers to has been rolled back.
    """

    __tablename__ = "ingestions"
    __table_args__ = (
        CheckConstraint(_in_check("status", RUN_STATUS_VALUES), name="ck_ingestions_status"),
        Index("idx_ingestions_entity", "entity_id", "started_at"),
    )

    ingestion_id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="it-full")
    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PARTIAL")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    summary: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument)


class IngestionErrorModel(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Section failure or fatal error of a run."""

    __tablename__ = "ingestion_errors"

    ingestion_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ingestions.ingestion_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    section: Mapped[str | None] = mapped_column(String(100))
    json_path: Mapped[str | None] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    raw_snippet: Mapped[Any] = mapped_column(JSONDocument, nullable=True)


# Facet tables whose rows the writer inserts and whose columns may grow
FACET_TABLES: dict[str, type[Base]] = {
    "contacts": Contact,
    "addresses": Address,
    "ateco": AtecoClassification,
}
