"""
registry_ingestion.domain.types -- Pure frozen dataclasses for registry ingestion.

ZERO I/O. Imports only from the standard library.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class RunStatus(str, Enum):
    """Ingestion run lifecycle status. PARTIAL is the only non-terminal value."""

    PARTIAL = "PARTIAL"  # Run started, not yet terminated
    UPDATED = "UPDATED"  # New version, or at least one facet row written
    UNCHANGED = "UNCHANGED"  # Known version and nothing written
    OUTDATED = "OUTDATED"  # Reserved: superseded by a later effective date
    ERROR = "ERROR"  # Run aborted and rolled back


class Statement(str, Enum):
    """Financial statement a line item belongs to."""

    SP_A = "SP_A"  # Balance sheet, assets
    SP_P = "SP_P"  # Balance sheet, liabilities
    CE = "CE"  # Income statement


class ColumnKind(str, Enum):
    """Storage kinds a promoted column can take."""

    TEXT = "text"
    BOOLEAN = "boolean"
    INTEGER = "bigint"
    DECIMAL = "numeric"
    TIMESTAMP = "timestamptz"
    DATE = "date"


class KeyKind(str, Enum):
    """Which natural key produced the entity identifier."""

    VAT = "vat"
    TAX = "tax"
    RANDOM = "random"


# =============================================================================
# Identity and versioning
# =============================================================================


@dataclass(frozen=True)
class EntityIdentity:
    """Resolved entity identifier and the natural key it came from."""

    entity_id: UUID
    natural_key: str | None
    key_kind: KeyKind

    @property
    def linked(self) -> bool:
        """False when no natural key was found and the id is random."""
        return self.key_kind is not KeyKind.RANDOM


@dataclass(frozen=True)
class VersionResult:
    """Outcome of recording an entity version."""

    content_hash: str
    created: bool  # False: (entity_id, content_hash) already on file
    current: bool = False  # Hash was already the entity's latest ingested content


# =============================================================================
# Schema evolution
# =============================================================================


@dataclass(frozen=True)
class ColumnChange:
    """Result of ensure_column; ``created`` is True only for a new column."""

    table: str
    column: str
    kind: ColumnKind
    created: bool

    def to_dict(self) -> dict[str, str]:
        return {"table": self.table, "column": self.column, "type": self.kind.value}


# =============================================================================
# Extraction
# =============================================================================


@dataclass(frozen=True)
class ExtractionWarning:
    """Non-fatal extraction or write issue; surfaces in the run summary."""

    table: str
    reason: str  # e.g. "missing_keys", "type_mismatch", "section_failed"
    row: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "reason": self.reason, "row": self.row}


@dataclass(frozen=True)
class FacetRow:
    """
    One append-only facet row: column values keyed by document field name,
    the row's own effective date, and the raw sub-object it came from.
    """

    values: dict[str, Any]
    effective_date: datetime
    raw: Any = None


@dataclass(frozen=True)
class BalanceLine:
    """One financial statement line item, keyed by (fiscal_year, statement, code)."""

    fiscal_year: int
    statement: Statement
    code: str
    amount: Decimal | None
    currency: str
    source_path: str
    description: str | None = None
    note: str | None = None

    @property
    def natural_key(self) -> tuple[int, str, str]:
        return (self.fiscal_year, self.statement.value, self.code)


@dataclass(frozen=True)
class ExtractionResult:
    """Rows produced by one extraction tier, plus its warnings."""

    rows: tuple[Any, ...] = ()
    warnings: tuple[ExtractionWarning, ...] = ()
    tier: str | None = None  # Name of the winning tier, set by TieredExtractor

    @property
    def empty(self) -> bool:
        return not self.rows


# =============================================================================
# Run summary and result
# =============================================================================


@dataclass
class RunSummary:
    """
    Mutable accumulator for one ingestion run.

    Serialized with ``to_dict`` into ``ingestions.summary`` and returned to
    the caller.
    """

    ingestion_id: UUID
    entity_id: UUID | None = None
    source: str | None = None
    content_hash: str | None = None
    version_created: bool = False
    created_columns: list[ColumnChange] = field(default_factory=list)
    inserts: dict[str, int] = field(default_factory=dict)
    skips: dict[str, int] = field(default_factory=dict)
    skip_reasons: dict[str, str] = field(default_factory=dict)
    warnings: list[ExtractionWarning] = field(default_factory=list)
    tiers: dict[str, str] = field(default_factory=dict)
    unknown_fields: int = 0
    settings_checksum: str | None = None
    status: RunStatus = RunStatus.PARTIAL

    def count_insert(self, section: str, n: int = 1) -> None:
        self.inserts[section] = self.inserts.get(section, 0) + n

    def count_skip(self, section: str, reason: str, n: int = 1) -> None:
        self.skips[section] = self.skips.get(section, 0) + n
        self.skip_reasons[section] = reason

    def add_warnings(self, warnings: tuple[ExtractionWarning, ...] | list[ExtractionWarning]) -> None:
        self.warnings.extend(warnings)

    @property
    def rows_written(self) -> int:
        return sum(self.inserts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingestion_id": str(self.ingestion_id),
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "source": self.source,
            "content_hash": self.content_hash,
            "version_created": self.version_created,
            "created_columns": [c.to_dict() for c in self.created_columns],
            "inserts": dict(self.inserts),
            "skips": dict(self.skips),
            "skip_reasons": dict(self.skip_reasons),
            "warnings": [w.to_dict() for w in self.warnings],
            "tiers": dict(self.tiers),
            "unknown_fields": self.unknown_fields,
            "settings_checksum": self.settings_checksum,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class IngestionResult:
    """Returned by IngestionService.ingest on success."""

    entity_id: UUID
    summary: dict[str, Any]

    @property
    def status(self) -> RunStatus:
        return RunStatus(self.summary["status"])

    @property
    def ingestion_id(self) -> str:
        return self.summary["ingestion_id"]
