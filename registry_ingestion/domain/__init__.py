"""Pure domain layer: types, lenient path lookup, identity, effective dates."""

from registry_ingestion.domain.effective_date import (
    effective_date_for_section,
    parse_datetime,
    year_end,
)
from registry_ingestion.domain.identity import entity_id_for_key, resolve_identity
from registry_ingestion.domain.paths import MISSING, first_present, get_path, walk
from registry_ingestion.domain.types import (
    BalanceLine,
    ColumnChange,
    ColumnKind,
    EntityIdentity,
    ExtractionResult,
    ExtractionWarning,
    FacetRow,
    IngestionResult,
    KeyKind,
    RunStatus,
    RunSummary,
    Statement,
    VersionResult,
)

__all__ = [
    "MISSING",
    "get_path",
    "first_present",
    "walk",
    "resolve_identity",
    "entity_id_for_key",
    "effective_date_for_section",
    "parse_datetime",
    "year_end",
    "BalanceLine",
    "ColumnChange",
    "ColumnKind",
    "EntityIdentity",
    "ExtractionResult",
    "ExtractionWarning",
    "FacetRow",
    "IngestionResult",
    "KeyKind",
    "RunStatus",
    "RunSummary",
    "Statement",
    "VersionResult",
]
