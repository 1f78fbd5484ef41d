"""ORM models; importing this package registers every table on Base.metadata."""

from registry_ingestion.models.registry import (
    FACET_TABLES,
    RESERVED_COLUMNS,
    Address,
    AtecoClassification,
    BalanceEntry,
    Company,
    CompanyVersion,
    Contact,
    IngestionErrorModel,
    IngestionRun,
    LegendCode,
    RawSection,
    UnknownField,
    UnmappedCode,
)

__all__ = [
    "FACET_TABLES",
    "RESERVED_COLUMNS",
    "Address",
    "AtecoClassification",
    "BalanceEntry",
    "Company",
    "CompanyVersion",
    "Contact",
    "IngestionErrorModel",
    "IngestionRun",
    "LegendCode",
    "RawSection",
    "UnknownField",
    "UnmappedCode",
]
