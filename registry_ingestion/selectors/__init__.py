"""Read-only selectors over the registry tables."""

from registry_ingestion.selectors.report_selector import (
    BalanceSummaryRow,
    CompanyReport,
    RegistryReportSelector,
    UnmappedCodeRow,
)

__all__ = [
    "RegistryReportSelector",
    "CompanyReport",
    "BalanceSummaryRow",
    "UnmappedCodeRow",
]
