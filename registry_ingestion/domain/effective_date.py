"""
Effective-date computation.

Each facet carries the date as of which its data is valid.  Candidate fields
are scanned in a fixed precision order, most specific update signal first.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from registry_ingestion.domain.paths import MISSING, get_path
from registry_ingestion.domain.values import as_year

DATE_FIELDS = ("lastUpdateDate", "updateDate", "sinceDate", "roleStartDate")

BALANCE_SECTION = "balance"


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Naive values are taken as UTC.  Returns None when unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def year_end(year: int) -> datetime:
    """December 31 of ``year``, 00:00 UTC."""
    return datetime(year, 12, 31, tzinfo=UTC)


def effective_date_for_section(
    section: str,
    payload: Any,
    fallback: datetime,
) -> datetime:
    """
    Effective date of ``payload`` as section ``section``.

    Balance sections with a year/fiscalYear resolve to the end of that year.
    Otherwise the first parseable date field wins; else ``fallback``.
    """
    if not isinstance(payload, dict):
        return fallback

    if section == BALANCE_SECTION:
        for key in ("year", "fiscalYear"):
            year = as_year(payload.get(key))
            if year is not None:
                return year_end(year)

    for key in DATE_FIELDS:
        candidate = get_path(payload, key)
        if candidate is MISSING or candidate is None:
            continue
        parsed = parse_datetime(candidate)
        if parsed is not None:
            return parsed
    return fallback
