"""
Legend Catalog Loader.

Replaces the contents of ``legend_codes`` with a statement-scheme catalog:
a JSON object holding one array of ``{code, description}`` entries per
statement.  Entries without a code or description are skipped; a code that
appears twice keeps its first entry.  Never commits.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from registry_kernel.exceptions import MalformedDocumentError
from registry_kernel.logging_config import get_logger

from registry_ingestion.adapters.json_adapter import JsonDocumentAdapter
from registry_ingestion.domain.types import Statement
from registry_ingestion.domain.values import text_value
from registry_ingestion.models.registry import LegendCode

logger = get_logger("ingestion.legend_loader")

CATALOG_SECTIONS: dict[str, Statement] = {
    "stato_patrimoniale_attivo": Statement.SP_A,
    "stato_patrimoniale_passivo": Statement.SP_P,
    "conto_economico": Statement.CE,
}


def catalog_entries(catalog: dict[str, Any], source: str = "<catalog>") -> list[dict[str, Any]]:
    """
    Flatten a catalog into legend_codes rows, in section order.

    Raises:
        MalformedDocumentError: a section is present but not an array, or
            the catalog has none of the known sections.
    """
    if not any(name in catalog for name in CATALOG_SECTIONS):
        raise MalformedDocumentError(
            source, f"no catalog section found (expected one of {sorted(CATALOG_SECTIONS)})"
        )

    rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for name, statement in CATALOG_SECTIONS.items():
        items = catalog.get(name)
        if items is None:
            continue
        if not isinstance(items, list):
            raise MalformedDocumentError(source, f"section {name!r} must be an array")
        for item in items:
            if not isinstance(item, dict):
                logger.warning("legend_entry_skipped", extra={"section": name, "reason": "not_object"})
                continue
            code = text_value(item.get("code"))
            description = text_value(item.get("description"))
            if code is None or description is None:
                logger.warning(
                    "legend_entry_skipped",
                    extra={"section": name, "reason": "missing_keys", "code": code},
                )
                continue
            if code in seen:
                logger.warning("legend_duplicate_code", extra={"section": name, "code": code})
                continue
            seen.add(code)
            extra = {k: v for k, v in item.items() if k not in ("code", "description")}
            rows.append({
                "code": code,
                "description": description,
                "statement": statement.value,
                "extra": extra or None,
            })
    return rows


class LegendCatalogLoader:
    """Load the legend catalog into ``legend_codes``."""

    def __init__(self, session: Session, adapter: JsonDocumentAdapter | None = None):
        self._session = session
        self._adapter = adapter or JsonDocumentAdapter()

    def load_file(self, path: Path | str) -> int:
        catalog = self._adapter.read(path)
        return self.load(catalog, source=str(path))

    def load(self, catalog: dict[str, Any], source: str = "<catalog>") -> int:
        """Replace every legend code with the catalog's entries; returns the count."""
        rows = catalog_entries(catalog, source)
        cleared = self._session.execute(delete(LegendCode)).rowcount
        if rows:
            self._session.execute(LegendCode.__table__.insert(), rows)
        self._session.flush()
        logger.info(
            "legend_codes_loaded",
            extra={"source": source, "cleared": cleared, "loaded": len(rows)},
        )
        return len(rows)
