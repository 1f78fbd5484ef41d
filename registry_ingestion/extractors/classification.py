"""ATECO industry classification extraction (single tier)."""

from __future__ import annotations

from typing import Any

from registry_ingestion.domain.effective_date import effective_date_for_section
from registry_ingestion.domain.paths import get_mapping
from registry_ingestion.domain.types import ExtractionResult, FacetRow
from registry_ingestion.domain.values import text_value
from registry_ingestion.extractors.base import ExtractionContext, TieredExtractor

# document field -> classification_type
ATECO_FIELDS: tuple[tuple[str, str], ...] = (
    ("ateco", "primary"),
    ("secondaryAteco", "secondary"),
    ("ateco2022", "ateco2022"),
    ("secondaryAteco2022", "secondary2022"),
)


class AtecoFields:
    name = "known_fields"

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        block = get_mapping(payload, "atecoClassification") or get_mapping(
            payload, "data.atecoClassification"
        )
        if block is None:
            return ExtractionResult()

        effective_date = effective_date_for_section("ateco", block, context.fallback_date)
        rows = []
        for field_name, classification_type in ATECO_FIELDS:
            value = block.get(field_name)
            if isinstance(value, dict):
                code = text_value(value.get("code"))
                description = text_value(value.get("description"))
            else:
                code = text_value(value)
                description = None
            if code is None:
                continue
            rows.append(FacetRow(
                values={
                    "classification_type": classification_type,
                    "ateco_code": code,
                    "ateco_description": description,
                },
                effective_date=effective_date,
                raw=value,
            ))
        return ExtractionResult(rows=tuple(rows))


def classification_extractor() -> TieredExtractor:
    return TieredExtractor(section="ateco", table="ateco", strategies=(AtecoFields(),))
