"""
Contacts extraction: phone, email, certified email (PEC), website.

Tiers:
    known_fields  -- fixed field names at the root and in known containers;
                     extra scalar fields of a ``contacts`` block ride along
                     for column promotion.
    keyword_walk  -- recursive walk matching key-name substrings, first
                     string match per field.

At most one row per document.
"""

from __future__ import annotations

from typing import Any

from registry_ingestion.domain.effective_date import effective_date_for_section
from registry_ingestion.domain.paths import first_present, get_mapping, is_scalar, walk
from registry_ingestion.domain.types import ExtractionResult, FacetRow
from registry_ingestion.domain.values import text_value
from registry_ingestion.extractors.base import ExtractionContext, TieredExtractor

CONTACT_FIELDS = ("phone", "email", "pec", "website")

_CONTAINERS = ("", "contacts", "companyDetails", "data", "data.contacts")
_CONTACT_BLOCKS = ("contacts", "data.contacts")


def _row(values: dict[str, Any], block: dict[str, Any] | None, context: ExtractionContext) -> FacetRow:
    return FacetRow(
        values=values,
        effective_date=effective_date_for_section("contacts", block or {}, context.fallback_date),
        raw=block if block is not None else dict(values),
    )


class KnownContactFields:
    name = "known_fields"

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        values: dict[str, Any] = {}
        for field_name in CONTACT_FIELDS:
            paths = [f"{c}.{field_name}" if c else field_name for c in _CONTAINERS]
            values[field_name] = text_value(first_present(payload, paths) or None)

        if not any(values.values()):
            return ExtractionResult()

        block = None
        for path in _CONTACT_BLOCKS:
            block = get_mapping(payload, path)
            if block is not None:
                break
        if block is not None:
            for key, value in block.items():
                if key in CONTACT_FIELDS or value is None or not is_scalar(value):
                    continue
                values[key] = value

        return ExtractionResult(rows=(_row(values, block, context),))


class ContactKeywordWalk:
    name = "keyword_walk"

    @staticmethod
    def _fields_for(key: str) -> list[str]:
        lowered = key.lower()
        matched = []
        if "pec" in lowered:
            matched.append("pec")
        if lowered == "e-mail" or "mail" in lowered:
            matched.append("email")
        if "tel" in lowered or "phone" in lowered:
            matched.append("phone")
        if "sito" in lowered or "web" in lowered:
            matched.append("website")
        return matched

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        values: dict[str, Any] = dict.fromkeys(CONTACT_FIELDS)
        for path, value in walk(payload):
            if not isinstance(value, str) or not value.strip() or path[-1].isdigit():
                continue
            for field_name in self._fields_for(path[-1]):
                if values[field_name] is None:
                    values[field_name] = value.strip()
            if all(values.values()):
                break

        if not any(values.values()):
            return ExtractionResult()
        return ExtractionResult(rows=(_row(values, None, context),))


def contacts_extractor() -> TieredExtractor:
    return TieredExtractor(
        section="contacts",
        table="contacts",
        strategies=(KnownContactFields(), ContactKeywordWalk()),
    )
