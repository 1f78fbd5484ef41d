"""
Address extraction.

Tiers:
    known_blocks -- ``address`` (registered office, type SEDE) and
                    ``allOffices[]`` (type from ``officeType``), at the root
                    or under ``data``.
    shape_scan   -- every object in the document scored against a fixed
                    vocabulary of address-shaped keys; three or more hits
                    make it an address.

Each row gets its own effective date.  Scalar fields beyond the normalized
ones ride along for column promotion.
"""

from __future__ import annotations

from typing import Any, Iterable

from registry_ingestion.domain.effective_date import effective_date_for_section
from registry_ingestion.domain.paths import get_path, is_scalar, walk
from registry_ingestion.domain.types import ExtractionResult, FacetRow
from registry_ingestion.domain.values import text_value
from registry_ingestion.extractors.base import ExtractionContext, TieredExtractor

ADDRESS_VOCABULARY = frozenset({
    "street", "streetname", "indirizzo",
    "zip", "zipcode", "cap",
    "town", "city", "comune",
    "province", "provincia",
    "region", "regione",
    "country", "stato",
})
MIN_SHAPE_SCORE = 3

# normalized column -> (source keys, lower-cased, in priority order; prefer)
_FIELD_SOURCES: dict[str, tuple[tuple[str, ...], str]] = {
    "street": (("street", "streetname", "indirizzo"), "description"),
    "zip_code": (("zipcode", "zip", "cap"), "code"),
    "town": (("town", "city", "comune"), "description"),
    "province": (("province", "provincia"), "code"),
    "region": (("region", "regione"), "description"),
    "country": (("country", "stato"), "code"),
}
_CONSUMED_KEYS = ADDRESS_VOCABULARY | {"addresstype", "officetype"}


def _flatten(value: Any, prefer: str) -> str | None:
    """Flat string from a scalar or a ``{code, description}`` object."""
    if isinstance(value, dict):
        other = "description" if prefer == "code" else "code"
        return text_value(value.get(prefer)) or text_value(value.get(other))
    return text_value(value)


def normalize_address(
    block: dict[str, Any],
    address_type: str,
    context: ExtractionContext,
) -> FacetRow:
    """Normalize one address-shaped object into a row."""
    by_lower = {str(k).lower(): v for k, v in block.items()}
    values: dict[str, Any] = {"address_type": address_type}
    for column, (sources, prefer) in _FIELD_SOURCES.items():
        values[column] = None
        for source in sources:
            flat = _flatten(by_lower.get(source), prefer)
            if flat is not None:
                values[column] = flat
                break

    for key, value in block.items():
        if str(key).lower() in _CONSUMED_KEYS or value is None or not is_scalar(value):
            continue
        values.setdefault(key, value)

    return FacetRow(
        values=values,
        effective_date=effective_date_for_section("addresses", block, context.fallback_date),
        raw=block,
    )


def _office_type(office: dict[str, Any]) -> str:
    office_type = office.get("officeType")
    if isinstance(office_type, dict):
        office_type = office_type.get("code") or office_type.get("description")
    return text_value(office_type) or "OFFICE"


class KnownAddressBlocks:
    name = "known_blocks"

    def _blocks(self, root: dict[str, Any]) -> Iterable[tuple[dict[str, Any], str]]:
        address = root.get("address")
        if isinstance(address, dict):
            yield address, "SEDE"
        offices = root.get("allOffices")
        if isinstance(offices, list):
            for office in offices:
                if not isinstance(office, dict):
                    continue
                nested = office.get("address")
                block = nested if isinstance(nested, dict) else office
                yield block, _office_type(office)

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        for base in ("", "data"):
            root = get_path(payload, base) if base else payload
            if not isinstance(root, dict):
                continue
            rows = tuple(
                normalize_address(block, address_type, context)
                for block, address_type in self._blocks(root)
            )
            if rows:
                return ExtractionResult(rows=rows)
        return ExtractionResult()


class AddressShapeScan:
    name = "shape_scan"

    @staticmethod
    def score(node: dict[str, Any]) -> int:
        return len({str(k).lower() for k in node} & ADDRESS_VOCABULARY)

    @staticmethod
    def address_type(path: tuple[str, ...]) -> str:
        lowered = [segment.lower() for segment in path]
        if any("registered" in segment for segment in lowered):
            return "SEDE"
        if any(segment in ("ul", "localunits") for segment in lowered):
            return "UL"
        return "OFFICE"

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        rows: list[FacetRow] = []
        nodes = [((), payload)]
        nodes.extend(walk(payload))
        for path, node in nodes:
            if isinstance(node, dict) and self.score(node) >= MIN_SHAPE_SCORE:
                rows.append(normalize_address(node, self.address_type(path), context))
        return ExtractionResult(rows=tuple(rows))


def addresses_extractor() -> TieredExtractor:
    return TieredExtractor(
        section="addresses",
        table="addresses",
        strategies=(KnownAddressBlocks(), AddressShapeScan()),
    )
