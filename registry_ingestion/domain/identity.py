"""
Identity Resolver.

Derives a stable entity identifier from the document's natural business key.

Invariants:
    - Same natural key (after stripping) -> same entity_id, in every process.
      uuid5 over the DNS namespace keeps the mapping compatible with ids
      produced by earlier loaders of the same registry data.
    - VAT code wins over tax code.
    - No key -> random uuid4 with key_kind RANDOM. Never raises.
"""

from __future__ import annotations

import uuid
from typing import Any

from registry_ingestion.domain.paths import first_present, is_scalar
from registry_ingestion.domain.types import EntityIdentity, KeyKind

ENTITY_NAMESPACE = uuid.NAMESPACE_DNS

_KEY_CONTAINERS = ("companyDetails", "data.companyDetails", "", "data")

_NATURAL_KEYS: tuple[tuple[KeyKind, str], ...] = (
    (KeyKind.VAT, "vatCode"),
    (KeyKind.TAX, "taxCode"),
)


def _candidate_paths(key: str) -> list[str]:
    return [f"{c}.{key}" if c else key for c in _KEY_CONTAINERS]


def entity_id_for_key(natural_key: str) -> uuid.UUID:
    """Deterministic entity id for a natural key."""
    return uuid.uuid5(ENTITY_NAMESPACE, str(natural_key).strip())


def resolve_identity(payload: dict[str, Any]) -> EntityIdentity:
    """Resolve the entity identity of ``payload``."""
    for kind, key in _NATURAL_KEYS:
        value = first_present(payload, _candidate_paths(key))
        if value is not None and is_scalar(value) and not isinstance(value, bool):
            natural_key = str(value).strip()
            if natural_key:
                return EntityIdentity(
                    entity_id=entity_id_for_key(natural_key),
                    natural_key=natural_key,
                    key_kind=kind,
                )
    return EntityIdentity(entity_id=uuid.uuid4(), natural_key=None, key_kind=KeyKind.RANDOM)
