"""
Unknown-Field Recorder.

Records scalar document leaves that no projection column, facet column or
balance line consumes, per entity, for schema-gap analysis.  A leaf counts
as consumed when its path (after an optional ``data`` envelope) is:

    - a company projection path (``companyDetails.vatCode`` ...);
    - a section date field (``lastUpdateDate`` ...);
    - a scalar of a contacts or address block, or one level down in an
      address sub-object (``address.province.code``);
    - an ATECO classification field;
    - inside a balance statement section or legacy group, a balance
      year/currency field, or keyed by a statement code (``IPL12``).

Everything else, including unmapped children of known blocks such as
``companyDetails.shareCapital``, is recorded.  Recording stops at ``limit``
paths per run.
"""

from __future__ import annotations

from typing import Any, Iterator
from uuid import UUID

from sqlalchemy.orm import Session

from registry_kernel.db.dialect import upsert_insert
from registry_kernel.domain.clock import Clock, SystemClock
from registry_kernel.logging_config import get_logger
from registry_kernel.utils.hashing import to_json_safe

from registry_ingestion.domain.effective_date import DATE_FIELDS
from registry_ingestion.domain.paths import format_path, is_scalar, walk
from registry_ingestion.extractors.addresses import ADDRESS_VOCABULARY
from registry_ingestion.extractors.balance import (
    CODE_PATTERN,
    CONTAINER_PATHS,
    LEGACY_GROUPS,
    STATEMENT_SECTIONS,
)
from registry_ingestion.extractors.classification import ATECO_FIELDS
from registry_ingestion.extractors.contacts import CONTACT_FIELDS
from registry_ingestion.models.registry import UnknownField
from registry_ingestion.services.company_projection import PROJECTION_PATHS

logger = get_logger("ingestion.unknown_fields")

ROOT_SECTION = "root"
ENVELOPE_KEY = "data"


def _strip_envelope(path: str) -> tuple[str, ...]:
    parts = tuple(path.split("."))
    return parts[1:] if parts[0] == ENVELOPE_KEY else parts


PROJECTION_LEAVES = frozenset(
    _strip_envelope(path) for paths in PROJECTION_PATHS.values() for path in paths
)
CONTACT_LEAVES = frozenset(
    {(f,) for f in CONTACT_FIELDS} | {("companyDetails", f) for f in CONTACT_FIELDS}
)
CONTACT_BLOCKS = frozenset({"contacts"})
ATECO_KEYS = frozenset(field_name for field_name, _ in ATECO_FIELDS)
LINE_SECTIONS = frozenset(STATEMENT_SECTIONS) | frozenset(LEGACY_GROUPS)
BALANCE_CONTAINERS = frozenset(
    _strip_envelope(path) for path in CONTAINER_PATHS if path and path != ENVELOPE_KEY
)
BALANCE_SCALARS = frozenset({"year", "fiscalYear", "currency"})
_CODED_SUBKEYS = frozenset({"code", "description"})


def _address_consumed(rest: tuple[str, ...]) -> bool:
    """``rest`` is the path below an address-shaped object."""
    if len(rest) == 1:
        return True
    return (
        len(rest) == 2
        and rest[0].lower() in ADDRESS_VOCABULARY | {"officetype"}
        and rest[1] in _CODED_SUBKEYS
    )


def _balance_consumed(path: tuple[str, ...]) -> bool:
    if CODE_PATTERN.match(path[-1]):
        return True
    for start in range(len(path)):
        prefix, rest = path[:start], path[start:]
        if start and prefix not in BALANCE_CONTAINERS:
            continue
        if rest[0] in LINE_SECTIONS and len(rest) > 1:
            return True
        if len(rest) == 1 and rest[0] in BALANCE_SCALARS:
            return True
    return False


def is_consumed(path: tuple[str, ...]) -> bool:
    """True when the leaf at ``path`` ends up in a column or a balance line."""
    if path and path[0] == ENVELOPE_KEY:
        path = path[1:]
    if not path:
        return False
    head = path[0]

    if path in PROJECTION_LEAVES or path in CONTACT_LEAVES:
        return True
    if path[-1] in DATE_FIELDS:
        return True
    if head in CONTACT_BLOCKS:
        return len(path) == 2
    if head == "address":
        return _address_consumed(path[1:])
    if head == "allOffices" and len(path) > 2:
        rest = path[2:]
        if rest[0] == "address":
            rest = rest[1:]
        return bool(rest) and _address_consumed(rest)
    if head == "atecoClassification" and len(path) > 1 and path[1] in ATECO_KEYS:
        return len(path) == 2 or (len(path) == 3 and path[2] in _CODED_SUBKEYS)
    return _balance_consumed(path)


def unknown_paths(payload: dict[str, Any]) -> Iterator[tuple[str, Any]]:
    """(json_path, scalar value) for every leaf nothing consumes."""
    for path, value in walk(payload):
        if is_scalar(value) and not is_consumed(path):
            yield format_path(path), value


class UnknownFieldRecorder:
    def __init__(self, session: Session, clock: Clock | None = None, limit: int = 500):
        self._session = session
        self._clock = clock or SystemClock()
        self._limit = limit

    def record(self, entity_id: UUID, payload: dict[str, Any], section: str = ROOT_SECTION) -> int:
        """Upsert unknown paths of ``payload``; returns how many were recorded."""
        now = self._clock.now()
        table = UnknownField.__table__
        recorded = 0
        truncated = False
        for json_path, value in unknown_paths(payload):
            if recorded >= self._limit:
                truncated = True
                break
            stmt = upsert_insert(self._session, table).values(
                entity_id=entity_id,
                section=section,
                json_path=json_path[:500],
                value_json=to_json_safe(value),
                first_seen_at=now,
                last_seen_at=now,
                occurrences=1,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["entity_id", "section", "json_path"],
                set_={
                    "value_json": stmt.excluded.value_json,
                    "last_seen_at": stmt.excluded.last_seen_at,
                    "occurrences": table.c.occurrences + 1,
                },
            )
            self._session.execute(stmt)
            recorded += 1

        if truncated:
            logger.warning("unknown_fields_truncated", extra={"limit": self._limit})
        logger.debug("unknown_fields_recorded", extra={"count": recorded})
        return recorded
