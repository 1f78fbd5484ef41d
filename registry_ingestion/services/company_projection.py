"""
Company projection upsert.

The companies row is the entity's mutable projection.  Last write wins per
field: a field present in the new document overwrites the stored value, a
field absent from it keeps what is stored.  Runs before any row that
references the entity.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from registry_kernel.db.dialect import upsert_insert
from registry_kernel.domain.clock import Clock, SystemClock
from registry_kernel.logging_config import get_logger

from registry_ingestion.domain.paths import first_present
from registry_ingestion.domain.types import EntityIdentity
from registry_ingestion.domain.values import text_value
from registry_ingestion.models.registry import Company

logger = get_logger("ingestion.company_projection")

# column -> candidate document paths, in priority order
PROJECTION_PATHS: dict[str, tuple[str, ...]] = {
    "vat_code": ("companyDetails.vatCode", "data.companyDetails.vatCode", "vatCode", "data.vatCode"),
    "tax_code": ("companyDetails.taxCode", "data.companyDetails.taxCode", "taxCode", "data.taxCode"),
    "company_name": (
        "companyDetails.companyName",
        "data.companyDetails.companyName",
        "companyName",
        "data.companyName",
    ),
    "legal_form": (
        "legalForm.description",
        "data.legalForm.description",
        "companyDetails.legalForm",
        "legalForm",
    ),
    "status": ("companyStatus.description", "data.companyStatus.description", "companyStatus"),
    "cciaa": ("chamberOfCommerce.code", "data.chamberOfCommerce.code", "companyDetails.cciaa"),
    "rea_code": ("companyDetails.reaCode", "data.companyDetails.reaCode", "reaCode", "data.reaCode"),
    "country_code": ("address.country.code", "data.address.country.code"),
}


def project_company(payload: dict[str, Any]) -> dict[str, str | None]:
    """Projection column values found in ``payload`` (None when absent)."""
    values: dict[str, str | None] = {}
    for column, paths in PROJECTION_PATHS.items():
        values[column] = None
        for path in paths:
            found = text_value(first_present(payload, (path,)) or None)
            if found is not None:
                values[column] = found
                break
    return values


class CompanyProjectionService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def upsert(self, identity: EntityIdentity, payload: dict[str, Any]) -> dict[str, str | None]:
        values = project_company(payload)
        now = self._clock.now()
        table = Company.__table__
        stmt = upsert_insert(self._session, table).values(
            entity_id=identity.entity_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        set_ = {
            column: func.coalesce(stmt.excluded[column], table.c[column])
            for column in PROJECTION_PATHS
        }
        set_["updated_at"] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.entity_id], set_=set_)
        self._session.execute(stmt)

        logger.info(
            "company_upserted",
            extra={"natural_key_kind": identity.key_kind.value},
        )
        return values
