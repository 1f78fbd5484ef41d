"""
Content Versioning Store.

Contract:
    record_version() inserts an immutable (entity_id, content_hash) snapshot.
    A conflict on that pair is a successful no-op: the content is already
    known.  The hash also becomes companies.current_content_hash; the result
    says whether it already was, so a document that returns to an older
    version (A, B, A) is told apart from a plain repeat.
    capture_raw_section() always inserts; it is the lossless backstop written
    once per ingestion for the whole document.

Architecture: registry_ingestion/services. Flushes, never commits.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from registry_kernel.db.dialect import upsert_insert
from registry_kernel.logging_config import get_logger
from registry_kernel.utils.hashing import hash_payload, to_json_safe

from registry_ingestion.domain.types import VersionResult
from registry_ingestion.models.registry import Company, CompanyVersion, RawSection

logger = get_logger("ingestion.versioning")


class ContentVersioningService:
    """Immutable snapshots of ingested documents."""

    def __init__(self, session: Session):
        self._session = session

    def record_version(
        self,
        entity_id: UUID,
        payload: dict[str, Any],
        effective_date: datetime,
    ) -> VersionResult:
        """
        Insert a snapshot unless (entity_id, content_hash) is already stored.

        The hash ignores key order: two documents that differ only in key
        order share a version.
        """
        content_hash = hash_payload(payload)
        previous = self._session.execute(
            select(Company.current_content_hash).where(Company.entity_id == entity_id)
        ).scalar_one_or_none()

        stmt = (
            upsert_insert(self._session, CompanyVersion.__table__)
            .values(
                id=uuid4(),
                entity_id=entity_id,
                effective_date=effective_date,
                content_hash=content_hash,
                raw_json=to_json_safe(payload),
            )
            .on_conflict_do_nothing(index_elements=["entity_id", "content_hash"])
        )
        result = self._session.execute(stmt)
        created = result.rowcount == 1
        current = not created and previous == content_hash
        if not current:
            self._session.execute(
                update(Company)
                .where(Company.entity_id == entity_id)
                .values(current_content_hash=content_hash)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "version_recorded" if created else "version_unchanged",
            extra={"content_hash": content_hash, "version_created": created, "current": current},
        )
        return VersionResult(content_hash=content_hash, created=created, current=current)

    def capture_raw_section(
        self,
        entity_id: UUID,
        section: str,
        effective_date: datetime,
        payload: Any,
    ) -> RawSection:
        """Store ``payload`` verbatim under ``section``."""
        row = RawSection(
            id=uuid4(),
            entity_id=entity_id,
            section=section,
            effective_date=effective_date,
            raw_json=to_json_safe(payload),
        )
        self._session.add(row)
        self._session.flush()
        logger.debug("raw_section_captured", extra={"raw_section": section})
        return row
