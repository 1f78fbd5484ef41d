"""
Module: registry_ingestion.services.ingestion_service
Responsibility: Ingest one registry document end to end: identity, company
    projection, version snapshot, raw capture, facet extraction and writes,
    unknown-field recording, and the run record.
Architecture position: Ingestion > Services.  Composes every other service.
    The only component that commits or rolls back.

Run lifecycle:
    PARTIAL (row inserted at start, same transaction)
      -> UPDATED | UNCHANGED  at commit, with the full summary
      -> ERROR                after rollback, written in a fresh transaction

Invariants enforced:
    - The company row is upserted before any row that references it.
    - Exactly one raw "root" section per successful ingestion.
    - Each facet section runs in its own SAVEPOINT; a failing section is
      rolled back alone and becomes a ``section_failed`` warning plus an
      ingestion_errors row.
    - Content that is already the entity's current version skips the
      append-only facets (reason ``unchanged_version``).  An older version
      coming back (A, B, A) writes them again.  Financial lines are always
      upserted, and only changed lines count as written.
    - Status is UPDATED when the version is new or any facet row was
      written, else UNCHANGED.  OUTDATED is never derived.
    - The run never stays PARTIAL: a failure is recorded as ERROR even
      though the main transaction was rolled back.

Failure modes:
    - MalformedDocumentError / DocumentNotFoundError: raised before any
      store interaction.
    - IngestionFailedError: anything else; wraps the original exception
      (``__cause__``) and keeps its message.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from registry_config.loader import compute_checksum
from registry_config.schema import IngestionSettings
from registry_kernel.db.dialect import upsert_insert
from registry_kernel.db.engine import session_scope
from registry_kernel.domain.clock import Clock, SystemClock
from registry_kernel.exceptions import IngestionFailedError, MalformedDocumentError
from registry_kernel.logging_config import LogContext, get_logger
from registry_kernel.utils.hashing import to_json_safe

from registry_ingestion.adapters.json_adapter import JsonDocumentAdapter
from registry_ingestion.domain.effective_date import effective_date_for_section
from registry_ingestion.domain.identity import resolve_identity
from registry_ingestion.domain.types import (
    ExtractionWarning,
    IngestionResult,
    RunStatus,
    RunSummary,
    VersionResult,
)
from registry_ingestion.extractors import default_extractors
from registry_ingestion.extractors.balance import TABLE as BALANCE_TABLE
from registry_ingestion.extractors.base import ExtractionContext, TieredExtractor
from registry_ingestion.models.registry import IngestionErrorModel, IngestionRun
from registry_ingestion.services.company_projection import CompanyProjectionService
from registry_ingestion.services.enrichment import CodeEnrichmentResolver
from registry_ingestion.services.facet_writer import (
    BalanceEntryWriter,
    FacetWriter,
    FacetWriteResult,
)
from registry_ingestion.services.schema_evolution import SchemaEvolutionManager
from registry_ingestion.services.unknown_fields import ROOT_SECTION, UnknownFieldRecorder
from registry_ingestion.services.versioning import ContentVersioningService

logger = get_logger("ingestion.service")


class _RunScope:
    """Per-run collaborators, all bound to the run's session."""

    def __init__(self, session: Session, settings: IngestionSettings, clock: Clock):
        self.session = session
        self.schema = SchemaEvolutionManager(session, settings.column_name_max_length)
        self.facets = FacetWriter(session, self.schema)
        self.balance = BalanceEntryWriter(session, clock)
        self.resolver = CodeEnrichmentResolver(session, clock)


class IngestionService:
    """
    Ingest registry documents.

    Each call to ``ingest`` opens its own session from ``session_factory``
    and commits it on success.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: IngestionSettings | None = None,
        clock: Clock | None = None,
        extractors: tuple[TieredExtractor, ...] | None = None,
        adapter: JsonDocumentAdapter | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or IngestionSettings()
        self._clock = clock or SystemClock()
        self._extractors = extractors if extractors is not None else default_extractors()
        self._adapter = adapter or JsonDocumentAdapter()
        self._settings_checksum = compute_checksum(self._settings)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def ingest_file(self, path: Path | str, source_name: str | None = None) -> IngestionResult:
        """Read a document from ``path`` and ingest it."""
        payload = self._adapter.read(path)
        return self.ingest(payload, source_name=source_name)

    def ingest(self, payload: dict[str, Any], source_name: str | None = None) -> IngestionResult:
        if not isinstance(payload, dict):
            raise MalformedDocumentError(
                "<payload>", f"expected a JSON object, got {type(payload).__name__}"
            )

        ingestion_id = uuid4()
        source = source_name or self._settings.source_name
        summary = RunSummary(
            ingestion_id=ingestion_id,
            source=source,
            settings_checksum=self._settings_checksum,
        )
        started_at = self._clock.now()
        t0 = time.monotonic()

        with LogContext.bind(ingestion_id=str(ingestion_id), source=source):
            logger.info("ingestion_started")
            session = self._session_factory()
            try:
                self._run(session, payload, summary, started_at)
                session.commit()
            except Exception as exc:
                session.rollback()
                logger.error(
                    "ingestion_failed",
                    exc_info=True,
                    extra={"error_msg": str(exc)},
                )
                self._record_failure(summary, started_at, exc)
                raise IngestionFailedError(str(ingestion_id), str(exc)) from exc
            finally:
                session.close()

            logger.info(
                "ingestion_committed",
                extra={
                    "status": summary.status.value,
                    "inserts": summary.inserts,
                    "skips": summary.skips,
                    "created_columns": len(summary.created_columns),
                    "warnings": len(summary.warnings),
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )

        return IngestionResult(entity_id=summary.entity_id, summary=to_json_safe(summary.to_dict()))

    # ------------------------------------------------------------------
    # Run steps
    # ------------------------------------------------------------------

    def _run(
        self,
        session: Session,
        payload: dict[str, Any],
        summary: RunSummary,
        started_at: datetime,
    ) -> None:
        identity = resolve_identity(payload)
        entity_id = identity.entity_id
        summary.entity_id = entity_id
        if not identity.linked:
            summary.warnings.append(ExtractionWarning(
                table="companies",
                reason="unlinked_identity",
                row={"entity_id": str(entity_id)},
            ))
            logger.warning("unlinked_identity", extra={"entity_id": str(entity_id)})

        with LogContext.bind(entity_id=str(entity_id)):
            root_date = effective_date_for_section(ROOT_SECTION, payload, self._clock.now())

            session.add(IngestionRun(
                ingestion_id=summary.ingestion_id,
                source=summary.source,
                entity_id=entity_id,
                status=RunStatus.PARTIAL.value,
                started_at=started_at,
            ))
            session.flush()

            CompanyProjectionService(session, self._clock).upsert(identity, payload)
            versioning = ContentVersioningService(session)
            version = versioning.record_version(entity_id, payload, root_date)
            summary.content_hash = version.content_hash
            summary.version_created = version.created
            versioning.capture_raw_section(entity_id, ROOT_SECTION, root_date, payload)

            scope = _RunScope(session, self._settings, self._clock)
            context = ExtractionContext(
                fallback_date=root_date,
                default_currency=self._settings.default_currency,
                default_fiscal_year=self._settings.default_fiscal_year,
            )
            for extractor in self._extractors:
                self._run_section(scope, extractor, payload, context, version, summary)

            summary.unknown_fields = UnknownFieldRecorder(
                session, self._clock, limit=self._settings.unknown_field_limit
            ).record(entity_id, payload)

            summary.status = self.classify(version, summary)
            run = session.get(IngestionRun, summary.ingestion_id)
            run.status = summary.status.value
            run.finished_at = self._clock.now()
            run.summary = to_json_safe(summary.to_dict())
            session.flush()

    @staticmethod
    def classify(version: VersionResult, summary: RunSummary) -> RunStatus:
        if version.created or summary.rows_written > 0:
            return RunStatus.UPDATED
        return RunStatus.UNCHANGED

    def _run_section(
        self,
        scope: _RunScope,
        extractor: TieredExtractor,
        payload: dict[str, Any],
        context: ExtractionContext,
        version: VersionResult,
        summary: RunSummary,
    ) -> None:
        table = extractor.table
        is_balance = table == BALANCE_TABLE
        if version.current and not is_balance:
            summary.count_skip(table, "unchanged_version")
            return

        with LogContext.bind(section=extractor.section):
            savepoint = scope.session.begin_nested()
            try:
                extracted = extractor.run(payload, context)
                if extracted.empty:
                    outcome = FacetWriteResult()
                elif is_balance:
                    lines = scope.resolver.enrich(extracted.rows)
                    outcome = scope.balance.upsert_lines(summary.entity_id, lines)
                else:
                    outcome = scope.facets.write_rows(table, summary.entity_id, extracted.rows)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                scope.schema.reset()
                self._record_section_failure(scope.session, summary, extractor, exc)
                return

            if extracted.tier:
                summary.tiers[extractor.section] = extracted.tier
            summary.add_warnings(extracted.warnings)
            summary.add_warnings(outcome.warnings)
            summary.created_columns.extend(outcome.created_columns)

            if outcome.written:
                summary.count_insert(table, outcome.written)
            elif extracted.empty:
                summary.count_skip(table, "no_rows")
            else:
                summary.count_skip(table, "unchanged_rows", outcome.unchanged)

            logger.info(
                "section_processed",
                extra={
                    "tier": extracted.tier,
                    "written": outcome.written,
                    "unchanged": outcome.unchanged,
                },
            )

    def _record_section_failure(
        self,
        session: Session,
        summary: RunSummary,
        extractor: TieredExtractor,
        exc: Exception,
    ) -> None:
        message = str(exc)
        summary.warnings.append(ExtractionWarning(
            table=extractor.table,
            reason="section_failed",
            row={"section": extractor.section, "error": message},
        ))
        summary.count_skip(extractor.table, "section_failed")
        session.add(IngestionErrorModel(
            ingestion_id=summary.ingestion_id,
            entity_id=summary.entity_id,
            section=extractor.section,
            message=message,
        ))
        session.flush()
        logger.warning(
            "section_failed",
            exc_info=True,
            extra={"error_msg": message},
        )

    # ------------------------------------------------------------------
    # Failure record
    # ------------------------------------------------------------------

    def _record_failure(self, summary: RunSummary, started_at: datetime, exc: Exception) -> None:
        """Write the ERROR run in its own transaction; never masks ``exc``."""
        message = str(exc)
        error_summary = {
            "ingestion_id": str(summary.ingestion_id),
            "entity_id": str(summary.entity_id) if summary.entity_id else None,
            "source": summary.source,
            "status": RunStatus.ERROR.value,
            "error": message,
            "error_type": type(exc).__name__,
        }
        try:
            with session_scope(self._session_factory) as session:
                table = IngestionRun.__table__
                stmt = upsert_insert(session, table).values(
                    ingestion_id=summary.ingestion_id,
                    source=summary.source,
                    entity_id=summary.entity_id,
                    status=RunStatus.ERROR.value,
                    started_at=started_at,
                    finished_at=self._clock.now(),
                    summary=error_summary,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.ingestion_id],
                    set_={
                        "status": stmt.excluded.status,
                        "finished_at": stmt.excluded.finished_at,
                        "summary": stmt.excluded.summary,
                    },
                )
                session.execute(stmt)
                session.add(IngestionErrorModel(
                    ingestion_id=summary.ingestion_id,
                    entity_id=summary.entity_id,
                    section=None,
                    message=message,
                ))
            summary.status = RunStatus.ERROR
        except Exception:
            logger.exception("error_record_failed")
