"""
Tests for IngestionService: the end-to-end run, idempotence, schema growth,
financial upserts, unmapped-code tracking and failure recording.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from registry_kernel.exceptions import IngestionFailedError, MalformedDocumentError
from registry_ingestion.domain.identity import entity_id_for_key
from registry_ingestion.domain.types import RunStatus, RunSummary, VersionResult
from registry_ingestion.extractors import default_extractors
from registry_ingestion.extractors.base import TieredExtractor
from registry_ingestion.models import (
    Address,
    BalanceEntry,
    Company,
    CompanyVersion,
    Contact,
    IngestionErrorModel,
    IngestionRun,
    RawSection,
    UnknownField,
    UnmappedCode,
)
from registry_ingestion.services.company_projection import CompanyProjectionService
from registry_ingestion.services.ingestion_service import IngestionService

VAT_CODE = "IT12345678901"


def _count(session_factory, model, *where):
    with session_factory() as session:
        stmt = select(func.count()).select_from(model)
        for clause in where:
            stmt = stmt.where(clause)
        return session.execute(stmt).scalar_one()


def _financial_document(amount):
    return {
        "companyDetails": {"vatCode": VAT_CODE},
        "balance": {"conto_economico": [{"year": 2023, "code": "A1", "amount": amount}]},
    }


class _Exploding:
    name = "exploding"

    def extract(self, payload, context):
        raise ValueError("extractor blew up")


class TestEndToEnd:
    def test_minimal_document(self, ingestion_service, session_factory, make_document):
        result = ingestion_service.ingest(make_document("minimal"))

        assert result.status is RunStatus.UPDATED
        assert result.entity_id == entity_id_for_key(VAT_CODE)
        with session_factory() as session:
            company = session.get(Company, result.entity_id)
            assert company.vat_code == VAT_CODE
            (address,) = session.scalars(select(Address)).all()
            assert address.address_type == "SEDE"
            assert address.street == "Via Roma 1"
            assert address.zip_code == "00100"
            assert address.town == "Roma"
            (entry,) = session.scalars(select(BalanceEntry)).all()
            assert (entry.fiscal_year, entry.statement, entry.code) == (2023, "SP_A", "A1")
            assert entry.amount == Decimal("500")
            run = session.get(IngestionRun, result.summary["ingestion_id"])
            assert run.status == "UPDATED"
            assert run.finished_at is not None
            assert run.summary["status"] == "UPDATED"

    def test_summary_shape(self, ingestion_service, make_document):
        summary = ingestion_service.ingest(make_document()).summary

        assert summary["version_created"] is True
        assert summary["inserts"] == {"contacts": 1, "addresses": 1, "ateco": 2, "balance_entries": 3}
        assert summary["skips"] == {}
        assert summary["tiers"] == {
            "contacts": "known_fields",
            "addresses": "known_blocks",
            "ateco": "known_fields",
            "balance": "statement_sections",
        }
        assert summary["source"] == "it-full"
        assert summary["settings_checksum"]
        assert summary["unknown_fields"] == 0
        assert summary["created_columns"] == []

    def test_logs_carry_run_context(self, ingestion_service, make_document, captured_logs):
        result = ingestion_service.ingest(make_document())

        logs = captured_logs()
        committed = [r for r in logs if r["message"] == "ingestion_committed"]
        assert len(committed) == 1
        assert committed[0]["ingestion_id"] == result.ingestion_id
        assert committed[0]["status"] == "UPDATED"
        sections = {r.get("section") for r in logs if r["message"] == "section_processed"}
        assert sections == {"contacts", "addresses", "ateco", "balance"}

    def test_source_name_recorded(self, ingestion_service, session_factory, make_document):
        result = ingestion_service.ingest(make_document(), source_name="it-lite")
        with session_factory() as session:
            assert session.get(IngestionRun, result.ingestion_id).source == "it-lite"

    def test_unknown_fields_recorded(self, ingestion_service, session_factory, make_document):
        result = ingestion_service.ingest(make_document(shareCapital={"amount": 10000}, employees=12))

        assert result.summary["unknown_fields"] == 2
        assert _count(session_factory, UnknownField) == 2

    def test_unmapped_company_details_recorded(self, ingestion_service, session_factory):
        result = ingestion_service.ingest({
            "companyDetails": {"vatCode": VAT_CODE, "shareCapital": 10000, "foundedOn": "1990-01-01"},
        })

        assert result.summary["unknown_fields"] == 2
        with session_factory() as session:
            paths = set(session.scalars(select(UnknownField.json_path)).all())
        assert paths == {"companyDetails.shareCapital", "companyDetails.foundedOn"}

    def test_unlinked_document(self, ingestion_service, make_document):
        result = ingestion_service.ingest({"companyName": "Senza Partita IVA"})

        assert result.status is RunStatus.UPDATED
        assert "unlinked_identity" in [w["reason"] for w in result.summary["warnings"]]


class TestIdempotence:
    def test_same_document_twice(self, ingestion_service, session_factory, make_document):
        first = ingestion_service.ingest(make_document())
        second = ingestion_service.ingest(make_document())

        assert first.status is RunStatus.UPDATED
        assert second.status is RunStatus.UNCHANGED
        assert second.summary["version_created"] is False
        assert second.summary["inserts"] == {}
        assert second.summary["skip_reasons"] == {
            "contacts": "unchanged_version",
            "addresses": "unchanged_version",
            "ateco": "unchanged_version",
            "balance_entries": "unchanged_rows",
        }
        assert _count(session_factory, Company) == 1
        assert _count(session_factory, CompanyVersion) == 1
        assert _count(session_factory, Contact) == 1
        assert _count(session_factory, BalanceEntry) == 3
        assert _count(session_factory, IngestionRun) == 2

    def test_identity_and_hash_are_deterministic(self, ingestion_service, make_document):
        first = ingestion_service.ingest(make_document())
        second = ingestion_service.ingest(make_document())

        assert first.entity_id == second.entity_id
        assert first.summary["content_hash"] == second.summary["content_hash"]
        assert first.ingestion_id != second.ingestion_id

    def test_key_order_is_irrelevant(self, ingestion_service, make_document):
        document = make_document()
        reordered = dict(reversed(list(document.items())))

        ingestion_service.ingest(document)
        assert ingestion_service.ingest(reordered).status is RunStatus.UNCHANGED


    def test_returning_to_older_version_rewrites_facets(self, ingestion_service, session_factory):
        def document(phone):
            return {"companyDetails": {"vatCode": VAT_CODE}, "contacts": {"phone": phone}}

        ingestion_service.ingest(document("06 AAA"))
        ingestion_service.ingest(document("06 BBB"))
        third = ingestion_service.ingest(document("06 AAA"))

        assert third.status is RunStatus.UPDATED
        assert third.summary["version_created"] is False
        assert third.summary["inserts"] == {"contacts": 1}
        assert "contacts" not in third.summary["skip_reasons"]
        assert _count(session_factory, CompanyVersion) == 2
        with session_factory() as session:
            phones = session.scalars(select(Contact.phone).order_by(Contact.created_at, Contact.id)).all()
        assert len(phones) == 3
        assert phones.count("06 AAA") == 2

        fourth = ingestion_service.ingest(document("06 AAA"))
        assert fourth.status is RunStatus.UNCHANGED
        assert fourth.summary["skip_reasons"]["contacts"] == "unchanged_version"


class TestLosslessCapture:
    def test_one_raw_root_section_per_ingestion(self, ingestion_service, session_factory, make_document):
        document = make_document(extra={"deep": [{"x": [1, 2.5, None, True]}]})
        ingestion_service.ingest(document)

        with session_factory() as session:
            (raw,) = session.scalars(select(RawSection)).all()
            assert raw.section == "root"
            assert raw.raw_json == document

        ingestion_service.ingest(document)
        assert _count(session_factory, RawSection) == 2


class TestSchemaGrowth:
    def test_new_field_promoted_exactly_once(self, ingestion_service, session_factory):
        first = ingestion_service.ingest({
            "companyDetails": {"vatCode": VAT_CODE},
            "contacts": {"phone": "06 1", "faxNumber": "06 9"},
        })
        second = ingestion_service.ingest({
            "companyDetails": {"vatCode": VAT_CODE},
            "contacts": {"phone": "06 2", "faxNumber": "06 9"},
        })

        assert first.summary["created_columns"] == [
            {"table": "contacts", "column": "fax_number", "type": "text"}
        ]
        assert second.summary["version_created"] is True
        assert second.summary["created_columns"] == []
        assert _count(session_factory, Contact) == 2


class TestFinancialUpsert:
    def test_amount_replaced_on_same_key(self, ingestion_service, session_factory):
        ingestion_service.ingest(_financial_document(100))
        result = ingestion_service.ingest(_financial_document(150))

        assert result.summary["inserts"] == {"balance_entries": 1}
        with session_factory() as session:
            (entry,) = session.scalars(select(BalanceEntry)).all()
            assert (entry.fiscal_year, entry.statement, entry.code) == (2023, "CE", "A1")
            assert entry.amount == Decimal("150")


class TestUnmappedCodes:
    def test_counter_incremented_once_per_ingestion(self, ingestion_service, session_factory):
        document = _financial_document(100)
        document["balance"]["conto_economico"].append({"year": 2022, "code": "A1", "amount": 90})

        ingestion_service.ingest(document)
        with session_factory() as session:
            assert session.get(UnmappedCode, "A1").occurrences == 1

        ingestion_service.ingest(document)
        with session_factory() as session:
            assert session.get(UnmappedCode, "A1").occurrences == 2


class TestFailureHandling:
    def test_fatal_error_recorded_as_error_run(
        self, ingestion_service, session_factory, make_document, monkeypatch, captured_logs
    ):
        def boom(self, identity, payload):
            raise RuntimeError("projection exploded")

        monkeypatch.setattr(CompanyProjectionService, "upsert", boom)

        with pytest.raises(IngestionFailedError) as exc_info:
            ingestion_service.ingest(make_document())

        assert exc_info.value.error_message == "projection exploded"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        with session_factory() as session:
            run = session.get(IngestionRun, exc_info.value.ingestion_id)
            assert run.status == "ERROR"
            assert run.summary["error"] == "projection exploded"
            (error,) = session.scalars(select(IngestionErrorModel)).all()
            assert error.message == "projection exploded"
        assert _count(session_factory, Company) == 0
        assert _count(session_factory, RawSection) == 0
        assert any(r["message"] == "ingestion_failed" for r in captured_logs())

    def test_section_failure_is_isolated(self, session_factory, settings, deterministic_clock, make_document):
        extractors = default_extractors() + (
            TieredExtractor("broken", "contacts", (_Exploding(),)),
        )
        service = IngestionService(
            session_factory, settings=settings, clock=deterministic_clock, extractors=extractors
        )

        result = service.ingest(make_document())

        assert result.status is RunStatus.UPDATED
        failed = [w for w in result.summary["warnings"] if w["reason"] == "section_failed"]
        assert failed[0]["row"] == {"section": "broken", "error": "extractor blew up"}
        assert result.summary["inserts"]["contacts"] == 1
        assert _count(session_factory, Contact) == 1
        with session_factory() as session:
            (error,) = session.scalars(select(IngestionErrorModel)).all()
            assert error.section == "broken"

    def test_malformed_payload_rejected_before_store(self, ingestion_service, session_factory):
        with pytest.raises(MalformedDocumentError):
            ingestion_service.ingest(["not", "an", "object"])
        assert _count(session_factory, IngestionRun) == 0

    def test_ingest_file(self, ingestion_service, tmp_path):
        path = tmp_path / "company.json"
        path.write_text('{"companyDetails": {"vatCode": "IT1"}}', encoding="utf-8")

        assert ingestion_service.ingest_file(path).entity_id == entity_id_for_key("IT1")


class TestClassify:
    def test_rules(self):
        summary = RunSummary(ingestion_id=uuid4())
        assert IngestionService.classify(VersionResult("h", False), summary) is RunStatus.UNCHANGED
        assert IngestionService.classify(VersionResult("h", True), summary) is RunStatus.UPDATED
        summary.count_insert("balance_entries")
        assert IngestionService.classify(VersionResult("h", False), summary) is RunStatus.UPDATED
