"""Tests for RegistryReportSelector."""

from decimal import Decimal

import pytest

from registry_ingestion.selectors import RegistryReportSelector


@pytest.fixture
def report_session(session_factory):
    with session_factory() as session:
        yield session


class TestLatestCompanyReport:
    def test_empty_store(self, report_session):
        assert RegistryReportSelector(report_session).latest_company_report() is None

    def test_report_includes_facets_and_promoted_columns(
        self, ingestion_service, session_factory, make_document
    ):
        document = make_document()
        document["contacts"]["faxNumber"] = "06 7654321"
        result = ingestion_service.ingest(document)

        with session_factory() as session:
            report = RegistryReportSelector(session).latest_company_report()

        assert report.company["entity_id"] == result.entity_id
        assert report.company["vat_code"] == "IT12345678901"
        assert report.company["company_name"] == "Rossi Costruzioni S.r.l."
        assert report.contacts[0]["fax_number"] == "06 7654321"
        assert report.addresses[0]["address_type"] == "SEDE"
        assert {row["classification_type"] for row in report.ateco} == {"primary", "ateco2022"}
        assert [(row["statement"], row["code"]) for row in report.balance_entries] == [
            ("SP_A", "A1"),
            ("SP_A", "B2"),
            ("SP_P", "P1"),
        ]
        assert len(report.company_versions) == 1
        assert [row["section"] for row in report.raw_sections] == ["root"]
        assert report.ingestions[0]["status"] == "UPDATED"
        assert report.stats == {
            "total_companies": 1,
            "contacts": 1,
            "addresses": 1,
            "ateco": 2,
            "balance_entries": 3,
            "ingestions": 1,
        }
        assert set(report.to_dict()) == {
            "company",
            "contacts",
            "addresses",
            "ateco",
            "balance_entries",
            "company_versions",
            "raw_sections",
            "ingestions",
            "stats",
        }


class TestBalanceSummary:
    def test_grouped_totals(self, ingestion_service, session_factory, make_document):
        ingestion_service.ingest(make_document())

        with session_factory() as session:
            rows = RegistryReportSelector(session).balance_summary()

        by_statement = {row.statement: row for row in rows}
        assert by_statement["SP_A"].fiscal_year == 2023
        assert by_statement["SP_A"].entries_count == 2
        assert by_statement["SP_A"].total_amount == Decimal("750.5")
        assert by_statement["SP_P"].total_amount == Decimal("700")
        assert by_statement["SP_P"].currency == "EUR"


class TestUnmappedCodes:
    def test_most_frequent_first(self, ingestion_service, session_factory, make_document, deterministic_clock):
        ingestion_service.ingest(make_document())
        deterministic_clock.advance(60)
        ingestion_service.ingest(make_document("minimal"))

        with session_factory() as session:
            rows = RegistryReportSelector(session).unmapped_codes()
            top = RegistryReportSelector(session).unmapped_codes(limit=1)

        assert rows[0].code == "A1"
        assert rows[0].occurrences == 2
        assert {row.code for row in rows} == {"A1", "B2"}
        assert [row.code for row in top] == ["A1"]
