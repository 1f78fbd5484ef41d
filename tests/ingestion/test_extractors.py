"""Tests for the tiered section extractors."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from registry_ingestion.domain.types import ExtractionResult, ExtractionWarning, Statement
from registry_ingestion.extractors import default_extractors
from registry_ingestion.extractors.addresses import addresses_extractor
from registry_ingestion.extractors.balance import (
    balance_extractor,
    guess_code_statement,
    guess_group_statement,
    path_year,
)
from registry_ingestion.extractors.base import ExtractionContext, TieredExtractor
from registry_ingestion.extractors.classification import classification_extractor
from registry_ingestion.extractors.contacts import contacts_extractor

ROOT_DATE = datetime(2024, 3, 15, tzinfo=timezone.utc)


@pytest.fixture
def context():
    return ExtractionContext(fallback_date=ROOT_DATE)


class _Fixed:
    def __init__(self, name, rows=(), warnings=()):
        self.name = name
        self._result = ExtractionResult(rows=tuple(rows), warnings=tuple(warnings))
        self.calls = 0

    def extract(self, payload, context):
        self.calls += 1
        return self._result


class TestTieredExtractor:
    def test_first_non_empty_tier_wins(self, context):
        first = _Fixed("first", warnings=[ExtractionWarning("t", "noise")])
        second = _Fixed("second", rows=["a"])
        third = _Fixed("third", rows=["b"])
        result = TieredExtractor("s", "t", (first, second, third)).run({}, context)

        assert result.rows == ("a",)
        assert result.tier == "second"
        assert result.warnings == ()
        assert third.calls == 0

    def test_no_winner_keeps_all_warnings(self, context):
        first = _Fixed("first", warnings=[ExtractionWarning("t", "a")])
        second = _Fixed("second", warnings=[ExtractionWarning("t", "b")])
        result = TieredExtractor("s", "t", (first, second)).run({}, context)

        assert result.empty
        assert result.tier is None
        assert [w.reason for w in result.warnings] == ["a", "b"]

    def test_requires_a_strategy(self):
        with pytest.raises(ValueError):
            TieredExtractor("s", "t", ())

    def test_default_extractor_order(self):
        assert [e.section for e in default_extractors()] == ["contacts", "addresses", "ateco", "balance"]
        assert balance_extractor().tier_names == (
            "statement_sections",
            "legacy_groups",
            "code_pattern_scan",
        )


class TestContactsExtractor:
    def test_known_fields_with_extra_field(self, context):
        payload = {"contacts": {"phone": "06 123", "pec": "a@pec.it", "faxNumber": "06 999", "tags": ["x"]}}
        result = contacts_extractor().run(payload, context)

        assert result.tier == "known_fields"
        (row,) = result.rows
        assert row.values["phone"] == "06 123"
        assert row.values["pec"] == "a@pec.it"
        assert row.values["email"] is None
        assert row.values["faxNumber"] == "06 999"
        assert "tags" not in row.values
        assert row.raw == payload["contacts"]
        assert row.effective_date == ROOT_DATE

    def test_fields_under_data_envelope(self, context):
        result = contacts_extractor().run({"data": {"email": "info@x.it"}}, context)
        assert result.rows[0].values["email"] == "info@x.it"

    def test_keyword_walk_fallback(self, context):
        payload = {"extra": {"recapiti": {"indirizzoPec": "p@pec.it", "telefono": "06 1", "sitoWeb": "x.it"}}}
        result = contacts_extractor().run(payload, context)

        assert result.tier == "keyword_walk"
        values = result.rows[0].values
        assert values["pec"] == "p@pec.it"
        assert values["phone"] == "06 1"
        assert values["website"] == "x.it"

    def test_nothing_found(self, context):
        assert contacts_extractor().run({"companyName": "x"}, context).empty


class TestAddressesExtractor:
    def test_registered_office_and_offices(self, context):
        payload = {
            "address": {
                "streetName": "Via Roma 1",
                "zipCode": "00100",
                "town": "Roma",
                "province": {"code": "RM", "description": "Roma"},
                "region": {"code": "12", "description": "Lazio"},
                "country": {"code": "IT", "description": "Italia"},
                "buildingNumber": 4,
            },
            "allOffices": [
                {"officeType": {"code": "UL"}, "address": {"town": "Milano"}},
                {"town": "Torino", "lastUpdateDate": "2020-05-01"},
            ],
        }
        result = addresses_extractor().run(payload, context)

        assert result.tier == "known_blocks"
        sede, local_unit, office = result.rows
        assert sede.values["address_type"] == "SEDE"
        assert sede.values["street"] == "Via Roma 1"
        assert sede.values["zip_code"] == "00100"
        assert sede.values["province"] == "RM"
        assert sede.values["region"] == "Lazio"
        assert sede.values["country"] == "IT"
        assert sede.values["buildingNumber"] == 4
        assert local_unit.values["address_type"] == "UL"
        assert local_unit.values["town"] == "Milano"
        assert office.values["address_type"] == "OFFICE"
        assert office.effective_date == datetime(2020, 5, 1, tzinfo=timezone.utc)

    def test_shape_scan_fallback(self, context):
        payload = {
            "registeredOffice": {"indirizzo": "Via Po 2", "cap": "10100", "comune": "Torino"},
            "localUnits": [{"city": "Asti", "zip": "14100", "provincia": "AT"}],
            "notAnAddress": {"town": "Roma", "note": "x"},
        }
        result = addresses_extractor().run(payload, context)

        assert result.tier == "shape_scan"
        types = sorted((r.values["address_type"], r.values["town"]) for r in result.rows)
        assert types == [("SEDE", "Torino"), ("UL", "Asti")]


class TestClassificationExtractor:
    def test_typed_rows(self, context):
        payload = {
            "atecoClassification": {
                "ateco": {"code": "41.20", "description": "Costruzione"},
                "secondaryAteco": "43.21",
                "ateco2022": {"code": "41.00"},
            }
        }
        result = classification_extractor().run(payload, context)

        rows = {r.values["classification_type"]: r.values for r in result.rows}
        assert set(rows) == {"primary", "secondary", "ateco2022"}
        assert rows["primary"]["ateco_description"] == "Costruzione"
        assert rows["secondary"] == {
            "classification_type": "secondary",
            "ateco_code": "43.21",
            "ateco_description": None,
        }

    def test_under_data(self, context):
        payload = {"data": {"atecoClassification": {"secondaryAteco2022": "01.11"}}}
        (row,) = classification_extractor().run(payload, context).rows
        assert row.values["classification_type"] == "secondary2022"


class TestBalanceExtractor:
    def test_statement_sections_mapping_and_list(self, context):
        payload = {
            "balance": {
                "year": 2023,
                "currency": "USD",
                "assetsAggregateValues": {"A1": 500, "B2": "12.50"},
                "conto_economico": [
                    {"code": "CE1", "amount": 100, "description": "Ricavi"},
                    {"code": "CE2", "value": "n/a", "year": 2022},
                ],
            }
        }
        result = balance_extractor().run(payload, context)

        assert result.tier == "statement_sections"
        lines = {line.code: line for line in result.rows}
        assert lines["A1"].statement is Statement.SP_A
        assert lines["A1"].amount == Decimal("500")
        assert lines["A1"].fiscal_year == 2023
        assert lines["A1"].currency == "USD"
        assert lines["A1"].source_path == "balance.assetsAggregateValues"
        assert lines["B2"].amount == Decimal("12.50")
        assert lines["CE1"].statement is Statement.CE
        assert lines["CE1"].description == "Ricavi"
        assert lines["CE2"].fiscal_year == 2022
        assert lines["CE2"].amount is None

    def test_legacy_groups(self, context):
        payload = {
            "balance": {
                "fiscalYear": 2021,
                "debts": {"D1": 10},
                "productionValue": {"PV1": 20},
                "credits": {"C1": 30},
            }
        }
        result = balance_extractor().run(payload, context)

        assert result.tier == "legacy_groups"
        statements = {line.code: line.statement for line in result.rows}
        assert statements == {"D1": Statement.SP_P, "PV1": Statement.CE, "C1": Statement.SP_A}

    def test_code_pattern_scan_only_when_earlier_tiers_empty(self, context):
        payload = {"bilancio": {"esercizio2022": {"IPL01": "1000", "IIC101": 5, "AB12": 7, "ab12": 9, "XY1": 3}}}
        result = balance_extractor().run(payload, context)

        assert result.tier == "code_pattern_scan"
        lines = {line.code: line for line in result.rows}
        assert set(lines) == {"IPL01", "IIC101", "AB12"}
        assert lines["IPL01"].statement is Statement.SP_P
        assert lines["IIC101"].statement is Statement.CE
        assert lines["AB12"].statement is Statement.SP_A
        assert all(line.fiscal_year == 2022 for line in result.rows)

    def test_code_shaped_parent_is_not_a_year(self, context):
        payload = {"year": 2023, "reports": {"AB2015": {"CD12": 5}}}
        result = balance_extractor().run(payload, context)

        lines = {line.code: line for line in result.rows}
        assert lines["CD12"].fiscal_year == 2023
        assert set(lines) == {"CD12"}

    @pytest.mark.parametrize(
        "path, expected",
        [
            (("bilancio", "2022"), 2022),
            (("bilancio", "esercizio2021"), 2021),
            (("2020", "esercizio2021"), 2021),
            (("reports", "AB2015"), None),
            (("id120230",), None),
            ((), None),
        ],
    )
    def test_path_year(self, path, expected):
        assert path_year(path) == expected

    def test_tiers_are_exclusive(self, context):
        payload = {
            "balance": {"year": 2023, "assetsAggregateValues": {"A1": 1}},
            "other": {"ZZ99": 5},
        }
        result = balance_extractor().run(payload, context)
        assert [line.code for line in result.rows] == ["A1"]

    def test_year_falls_back_to_default(self, context):
        result = balance_extractor().run({"balance": {"assetsAggregateValues": {"A1": 1}}}, context)
        assert result.rows[0].fiscal_year == 2024
        assert result.rows[0].currency == "EUR"

    def test_missing_year_dropped_with_warning(self):
        context = ExtractionContext(fallback_date=ROOT_DATE, default_fiscal_year=None)
        result = balance_extractor().run({"balance": {"assetsAggregateValues": {"A1": 1}}}, context)

        assert result.empty
        assert [w.reason for w in result.warnings] == ["missing_keys"]
        assert result.warnings[0].row["code"] == "A1"

    def test_duplicate_key_warned(self, context):
        payload = {"balance": {"year": 2023, "assetsAggregateValues": [
            {"code": "A1", "value": 1},
            {"code": "A1", "value": 2},
        ]}}
        result = balance_extractor().run(payload, context)

        assert len(result.rows) == 1
        assert result.rows[0].amount == Decimal("1")
        assert [w.reason for w in result.warnings] == ["duplicate_key"]

    def test_statement_guesses(self):
        assert guess_group_statement("netWorth") is Statement.SP_P
        assert guess_group_statement("financialIncomeAndCharges") is Statement.CE
        assert guess_group_statement("extraordinaryIncomeAndCharges") is Statement.CE
        assert guess_group_statement("inventory") is Statement.SP_A
        assert guess_code_statement("IPL10") is Statement.SP_P
        assert guess_code_statement("IIC1") is Statement.CE
        assert guess_code_statement("IIA1") is Statement.SP_A
