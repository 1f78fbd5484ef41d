"""Tests for lenient path lookup and scalar helpers."""

from decimal import Decimal

import pytest

from registry_ingestion.domain.paths import (
    MISSING,
    first_present,
    format_path,
    get_mapping,
    get_path,
    is_present,
    walk,
)
from registry_ingestion.domain.values import as_year, text_value, to_decimal

DOC = {
    "data": {"companyDetails": {"vatCode": "IT1", "empty": None}},
    "allOffices": [{"town": "Roma"}, {"town": "Milano"}],
}


class TestGetPath:
    def test_nested_dict(self):
        assert get_path(DOC, "data.companyDetails.vatCode") == "IT1"

    def test_list_index(self):
        assert get_path(DOC, "allOffices.1.town") == "Milano"

    def test_sequence_path(self):
        assert get_path(DOC, ("data", "companyDetails", "vatCode")) == "IT1"

    @pytest.mark.parametrize(
        "path",
        ["data.missing", "allOffices.5.town", "allOffices.x", "data.companyDetails.vatCode.deeper"],
    )
    def test_absent_is_missing(self, path):
        assert get_path(DOC, path) is MISSING

    def test_null_is_not_missing(self):
        assert get_path(DOC, "data.companyDetails.empty") is None

    def test_missing_is_falsy_singleton(self):
        assert not MISSING
        assert repr(MISSING) == "MISSING"
        assert type(MISSING)() is MISSING


class TestLookupHelpers:
    def test_is_present(self):
        assert is_present("x")
        assert is_present(0)
        assert not is_present(MISSING)
        assert not is_present(None)
        assert not is_present("   ")

    def test_first_present_skips_blank(self):
        doc = {"a": "", "b": {"c": "found"}}
        assert first_present(doc, ["a", "b.c"]) == "found"
        assert first_present(doc, ["x", "y"]) is MISSING

    def test_get_mapping(self):
        assert get_mapping(DOC, "data") is DOC["data"]
        assert get_mapping(DOC, "allOffices") is None


class TestWalk:
    def test_pre_order_with_string_indices(self):
        paths = [path for path, _ in walk({"a": [{"b": 1}], "c": 2})]
        assert paths == [("a",), ("a", "0"), ("a", "0", "b"), ("c",)]

    def test_format_path(self):
        assert format_path(("balance", "2023", "A1")) == "balance.2023.A1"


class TestValues:
    def test_to_decimal(self):
        assert to_decimal(500) == Decimal("500")
        assert to_decimal(250.5) == Decimal("250.5")
        assert to_decimal(" 12.30 ") == Decimal("12.30")
        assert to_decimal("n/a") is None
        assert to_decimal(True) is None
        assert to_decimal("NaN") is None

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1.234,56", "1234.56"),
            ("-1.234.567,8", "-1234567.8"),
            ("12,5", "12.5"),
            ("1,234.56", "1234.56"),
            ("1.234.567", "1234567"),
            ("1 234,00", "1234.00"),
        ],
    )
    def test_to_decimal_grouped_notation(self, text, expected):
        assert to_decimal(text) == Decimal(expected)

    def test_to_decimal_rejects_ambiguous_commas(self):
        assert to_decimal("1,2,3") is None

    def test_as_year(self):
        assert as_year(2023) == 2023
        assert as_year("2023") == 2023
        assert as_year("20x3") is None
        assert as_year(False) is None

    def test_text_value(self):
        assert text_value("  Roma ") == "Roma"
        assert text_value(100) == "100"
        assert text_value("") is None
        assert text_value({"code": "RM"}) is None
