"""Tests for the legend catalog loader."""

import json

import pytest
from sqlalchemy import select

from registry_kernel.exceptions import MalformedDocumentError
from registry_ingestion.models import LegendCode
from registry_ingestion.services.legend_loader import LegendCatalogLoader, catalog_entries

CATALOG = {
    "stato_patrimoniale_attivo": [
        {"code": "A1", "description": "Crediti verso soci"},
        {"code": "B2", "description": "Immobilizzazioni materiali", "level": 2},
    ],
    "stato_patrimoniale_passivo": [{"code": "P1", "description": "Patrimonio netto"}],
    "conto_economico": [
        {"code": "CE1", "description": "Valore della produzione"},
        {"code": "A1", "description": "duplicate"},
        {"code": "", "description": "no code"},
        "not an object",
    ],
}


def _legend(session):
    return {row.code: row for row in session.scalars(select(LegendCode))}


class TestCatalogEntries:
    def test_statements_and_extras(self):
        rows = {row["code"]: row for row in catalog_entries(CATALOG)}

        assert set(rows) == {"A1", "B2", "P1", "CE1"}
        assert rows["A1"]["statement"] == "SP_A"
        assert rows["A1"]["description"] == "Crediti verso soci"
        assert rows["P1"]["statement"] == "SP_P"
        assert rows["CE1"]["statement"] == "CE"
        assert rows["B2"]["extra"] == {"level": 2}
        assert rows["A1"]["extra"] is None

    def test_no_known_section(self):
        with pytest.raises(MalformedDocumentError, match="no catalog section"):
            catalog_entries({"other": []})

    def test_section_must_be_array(self):
        with pytest.raises(MalformedDocumentError, match="must be an array"):
            catalog_entries({"conto_economico": {"CE1": "x"}})


class TestLegendCatalogLoader:
    def test_load_replaces_contents(self, session):
        session.add(LegendCode(code="OLD", description="stale"))
        session.flush()

        count = LegendCatalogLoader(session).load(CATALOG)

        assert count == 4
        legend = _legend(session)
        assert set(legend) == {"A1", "B2", "P1", "CE1"}
        assert legend["P1"].statement == "SP_P"

    def test_load_file(self, session, tmp_path):
        path = tmp_path / "schemi_bilancio.json"
        path.write_text(json.dumps(CATALOG), encoding="utf-8")

        assert LegendCatalogLoader(session).load_file(path) == 4
        assert len(_legend(session)) == 4
