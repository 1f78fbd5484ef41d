"""
Financial line-item extraction.

Tiers (mutually exclusive, first non-empty wins):
    statement_sections -- named statement sections whose name maps 1:1 to a
                          statement (SP_A, SP_P, CE).
    legacy_groups      -- legacy detail groups; statement guessed from the
                          group name by keyword lists.
    code_pattern_scan  -- exhaustive scan for keys shaped like statement codes
                          (2-4 upper-case letters + 2-4 digits) holding a
                          numeric value.

Every emitted line has a fiscal year and a code.  Candidates missing either
are dropped with a ``missing_keys`` warning.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Iterator

from registry_ingestion.domain.paths import MISSING, first_present, format_path, get_path, walk
from registry_ingestion.domain.types import BalanceLine, ExtractionResult, ExtractionWarning, Statement
from registry_ingestion.domain.values import as_year, text_value, to_decimal
from registry_ingestion.extractors.base import ExtractionContext, TieredExtractor

TABLE = "balance_entries"

# Searched in this order
CONTAINER_PATHS = ("balance", "financialStatements", "data", "data.balance", "")

DOCUMENT_YEAR_PATHS = (
    "balance.year",
    "balance.fiscalYear",
    "fiscalYear",
    "year",
    "data.year",
    "data.fiscalYear",
)

STATEMENT_SECTIONS: dict[str, Statement] = {
    "stato_patrimoniale_attivo": Statement.SP_A,
    "assetsAggregateValues": Statement.SP_A,
    "stato_patrimoniale_passivo": Statement.SP_P,
    "liabilitiesAggregateValues": Statement.SP_P,
    "conto_economico": Statement.CE,
    "incomeStatementAggregateValues": Statement.CE,
}

LEGACY_GROUPS = (
    "intangibleFixedAssets",
    "tangibleFixedAssets",
    "financialFixedAssets",
    "credits",
    "inventory",
    "cashEquivalents",
    "financialAssets",
    "netWorth",
    "debts",
    "productionValue",
    "productionCosts",
    "financialIncomeAndCharges",
    "extraordinaryIncomeAndCharges",
    "revenuesFinancialCharges",
    "annualResult",
)

# Tested in order; substring match on the group name
LIABILITY_KEYWORDS = ("debts", "liabilities", "netWorth", "financialCharges", "productionCosts")
INCOME_KEYWORDS = ("productionValue", "revenues", "annualResult", "Income")

CODE_PATTERN = re.compile(r"^[A-Z]{2,4}\d{2,4}$")
YEAR_IN_SEGMENT = re.compile(r"(?<!\d)20\d{2}(?!\d)")


def guess_group_statement(group: str) -> Statement:
    if any(keyword in group for keyword in LIABILITY_KEYWORDS):
        return Statement.SP_P
    if any(keyword in group for keyword in INCOME_KEYWORDS):
        return Statement.CE
    return Statement.SP_A


def guess_code_statement(code: str) -> Statement:
    if code.startswith("IPL"):
        return Statement.SP_P
    if code.startswith("IIC1"):
        return Statement.CE
    return Statement.SP_A


def path_year(path: tuple[str, ...]) -> int | None:
    """
    Year named by the innermost path segment (``2023``, ``esercizio2022``).

    Code-shaped segments (``AB2015``) are statement codes, never years.
    """
    for segment in reversed(path):
        if CODE_PATTERN.match(segment):
            continue
        match = YEAR_IN_SEGMENT.search(segment)
        if match:
            return int(match.group(0))
    return None


def document_year(payload: dict[str, Any]) -> int | None:
    for path in DOCUMENT_YEAR_PATHS:
        year = as_year(get_path(payload, path))
        if year is not None:
            return year
    return None


def containers(payload: dict[str, Any]) -> Iterator[tuple[str, dict[str, Any]]]:
    """(path, mapping) for each balance container present, each object once."""
    seen: set[int] = set()
    for path in CONTAINER_PATHS:
        node = get_path(payload, path) if path else payload
        if isinstance(node, dict) and id(node) not in seen:
            seen.add(id(node))
            yield path, node


class _LineBuilder:
    """Applies the year/currency fallbacks and collects warnings."""

    def __init__(self, payload: dict[str, Any], context: ExtractionContext):
        self._document_year = document_year(payload)
        self._default_year = context.default_fiscal_year
        self._default_currency = context.default_currency
        self.lines: dict[tuple[int, str, str], BalanceLine] = {}
        self.warnings: list[ExtractionWarning] = []

    def add(
        self,
        *,
        code: Any,
        amount: Any,
        statement: Statement,
        source_path: str,
        currency: Any = None,
        year: Any = None,
        description: Any = None,
    ) -> None:
        code_text = text_value(code)
        fiscal_year = as_year(year)
        if fiscal_year is None:
            fiscal_year = self._document_year
        if fiscal_year is None:
            fiscal_year = self._default_year
        if code_text is None or fiscal_year is None:
            self.warnings.append(ExtractionWarning(
                table=TABLE,
                reason="missing_keys",
                row={
                    "code": code_text,
                    "year": fiscal_year,
                    "statement": statement.value,
                    "source_path": source_path,
                },
            ))
            return

        line = BalanceLine(
            fiscal_year=fiscal_year,
            statement=statement,
            code=code_text,
            amount=to_decimal(amount),
            currency=text_value(currency) or self._default_currency,
            source_path=source_path,
            description=text_value(description),
        )
        if line.natural_key in self.lines:
            self.warnings.append(ExtractionWarning(
                table=TABLE,
                reason="duplicate_key",
                row={"code": code_text, "year": fiscal_year, "source_path": source_path},
            ))
            return
        self.lines[line.natural_key] = line

    def result(self) -> ExtractionResult:
        return ExtractionResult(rows=tuple(self.lines.values()), warnings=tuple(self.warnings))


def _join(*parts: str) -> str:
    return ".".join(p for p in parts if p)


def _section_items(section: Any) -> Iterable[tuple[Any, Any, Any, Any]]:
    """
    (code, amount, year, description) for a section given either as a list
    of ``{code, value|amount}`` objects or as a mapping of code -> amount.
    """
    if isinstance(section, list):
        for item in section:
            if not isinstance(item, dict):
                continue
            if "value" not in item and "amount" not in item:
                continue
            amount = item.get("value")
            if amount is None:
                amount = item.get("amount")
            year = item.get("year", item.get("fiscalYear"))
            yield item.get("code"), amount, year, item.get("description")
    elif isinstance(section, dict):
        for code, amount in section.items():
            if isinstance(amount, dict):
                value = amount.get("value", amount.get("amount"))
                yield code, value, amount.get("year"), amount.get("description")
            elif not isinstance(amount, list):
                yield code, amount, None, None


class StatementSections:
    name = "statement_sections"

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        builder = _LineBuilder(payload, context)
        for path, container in containers(payload):
            for section_name, statement in STATEMENT_SECTIONS.items():
                section = container.get(section_name)
                if section is None:
                    continue
                for code, amount, year, description in _section_items(section):
                    builder.add(
                        code=code,
                        amount=amount,
                        statement=statement,
                        source_path=_join(path, section_name),
                        currency=container.get("currency"),
                        year=year,
                        description=description,
                    )
        return builder.result()


class LegacyGroups:
    name = "legacy_groups"

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        builder = _LineBuilder(payload, context)
        for path, container in containers(payload):
            for group in LEGACY_GROUPS:
                section = container.get(group)
                if section is None:
                    continue
                statement = guess_group_statement(group)
                for code, amount, year, description in _section_items(section):
                    builder.add(
                        code=code,
                        amount=amount,
                        statement=statement,
                        source_path=_join(path, group),
                        currency=container.get("currency"),
                        year=year,
                        description=description,
                    )
        return builder.result()


class CodePatternScan:
    name = "code_pattern_scan"

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        builder = _LineBuilder(payload, context)
        currency = first_present(payload, ("balance.currency", "currency", "data.currency"))
        for path, value in walk(payload):
            key = path[-1]
            if not CODE_PATTERN.match(key) or isinstance(value, bool):
                continue
            if not isinstance(value, (int, float, str)) or to_decimal(value) is None:
                continue
            builder.add(
                code=key,
                amount=value,
                statement=guess_code_statement(key),
                source_path=format_path(path),
                currency=None if currency is MISSING else currency,
                year=path_year(path[:-1]),
            )
        return builder.result()


def balance_extractor() -> TieredExtractor:
    return TieredExtractor(
        section="balance",
        table=TABLE,
        strategies=(StatementSections(), LegacyGroups(), CodePatternScan()),
    )
