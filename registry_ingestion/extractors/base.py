"""
Tiered extraction contract.

Contract:
    An ExtractionStrategy is pure: it reads a document and returns an
    ExtractionResult, empty when its heuristics do not match.
    TieredExtractor tries its strategies in order and returns the first
    non-empty result, tagged with the winning strategy's name.  Tiers are
    mutually exclusive; rows from different tiers are never merged.
    Warnings of a tier that produced no rows are dropped once a later tier
    wins; when no tier wins, every tier's warnings are returned so dropped
    candidates stay visible.

Architecture: registry_ingestion/extractors. No DB, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from registry_ingestion.domain.types import ExtractionResult, ExtractionWarning


@dataclass(frozen=True)
class ExtractionContext:
    """Per-run inputs every strategy may need."""

    fallback_date: datetime  # Document-level effective date
    default_currency: str = "EUR"
    default_fiscal_year: int | None = 2024


@runtime_checkable
class ExtractionStrategy(Protocol):
    """One heuristic tier for one facet."""

    name: str

    def extract(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        """Rows found by this tier; empty result when nothing matches."""
        ...


class TieredExtractor:
    """Ordered fallback chain of strategies for one facet table."""

    def __init__(self, section: str, table: str, strategies: tuple[ExtractionStrategy, ...]):
        if not strategies:
            raise ValueError(f"Extractor {section!r} needs at least one strategy")
        self.section = section
        self.table = table
        self.strategies = strategies

    @property
    def tier_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.strategies)

    def run(self, payload: dict[str, Any], context: ExtractionContext) -> ExtractionResult:
        dropped: list[ExtractionWarning] = []
        for strategy in self.strategies:
            result = strategy.extract(payload, context)
            if result.rows:
                return replace(result, tier=strategy.name)
            dropped.extend(result.warnings)
        return ExtractionResult(rows=(), warnings=tuple(dropped), tier=None)

    def __repr__(self) -> str:
        return f"TieredExtractor({self.section!r}, tiers={self.tier_names})"
