"""
Section extractors.

``default_extractors()`` returns the facet chains in the order the
orchestrator runs them.
"""

from registry_ingestion.extractors.addresses import addresses_extractor
from registry_ingestion.extractors.balance import balance_extractor
from registry_ingestion.extractors.base import (
    ExtractionContext,
    ExtractionStrategy,
    TieredExtractor,
)
from registry_ingestion.extractors.classification import classification_extractor
from registry_ingestion.extractors.contacts import contacts_extractor


def default_extractors() -> tuple[TieredExtractor, ...]:
    return (
        contacts_extractor(),
        addresses_extractor(),
        classification_extractor(),
        balance_extractor(),
    )


__all__ = [
    "ExtractionContext",
    "ExtractionStrategy",
    "TieredExtractor",
    "default_extractors",
    "contacts_extractor",
    "addresses_extractor",
    "classification_extractor",
    "balance_extractor",
]
