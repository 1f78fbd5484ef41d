"""Registry ingestion services."""

from registry_ingestion.services.company_projection import CompanyProjectionService
from registry_ingestion.services.enrichment import CodeEnrichmentResolver
from registry_ingestion.services.facet_writer import BalanceEntryWriter, FacetWriter
from registry_ingestion.services.ingestion_service import IngestionService
from registry_ingestion.services.legend_loader import LegendCatalogLoader
from registry_ingestion.services.schema_evolution import SchemaEvolutionManager
from registry_ingestion.services.unknown_fields import UnknownFieldRecorder
from registry_ingestion.services.versioning import ContentVersioningService

__all__ = [
    "IngestionService",
    "SchemaEvolutionManager",
    "ContentVersioningService",
    "CodeEnrichmentResolver",
    "CompanyProjectionService",
    "FacetWriter",
    "BalanceEntryWriter",
    "UnknownFieldRecorder",
    "LegendCatalogLoader",
]
