"""
Typed exception hierarchy for company-registry ingestion.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RegistryError:

    RegistryError (base)
    |
    +-- DocumentError
    |   +-- DocumentNotFoundError
    |   +-- MalformedDocumentError
    |
    +-- SchemaEvolutionError
    |   +-- InvalidColumnNameError
    |   +-- UnknownTableError
    |
    +-- IngestionError
    |   +-- IngestionFailedError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Document        | DOCUMENT_NOT_FOUND          | Input path missing or unreadable
                | MALFORMED_DOCUMENT          | Not JSON, or not a JSON object
----------------|-----------------------------|-----------------------------------------
Schema          | INVALID_COLUMN_NAME         | Field name normalizes to nothing
                | UNKNOWN_TABLE               | Column promotion on a missing table
----------------|-----------------------------|-----------------------------------------
Ingestion       | INGESTION_FAILED            | Run aborted; ERROR run recorded
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Settings file malformed or invalid

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Input errors are raised before any store interaction:

    try:
        payload = adapter.read(path)
    except DocumentError as e:
        exit_with(e.code, str(e))

2. Extraction warnings and unmapped codes are data, never exceptions.
   They surface in the run summary.

3. IngestionFailedError wraps the original cause (``__cause__``) and keeps
   its message, plus the ingestion_id of the ERROR run record:

    except IngestionFailedError as e:
        log.error("run failed", extra={"ingestion_id": e.ingestion_id})
"""

from pathlib import Path


class RegistryError(Exception):
    """
    Base exception for all registry ingestion errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REGISTRY_ERROR"


# Document (input) errors


class DocumentError(RegistryError):
    """Base exception for input document errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentError):
    """Input document path does not exist or cannot be read."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, path: Path | str, reason: str | None = None):
        self.path = str(path)
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Document not found: {self.path}{detail}")


class MalformedDocumentError(DocumentError):
    """Input document is not valid JSON or not a JSON object."""

    code: str = "MALFORMED_DOCUMENT"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Malformed document {source}: {reason}")


# Schema evolution errors


class SchemaEvolutionError(RegistryError):
    """Base exception for runtime schema evolution errors."""

    code: str = "SCHEMA_EVOLUTION_ERROR"


class InvalidColumnNameError(SchemaEvolutionError):
    """Field name cannot be turned into a storage-safe column name."""

    code: str = "INVALID_COLUMN_NAME"

    def __init__(self, table: str, field_name: str):
        self.table = table
        self.field_name = field_name
        super().__init__(
            f"Field {field_name!r} does not yield a valid column name for table {table}"
        )


class UnknownTableError(SchemaEvolutionError):
    """Column promotion was requested on a table that does not exist."""

    code: str = "UNKNOWN_TABLE"

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Table does not exist: {table}")


# Ingestion run errors


class IngestionError(RegistryError):
    """Base exception for ingestion run errors."""

    code: str = "INGESTION_ERROR"


class IngestionFailedError(IngestionError):
    """An ingestion run aborted; its writes were rolled back."""

    code: str = "INGESTION_FAILED"

    def __init__(self, ingestion_id: str, message: str):
        self.ingestion_id = ingestion_id
        self.error_message = message
        super().__init__(message)


# Configuration errors


class ConfigurationError(RegistryError):
    """Settings file could not be parsed or holds invalid values."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)
