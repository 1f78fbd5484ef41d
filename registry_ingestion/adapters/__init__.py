"""Source adapters: file and byte input, no DB access."""

from registry_ingestion.adapters.json_adapter import JsonDocumentAdapter

__all__ = ["JsonDocumentAdapter"]
