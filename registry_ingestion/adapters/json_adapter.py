"""
JSON document adapter.

Reads one registry document (a JSON object) from a file path or a byte
stream.  Input errors surface here, before any store interaction.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from registry_kernel.exceptions import DocumentNotFoundError, MalformedDocumentError
from registry_kernel.logging_config import get_logger

logger = get_logger("ingestion.json_adapter")


class JsonDocumentAdapter:
    """Read a single JSON object document."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def read(self, source_path: Path | str) -> dict[str, Any]:
        path = Path(source_path)
        if not path.is_file():
            raise DocumentNotFoundError(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise DocumentNotFoundError(path, reason=exc.strerror) from exc
        document = self.parse(data, source=str(path))
        logger.info("document_read", extra={"path": str(path), "size_bytes": len(data)})
        return document

    def parse(self, data: bytes | str, source: str = "<bytes>") -> dict[str, Any]:
        if isinstance(data, bytes):
            try:
                text = data.decode(self.encoding)
            except UnicodeDecodeError as exc:
                raise MalformedDocumentError(source, f"not {self.encoding}: {exc}") from exc
        else:
            text = data
        # Tolerate a UTF-8 BOM
        text = text.lstrip("\ufeff")
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedDocumentError(source, f"invalid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise MalformedDocumentError(
                source, f"expected a JSON object, got {type(document).__name__}"
            )
        return document
