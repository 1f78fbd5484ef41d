"""
Structured JSON logging for registry ingestion runs.

Each record becomes one JSON line:

    {"ts": ..., "level": "INFO", "logger": "registry_kernel.ingestion.service",
     "message": "section_processed", "ingestion_id": ..., "entity_id": ...,
     "section": "contacts", "tier": "known_fields", "written": 1}

Run context (ingestion_id, entity_id, section, source) comes from
``LogContext.bind`` and is attached to every record emitted inside the
binding.  ``extra`` fields follow; values with a ``to_dict()`` (summaries,
column changes, warnings) are emitted as their dict form.  A RegistryError
attached through ``exc_info`` is emitted as an ``error`` object carrying its
``code`` and structured attributes.

Loggers come from ``get_logger``.  Extra keys that would clash with a
``logging.LogRecord`` attribute (``created``, ``module``, ``name`` ...) are
emitted with a trailing underscore instead of failing the log call.
"""

from __future__ import annotations

__all__ = [
    "RUN_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Iterator, Mapping, MutableMapping

from registry_kernel.exceptions import RegistryError
from registry_kernel.utils.hashing import to_json_safe

ROOT_LOGGER = "registry_kernel"

RUN_FIELDS = ("ingestion_id", "entity_id", "section", "source")

_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


# ---------------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------------

_run_context: ContextVar[Mapping[str, str]] = ContextVar(
    "registry_run_context", default=MappingProxyType({})
)


class LogContext:
    """Run-scoped fields attached to every record (contextvars, so task-safe)."""

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_run_context.get())

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Add ``fields`` to the run context for the duration of the block.

        None values are ignored; everything else is stored as ``str``.  The
        previous context is restored on exit, also after an exception.
        """
        unknown = set(fields) - set(RUN_FIELDS)
        if unknown:
            raise ValueError(f"Not a run context field: {', '.join(sorted(unknown))}")
        merged = dict(_run_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _run_context.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _run_context.reset(token)

    @staticmethod
    def clear() -> None:
        _run_context.set(MappingProxyType({}))


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------


def _field_value(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_json_safe(to_dict())
    if isinstance(value, (list, tuple)):
        return [_field_value(v) for v in value]
    return to_json_safe(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, RegistryError):
        error["code"] = exc.code
        error.update(
            (k, to_json_safe(v)) for k, v in vars(exc).items() if not k.startswith("_")
        )
    if exc.__cause__ is not None:
        error["cause"] = f"{type(exc.__cause__).__name__}: {exc.__cause__}"
    return error


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_run_context.get())

        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key in payload:
                continue
            payload[key] = _field_value(value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_fields(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Loggers
# ---------------------------------------------------------------------------


class _RegistryLogger(logging.LoggerAdapter):
    """Renames ``extra`` keys that collide with LogRecord attributes."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = kwargs.get("extra")
        if extra:
            kwargs["extra"] = {
                (f"{key}_" if key in _RECORD_ATTRIBUTES else key): value
                for key, value in extra.items()
            }
        return msg, kwargs


def get_logger(name: str) -> logging.LoggerAdapter:
    """Logger ``registry_kernel.<name>``."""
    return _RegistryLogger(logging.getLogger(f"{ROOT_LOGGER}.{name}"), {})


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _installed_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, "_registry_structured", False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the structured handler on ``registry_kernel`` (stderr by default).

    Calling again only updates the level; the handler already installed is
    returned and ``handler`` is ignored.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False

    installed = _installed_handlers(root)
    if installed:
        return installed[0]

    h = handler if handler is not None else logging.StreamHandler(sys.stderr)
    h.setFormatter(StructuredFormatter())
    h._registry_structured = True
    root.addHandler(h)
    return h


def reset_logging() -> None:
    """Remove the installed handler and restore WARNING. For tests."""
    root = logging.getLogger(ROOT_LOGGER)
    for h in _installed_handlers(root):
        root.removeHandler(h)
    root.setLevel(logging.WARNING)
