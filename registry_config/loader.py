"""
Configuration Loader (``registry_config.loader``).

Responsibility
--------------
Loads the YAML settings file into a typed ``IngestionSettings`` and applies
environment overrides.  Scripts call ``load_settings``; services receive the
resulting object and never read files or the environment themselves.

Failure modes
-------------
* Missing YAML file  -> defaults (plus environment overrides).
* Malformed YAML, non-mapping document, unknown keys or wrong value types
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from registry_config.schema import IngestionSettings
from registry_kernel.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "registry.yaml"

# Environment variable -> settings field
ENV_OVERRIDES: dict[str, str] = {
    "DATABASE_URL": "database_url",
    "REGISTRY_SOURCE_NAME": "source_name",
    "REGISTRY_LOG_LEVEL": "log_level",
    "REGISTRY_DEFAULT_CURRENCY": "default_currency",
}

_INT_FIELDS = frozenset({
    "column_name_max_length",
    "unknown_field_limit",
    "pool_size",
    "max_overflow",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML: {exc}", source=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Settings file must contain a mapping", source=str(path))
    return data


def parse_settings(data: Mapping[str, Any], source: str | None = None) -> IngestionSettings:
    """Build IngestionSettings from a mapping, rejecting unknown keys."""
    section = data.get("ingestion", data)
    if not isinstance(section, Mapping):
        raise ConfigurationError("'ingestion' must be a mapping", source=source)

    unknown = set(section) - IngestionSettings.field_names()
    if unknown:
        raise ConfigurationError(
            f"Unknown settings: {', '.join(sorted(unknown))}", source=source
        )

    values: dict[str, Any] = {}
    for key, value in section.items():
        if key in _INT_FIELDS:
            values[key] = _as_int(key, value, source)
        elif key == "default_fiscal_year":
            values[key] = None if value is None else _as_int(key, value, source)
        elif key == "echo_sql":
            values[key] = bool(value)
        else:
            values[key] = str(value)

    settings = IngestionSettings(**values)
    if settings.column_name_max_length < 1 or settings.column_name_max_length > 63:
        raise ConfigurationError(
            "column_name_max_length must be between 1 and 63", source=source
        )
    return settings


def _as_int(key: str, value: Any, source: str | None) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer", source=source)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be an integer", source=source) from exc


def apply_env_overrides(
    settings: IngestionSettings,
    environ: Mapping[str, str] | None = None,
) -> IngestionSettings:
    """Return settings with any ENV_OVERRIDES present in ``environ`` applied."""
    env = os.environ if environ is None else environ
    changes = {
        field_name: env[var]
        for var, field_name in ENV_OVERRIDES.items()
        if env.get(var)
    }
    return replace(settings, **changes) if changes else settings


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> IngestionSettings:
    """
    Load settings from ``path`` (default ``config/registry.yaml``) and the
    environment.  A missing file yields defaults.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if config_path.exists():
        settings = parse_settings(load_yaml_file(config_path), source=str(config_path))
    elif path is not None:
        raise ConfigurationError("Settings file not found", source=str(config_path))
    else:
        settings = IngestionSettings()
    return apply_env_overrides(settings, environ)


def compute_checksum(settings: IngestionSettings) -> str:
    """Deterministic SHA-256 of the settings, excluding the database URL."""
    data = asdict(settings)
    data.pop("database_url", None)
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
