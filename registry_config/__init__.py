"""
Runtime settings for the registry ingestion pipeline.

Usage:
    from registry_config import load_settings

    settings = load_settings()              # config/registry.yaml + env
    settings = load_settings("custom.yaml")
"""

from registry_config.loader import (
    apply_env_overrides,
    compute_checksum,
    load_settings,
    parse_settings,
)
from registry_config.schema import IngestionSettings

__all__ = [
    "IngestionSettings",
    "load_settings",
    "parse_settings",
    "apply_env_overrides",
    "compute_checksum",
]
