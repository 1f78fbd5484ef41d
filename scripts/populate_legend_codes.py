#!/usr/bin/env python3
"""
Load a statement-scheme catalog into legend_codes, replacing its contents.

The catalog is a JSON object with ``stato_patrimoniale_attivo``,
``stato_patrimoniale_passivo`` and ``conto_economico`` arrays of
``{code, description}`` entries.

Usage:
    python3 scripts/populate_legend_codes.py CATALOG.json [--db-url URL] [--config FILE]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Replace legend_codes with a catalog file.")
    p.add_argument("catalog", type=Path, help="Catalog JSON file")
    p.add_argument("--db-url", default=None, help="Database URL (default: from settings)")
    p.add_argument("--config", type=Path, default=None, help="Settings YAML")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from sqlalchemy.exc import SQLAlchemyError

    from registry_config import load_settings
    from registry_kernel.db.engine import (
        create_tables,
        init_engine_from_url,
        make_session_factory,
        session_scope,
    )
    from registry_kernel.exceptions import RegistryError

    import registry_ingestion.models  # noqa: F401
    from registry_ingestion.services.legend_loader import LegendCatalogLoader

    try:
        settings = load_settings(args.config)
    except RegistryError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    engine = None
    try:
        engine = init_engine_from_url(args.db_url or settings.database_url)
        create_tables(engine)
        with session_scope(make_session_factory(engine)) as session:
            count = LegendCatalogLoader(session).load_file(args.catalog)
    except (RegistryError, SQLAlchemyError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if engine is not None:
            engine.dispose()

    print(f"Loaded {count} legend codes from {args.catalog}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
