#!/usr/bin/env python3
"""
Create every declared registry table that does not exist yet.

Safe to run repeatedly: existing tables, including columns promoted at
runtime, are left untouched.

Usage:
    python3 scripts/bootstrap_schema.py [--db-url URL] [--config FILE]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create registry tables (idempotent).")
    p.add_argument("--db-url", default=None, help="Database URL (default: from settings)")
    p.add_argument("--config", type=Path, default=None, help="Settings YAML")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from sqlalchemy.exc import SQLAlchemyError

    from registry_config import load_settings
    from registry_kernel.db.base import Base
    from registry_kernel.db.engine import create_tables, init_engine_from_url
    from registry_kernel.exceptions import RegistryError

    import registry_ingestion.models  # noqa: F401

    engine = None
    try:
        settings = load_settings(args.config)
        engine = init_engine_from_url(args.db_url or settings.database_url)
        create_tables(engine)
    except (RegistryError, SQLAlchemyError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if engine is not None:
            engine.dispose()

    print(f"Schema OK: {len(Base.metadata.tables)} tables")
    return 0


if __name__ == "__main__":
    sys.exit(main())
