#!/usr/bin/env python3
"""
Delete every row from the registry tables, children before parents.

Tables and promoted columns stay in place.  Asks for confirmation unless
--yes is given.

Usage:
    python3 scripts/clear_database.py [--db-url URL] [--config FILE] [--yes]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Empty all registry tables.")
    p.add_argument("--db-url", default=None, help="Database URL (default: from settings)")
    p.add_argument("--config", type=Path, default=None, help="Settings YAML")
    p.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from sqlalchemy.exc import SQLAlchemyError

    from registry_config import load_settings
    from registry_kernel.db.engine import init_engine_from_url, truncate_tables
    from registry_kernel.exceptions import RegistryError

    import registry_ingestion.models  # noqa: F401

    try:
        settings = load_settings(args.config)
    except RegistryError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    url = args.db_url or settings.database_url

    if not args.yes:
        answer = input(f"Delete ALL registry data in {url}? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1

    engine = None
    try:
        engine = init_engine_from_url(url)
        cleared = truncate_tables(engine)
    except SQLAlchemyError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if engine is not None:
            engine.dispose()

    print(f"Cleared {len(cleared)} tables: {', '.join(cleared)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
