#!/usr/bin/env python3
"""
Ingest one registry JSON document.

Prints the run summary as JSON on stdout and exits 0; on any failure the
error goes to stderr and the exit code is 1.

Usage:
    python3 scripts/ingest.py PATH [--db-url URL] [--config FILE] [--source NAME]

Examples:
    python3 scripts/ingest.py company.json
    DATABASE_URL=sqlite:///registry.db python3 scripts/ingest.py company.json --source it-full
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ingest a registry JSON document into the store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("path", type=Path, help="Path to the JSON document.")
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: DATABASE_URL env, then config file).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: config/registry.yaml).",
    )
    parser.add_argument(
        "--source",
        default=None,
        help="Source name recorded on the run (default: settings source_name).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so argument errors fail fast
    from dataclasses import replace

    from sqlalchemy.exc import SQLAlchemyError

    from registry_config import load_settings
    from registry_kernel.db.engine import create_tables, init_engine_from_url, make_session_factory
    from registry_kernel.exceptions import RegistryError
    from registry_kernel.logging_config import configure_logging
    from registry_kernel.utils.hashing import to_json_safe

    import registry_ingestion.models  # noqa: F401  (register tables)
    from registry_ingestion.services.ingestion_service import IngestionService

    try:
        settings = load_settings(args.config)
    except RegistryError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    if args.db_url:
        settings = replace(settings, database_url=args.db_url)

    configure_logging(level=settings.log_level)

    engine = None
    try:
        engine = init_engine_from_url(
            settings.database_url,
            echo=settings.echo_sql,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
        create_tables(engine)
        service = IngestionService(make_session_factory(engine), settings=settings)
        result = service.ingest_file(args.path, source_name=args.source)
    except (RegistryError, SQLAlchemyError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if engine is not None:
            engine.dispose()

    output = {"ok": True, "entity_id": str(result.entity_id), "report": result.summary}
    print(json.dumps(to_json_safe(output), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
