"""
Dialect-aware INSERT ... ON CONFLICT helpers.

PostgreSQL and SQLite both support ``ON CONFLICT`` but through their own
``insert()`` constructs.  Services call ``upsert_insert`` and never branch
on the dialect themselves.
"""

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def dialect_name(session: Session) -> str:
    """Name of the dialect the session is bound to ("postgresql", "sqlite")."""
    return session.get_bind().dialect.name


def upsert_insert(session: Session, table: Table | Any) -> Any:
    """
    Return a dialect-specific INSERT supporting ``on_conflict_do_nothing`` and
    ``on_conflict_do_update``.

    Raises:
        NotImplementedError: for dialects without ON CONFLICT support.
    """
    name = dialect_name(session)
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"ON CONFLICT upsert not supported for dialect {name!r}")
