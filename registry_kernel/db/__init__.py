"""Database layer - engine, base classes, portable types, upsert helpers."""

from registry_kernel.db.base import (
    UUID,
    Base,
    CreatedAtMixin,
    JSONDocument,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    UUIDString,
)
from registry_kernel.db.dialect import dialect_name, upsert_insert
from registry_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    make_session_factory,
    session_scope,
    truncate_tables,
)

__all__ = [
    "init_engine_from_url",
    "make_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "truncate_tables",
    "dialect_name",
    "upsert_insert",
    "Base",
    "UUIDPrimaryKeyMixin",
    "CreatedAtMixin",
    "TimestampMixin",
    "UUIDString",
    "JSONDocument",
    "UUID",
]
