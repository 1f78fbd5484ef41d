"""
Module: registry_kernel.db.base
Responsibility: Declarative base classes and portable column types for all
    SQLAlchemy ORM models.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from registry_ingestion or outer layers.

Invariants enforced:
    - UUIDs are stored as String(36) so the schema runs on PostgreSQL and on
      SQLite (test suite) without change.
    - JSON payloads use JSONB on PostgreSQL and the generic JSON type
      elsewhere; raw payloads survive a round trip structurally unchanged.
    - Decimal maps to Numeric(38, 9): financial amounts never use float.
    - datetime maps to DateTime(timezone=True).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import JSON, BigInteger, DateTime, Numeric, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import String, TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


# JSONB on PostgreSQL, plain JSON elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Declarative base for all registry models.

    Guarantees:
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - UUID maps to UUIDString.
        - int maps to BigInteger.
        - dict/list (JSON payloads) map to JSONDocument.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
        dict[str, Any]: JSONDocument,
        list[Any]: JSONDocument,
    }


class UUIDPrimaryKeyMixin:
    """Surrogate uuid4 primary key named ``id``."""

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class CreatedAtMixin:
    """Server-side creation timestamp; never changes after INSERT."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """Creation timestamp plus an ``updated_at`` refreshed on every UPDATE."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# Re-export UUID for convenience
UUID = PyUUID
