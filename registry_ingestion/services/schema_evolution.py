"""
Module: registry_ingestion.services.schema_evolution
Responsibility: Promote previously unseen scalar document fields to typed
    columns, and create facet tables on first use.
Architecture position: Ingestion > Services.  Depends on registry_kernel.db
    and registry_ingestion.models only.  Never commits.

Invariants enforced:
    - Column names are lower snake_case, [a-z0-9_] only, at most
      ``column_name_max_length`` characters.
    - Reserved columns (id, entity_id, effective_date, raw_json, created_at,
      updated_at) are never promotion targets.
    - Only scalar values are promoted.  Dicts and lists stay in raw_json.
    - ALTER TABLE runs inside a SAVEPOINT.  A failed ALTER whose column now
      exists (another process created it) counts as satisfied.
    - A column is created at most once per manager; lookups are cached and
      the cache entry is dropped whenever this manager alters the table.

Failure modes:
    - InvalidColumnNameError: the field name normalizes to nothing, or to a
      reserved column.
    - UnknownTableError: column requested on a table that does not exist.
    - sqlalchemy.exc.DBAPIError: ALTER failed for any reason other than the
      column already existing.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    inspect,
    text,
)
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.types import TypeEngine

from registry_kernel.db.base import Base, JSONDocument, UUIDString
from registry_kernel.exceptions import InvalidColumnNameError, UnknownTableError
from registry_kernel.logging_config import get_logger

from registry_ingestion.domain.effective_date import parse_datetime
from registry_ingestion.domain.paths import MISSING, is_scalar
from registry_ingestion.domain.types import ColumnChange, ColumnKind
from registry_ingestion.domain.values import to_decimal
from registry_ingestion.models.registry import RESERVED_COLUMNS

logger = get_logger("ingestion.schema_evolution")

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s\-.]+")
_INVALID_CHARS = re.compile(r"[^a-z0-9_]")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")

_TRUE_STRINGS = frozenset({"true", "t", "yes", "y", "1"})
_FALSE_STRINGS = frozenset({"false", "f", "no", "n", "0"})

KIND_TYPES: dict[ColumnKind, TypeEngine] = {
    ColumnKind.TEXT: Text(),
    ColumnKind.BOOLEAN: Boolean(),
    ColumnKind.INTEGER: BigInteger(),
    ColumnKind.DECIMAL: Numeric(38, 9),
    ColumnKind.TIMESTAMP: DateTime(timezone=True),
    ColumnKind.DATE: Date(),
}


def to_column_name(field_name: str, max_length: int = 60) -> str:
    """
    Storage-safe column name for a document field.

    ``lastUpdateDate`` -> ``last_update_date``; ``zip-code`` -> ``zip_code``.
    Returns "" when nothing usable remains.
    """
    name = _CAMEL_BOUNDARY.sub(r"\1_\2", str(field_name))
    name = _SEPARATORS.sub("_", name).lower()
    name = _INVALID_CHARS.sub("_", name).strip("_")
    name = re.sub(r"_+", "_", name)
    if name and name[0].isdigit():
        name = f"f_{name}"
    return name[:max_length].rstrip("_")


def infer_column_kind(sample: Any) -> ColumnKind:
    """Storage kind for a sample value."""
    if sample is None:
        return ColumnKind.TEXT
    if isinstance(sample, bool):
        return ColumnKind.BOOLEAN
    if isinstance(sample, int):
        return ColumnKind.INTEGER
    if isinstance(sample, (float, Decimal)):
        if isinstance(sample, float) and sample.is_integer():
            return ColumnKind.INTEGER
        if isinstance(sample, Decimal) and sample.is_finite() and sample == sample.to_integral_value():
            return ColumnKind.INTEGER
        return ColumnKind.DECIMAL
    if isinstance(sample, str):
        value = sample.strip()
        if _ISO_DATE.match(value):
            try:
                date.fromisoformat(value)
                return ColumnKind.DATE
            except ValueError:
                return ColumnKind.TEXT
        if _ISO_DATETIME.match(value) and parse_datetime(value) is not None:
            return ColumnKind.TIMESTAMP
    return ColumnKind.TEXT


def kind_of_type(column_type: TypeEngine) -> ColumnKind:
    """Map a reflected column type back to a ColumnKind."""
    if isinstance(column_type, Boolean):
        return ColumnKind.BOOLEAN
    if isinstance(column_type, Integer):
        return ColumnKind.INTEGER
    if isinstance(column_type, Numeric):
        return ColumnKind.DECIMAL
    if isinstance(column_type, DateTime):
        return ColumnKind.TIMESTAMP
    if isinstance(column_type, Date):
        return ColumnKind.DATE
    return ColumnKind.TEXT


def coerce_value(kind: ColumnKind, value: Any) -> Any:
    """
    Convert ``value`` for a column of ``kind``.

    None passes through.  Returns MISSING when the value cannot be stored in
    that column without losing meaning.
    """
    if value is None:
        return None

    if kind is ColumnKind.TEXT:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (str, int, float, Decimal)):
            return str(value)
        return MISSING

    if kind is ColumnKind.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return MISSING

    if isinstance(value, bool):
        return MISSING

    if kind is ColumnKind.INTEGER:
        if isinstance(value, int):
            return value
        number = to_decimal(value)
        if number is None or number != number.to_integral_value():
            return MISSING
        return int(number)

    if kind is ColumnKind.DECIMAL:
        number = to_decimal(value)
        return MISSING if number is None else number

    if kind is ColumnKind.TIMESTAMP:
        parsed = parse_datetime(value) if isinstance(value, (str, datetime)) else None
        return MISSING if parsed is None else parsed

    if kind is ColumnKind.DATE:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            parsed = parse_datetime(value)
            if parsed is not None:
                return parsed.date()
        return MISSING

    return MISSING


def minimal_table(name: str, metadata: MetaData) -> Table:
    """Default shape for a facet table that has no declared model."""
    return Table(
        name,
        metadata,
        Column("id", UUIDString(), primary_key=True),
        Column(
            "entity_id",
            UUIDString(),
            ForeignKey("companies.entity_id", ondelete="CASCADE"),
            nullable=False,
        ),
        Column("effective_date", DateTime(timezone=True), nullable=False),
        Column("raw_json", JSONDocument),
        Column("created_at", DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP")),
    )


class SchemaEvolutionManager:
    """
    Runtime column and table promotion for facet tables.

    One manager per ingestion run.  Bound to the run's Session, so every DDL
    statement joins the run's transaction.
    """

    def __init__(self, session: Session, column_name_max_length: int = 60):
        self._session = session
        self._max_length = column_name_max_length
        self._columns: dict[str, dict[str, ColumnKind]] = {}
        self._tables: dict[str, Table] = {}
        self._undeclared = MetaData()
        # Undeclared tables reference companies; make it resolvable
        Base.metadata.tables["companies"].to_metadata(self._undeclared)

    def to_column_name(self, field_name: str) -> str:
        return to_column_name(field_name, self._max_length)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def ensure_table(self, table: str) -> Table:
        """
        Create ``table`` if it does not exist and return its Table.

        Declared tables are created from their model; any other name gets
        the minimal facet shape.
        """
        if table in self._tables:
            return self._tables[table]

        declared = Base.metadata.tables.get(table)
        target = declared if declared is not None else minimal_table(table, self._undeclared)
        connection = self._session.connection()
        if not inspect(connection).has_table(table):
            target.create(bind=connection, checkfirst=True)
            logger.info(
                "table_created",
                extra={"table": table, "declared": declared is not None},
            )
        self._tables[table] = target
        return target

    def columns(self, table: str) -> dict[str, ColumnKind]:
        """Existing columns of ``table`` and their kinds (cached)."""
        cached = self._columns.get(table)
        if cached is not None:
            return cached
        inspector = inspect(self._session.connection())
        if not inspector.has_table(table):
            raise UnknownTableError(table)
        found = {
            col["name"]: kind_of_type(col["type"])
            for col in inspector.get_columns(table)
        }
        self._columns[table] = found
        return found

    def invalidate(self, table: str | None = None) -> None:
        if table is None:
            self._columns.clear()
        else:
            self._columns.pop(table, None)

    def reset(self) -> None:
        """Forget every cached table and column (after a rolled-back SAVEPOINT)."""
        self._columns.clear()
        self._tables.clear()

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def ensure_column(self, table: str, field_name: str, sample_value: Any) -> ColumnChange:
        """
        Make sure ``table`` has a column for ``field_name``.

        Returns a ColumnChange; ``created`` is True only when this call
        added the column.
        """
        column = self.to_column_name(field_name)
        if not column or column in RESERVED_COLUMNS:
            raise InvalidColumnNameError(table, str(field_name))

        existing = self.columns(table)
        if column in existing:
            return ColumnChange(table=table, column=column, kind=existing[column], created=False)

        if not is_scalar(sample_value) and not isinstance(sample_value, Decimal):
            sample_value = None
        kind = infer_column_kind(sample_value)
        created = self._add_column(table, column, kind)

        self.invalidate(table)
        actual = self.columns(table).get(column, kind)
        change = ColumnChange(table=table, column=column, kind=actual, created=created)
        if created:
            logger.info(
                "column_promoted",
                extra={"table": table, "column": column, "column_type": kind.value},
            )
        return change

    def _add_column(self, table: str, column: str, kind: ColumnKind) -> bool:
        """ALTER TABLE ... ADD COLUMN; False when a concurrent creator won."""
        dialect = self._session.get_bind().dialect
        preparer = dialect.identifier_preparer
        ddl = (
            f"ALTER TABLE {preparer.quote(table)} "
            f"ADD COLUMN {preparer.quote(column)} {KIND_TYPES[kind].compile(dialect=dialect)}"
        )
        try:
            with self._session.begin_nested():
                self._session.execute(text(ddl))
        except DBAPIError as exc:
            self.invalidate(table)
            if column in self.columns(table):
                logger.info(
                    "column_already_exists",
                    extra={"table": table, "column": column, "error_msg": str(exc.orig)},
                )
                return False
            raise
        return True
