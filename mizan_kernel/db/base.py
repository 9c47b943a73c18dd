"""
Module: mizan_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the type annotation map for consistent column types and the
    TrackedBase mixin for creation audit fields.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, domain/ or outer layers.

Invariants enforced:
    - Decimal precision: Decimal maps to Numeric(18, 2).  Amounts are
      rounded half-up to cents before they reach the database, so two
      places are enough and comparisons stay exact.  NEVER use float.
    - Timestamps are stored and read back in UTC (UTCDateTime).
    - Primary keys are declared per model: business documents keep the id
      the caller gives them, ledger lines and reconciliation records use
      uuid4 via UUIDString.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
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


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always reads back in UTC.

    SQLite drops the offset of DateTime(timezone=True) columns, so the
    offset is normalised here for every backend.

    Guarantees:
        - process_bind_param: rejects naive datetimes, converts to UTC.
        - process_result_value: naive values are UTC by construction and
          get tzinfo=UTC attached; aware values are converted to UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r} cannot be stored; attach a timezone")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model inherits from Base (or TrackedBase) and declares its
        own primary key.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: UTCDateTime(),
        date: Date,
        PyUUID: UUIDString(),
    }


class TrackedBase(Base):
    """
    Abstract base with creation timestamp and actor.

    The actor is an opaque string handed over by the caller (the identity
    service lives outside the core).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    created_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="system",
    )


UUID = PyUUID
