"""
Module: estate_kernel.db.base
Responsibility: Declarative base classes for every ORM model in the estate
    engine: UUID primary keys, the type annotation map, the TrackedBase
    audit mixin.  Versioned aggregates declare their own ``version`` column
    and ``version_id_col`` mapper argument.
Architecture position: Kernel > DB.  Lowest-level import target; MUST NOT
    import from models/, services/, selectors/, domain/, or outer packages.

Invariants enforced:
    - Decimal maps to Numeric(38, 9) for money and area alike. No floats.
    - Every versioned aggregate bumps ``version`` on UPDATE; a concurrent
      writer holding a stale version fails with StaleDataError, which the
      unit of work surfaces as OptimisticLockError.

Failure modes:
    - StaleDataError on a versioned UPDATE whose row changed underneath.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all estate models.

    Guarantees:
        - id is a uuid4 stored as String(36).
        - Decimal -> Numeric(38, 9), date -> Date, datetime -> timezone-aware.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger().with_variant(Integer, "sqlite"),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base recording who created and last touched a row.

    ``updated_at`` / ``updated_by_id`` are audit metadata and may change
    even on rows that are otherwise immutable (see db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)

    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


UUID = PyUUID
