"""
Module: stock_kernel.db.base
Responsibility: Declarative base shared by batches, stock documents and
    their allocation lines.  Fixes how ids, quantities and timestamps map to
    columns so every table in the ledger agrees on them.
Architecture position: Kernel > DB.  Imported by every model module; imports
    nothing from the kernel itself.

Invariants enforced:
    - Row ids are uuid4 values held in a 36-character string column, so the
      SQLite test store and PostgreSQL produce identical rows.
    - A bare ``Mapped[Decimal]`` becomes Numeric(38, 9).  Stock quantities and
      unit costs never round-trip through a float.
    - Batches and document headers carry ``created_by_id`` and a
      clock-supplied ``created_at``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """A UUID on the Python side, its canonical string in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Root of the stock ledger schema."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(38, 9),
        date: Date(),
        datetime: DateTime(timezone=True),
        # sequence counters outgrow 32 bits long before a store closes
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class ActorTrackedBase(Base):
    """
    Rows that record who created them and who last edited them, and when.

    ``created_at`` has no server default: the writing service stamps it from
    its Clock, because batch consumption order is read from it.  The
    ``updated_*`` pair stays null until the first edit.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)

    def mark_updated(self, actor_id: PyUUID, at: datetime) -> None:
        self.updated_by_id = actor_id
        self.updated_at = at


UUID = PyUUID
