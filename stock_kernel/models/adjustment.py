"""
Module: stock_kernel.models.adjustment
Responsibility: ORM persistence for stock adjustments -- non-trade stock
    corrections (damage, count differences, samples).
Architecture position: Kernel > Models.

Invariants enforced:
    A1 -- sequence_id is unique (ADJ-INC-n / ADJ-DEC-n).
    A2 -- An increase line owns exactly one allocation line (its new batch);
          a decrease line owns one per batch it drew from, by ``position``.
    A3 -- reason is NOT NULL.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import ActorTrackedBase, Base, UUIDString
from stock_kernel.domain.policy import AdjustmentType


class StockAdjustment(ActorTrackedBase):
    __tablename__ = "stock_adjustments"

    __table_args__ = (
        Index("idx_adjustment_location", "location_id"),
    )

    # INVARIANT A1
    sequence_id: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        String(20),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # INVARIANT A3
    reason: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
    )

    lines: Mapped[list[StockAdjustmentLine]] = relationship(
        back_populates="adjustment",
        cascade="all, delete-orphan",
        order_by="StockAdjustmentLine.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<StockAdjustment {self.sequence_id} ({self.adjustment_type})>"


class StockAdjustmentLine(Base):
    __tablename__ = "stock_adjustment_lines"

    __table_args__ = (
        Index("idx_adjustment_line_adjustment", "adjustment_id"),
    )

    adjustment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_adjustments.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Estimated unit cost; increases only
    unit_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    adjustment: Mapped[StockAdjustment] = relationship(back_populates="lines")

    # INVARIANT A2
    batches: Mapped[list[StockAdjustmentLineBatch]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="StockAdjustmentLineBatch.position",
        lazy="selectin",
    )

    @property
    def quantity(self) -> Decimal:
        return sum((b.quantity for b in self.batches), Decimal("0"))


class StockAdjustmentLineBatch(Base):
    __tablename__ = "stock_adjustment_line_batches"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_adj_line_batch_quantity_positive"),
        Index("idx_adj_line_batch_line", "line_id"),
        Index("idx_adj_line_batch_batch", "batch_id"),
    )

    line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_adjustment_lines.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    line: Mapped[StockAdjustmentLine] = relationship(back_populates="batches")
