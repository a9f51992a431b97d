"""
Module: stock_kernel.models.batch
Responsibility: ORM persistence for stock batches.  A batch is one dated,
    cost-tagged lot of a single product at a single location; every physical
    unit of stock lives in exactly one batch.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/ or outer layers.

Invariants enforced:
    B1 -- total_quantity > 0 (CHECK constraint).
    B2 -- unit_cost > 0 (CHECK constraint).
    B3 -- 0 <= quantity_in_stock <= total_quantity (CHECK constraint).  The
          service layer guarantees this with a conditional UPDATE; the
          constraint is the last line of defence.
    B4 -- quantity_in_stock changes ONLY through BatchLedger.adjust_stock
          (or resize_batch for line edits), inside a unit of work that also
          writes the matching allocation line.
    B5 -- created_at defines FIFO/LIFO order; (product_id, location_id,
          created_at) is indexed for the candidate query.

Failure modes:
    - IntegrityError if a CHECK constraint is violated by a direct write.

Audit relevance:
    Batches are never deleted once consumed; an exhausted batch
    (quantity_in_stock == 0) stays queryable.  The only deletion path is
    removing a purchase/increase line whose batch was never touched.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import ActorTrackedBase, UUIDString


class Batch(ActorTrackedBase):
    """
    One lot of stock for one product at one location.

    Contract:
        Created by a purchase line, an increase-adjustment line or a transfer
        receive.  Callers never assign quantity_in_stock directly after
        creation.

    Guarantees:
        - B1-B3 hold at every commit (CHECK constraints).
        - expiry_date is null when expiry tracking was off at creation time.
    """

    __tablename__ = "batches"

    __table_args__ = (
        CheckConstraint("total_quantity > 0", name="ck_batch_total_positive"),
        CheckConstraint("unit_cost > 0", name="ck_batch_unit_cost_positive"),
        CheckConstraint("quantity_in_stock >= 0", name="ck_batch_stock_non_negative"),
        CheckConstraint(
            "quantity_in_stock <= total_quantity",
            name="ck_batch_stock_within_total",
        ),
        # Query: candidate batches for allocation (FIFO/LIFO)
        Index("idx_batch_product_location_created", "product_id", "location_id", "created_at"),
        # Query: FEFO ordering
        Index("idx_batch_product_location_expiry", "product_id", "location_id", "expiry_date"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # INVARIANT B1: immutable after creation except through a line edit
    total_quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    # INVARIANT B3/B4
    quantity_in_stock: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    expiry_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    @property
    def consumed_quantity(self) -> Decimal:
        """Units that have left this batch (sold, transferred, adjusted out)."""
        return self.total_quantity - self.quantity_in_stock

    @property
    def is_untouched(self) -> bool:
        return self.quantity_in_stock == self.total_quantity

    def __repr__(self) -> str:
        return (
            f"<Batch {self.id}: product={self.product_id} "
            f"stock={self.quantity_in_stock}/{self.total_quantity} @ {self.unit_cost}>"
        )
