"""
Module: stock_kernel.selectors.batch_selector
Responsibility: Read side of the batch ledger -- stock balances and the
    ordered candidate-batch query that feeds the allocation engine.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Live batch: quantity_in_stock > 0 and, when expiry is considered,
      ``expiry_date IS NULL OR expiry_date > today``.  A batch expiring
      today is already expired.
    - Candidate ordering:
        FIFO  created_at ASC
        LIFO  created_at DESC
        FEFO  expiry_date ASC NULLS LAST, then created_at ASC
      with batch id as the final tie-break so the order is total.
    - stock_balance is never negative (clamped to 0).

Failure modes:
    - None beyond driver errors; empty results are valid.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from stock_kernel.domain.dtos import BatchSnapshot, StockLevel
from stock_kernel.domain.policy import InventoryMethod, InventoryPolicy
from stock_kernel.models.batch import Batch
from stock_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


def _snapshot(batch: Batch) -> BatchSnapshot:
    return BatchSnapshot(
        batch_id=batch.id,
        product_id=batch.product_id,
        location_id=batch.location_id,
        total_quantity=batch.total_quantity,
        quantity_in_stock=batch.quantity_in_stock,
        unit_cost=batch.unit_cost,
        expiry_date=batch.expiry_date,
        created_at=batch.created_at,
    )


class BatchSelector(BaseSelector):
    """
    Stock balance and candidate batch queries.

    Contract:
        ``today`` is supplied by the caller (from its Clock) whenever expiry
        is considered; the selector never reads the wall clock.
    """

    def _live_filters(self, product_id: UUID, location_id: UUID, expiry_considered: bool, today: date | None):
        filters = [
            Batch.product_id == product_id,
            Batch.location_id == location_id,
            Batch.quantity_in_stock > 0,
        ]
        if expiry_considered:
            if today is None:
                raise ValueError("today is required when expiry is considered")
            filters.append(or_(Batch.expiry_date.is_(None), Batch.expiry_date > today))
        return filters

    def stock_balance(
        self,
        product_id: UUID,
        location_id: UUID,
        expiry_considered: bool = False,
        today: date | None = None,
    ) -> Decimal:
        """Sum of quantity_in_stock over live batches of product at location."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Batch.quantity_in_stock), 0)).where(
                *self._live_filters(product_id, location_id, expiry_considered, today)
            )
        ).scalar_one()
        balance = Decimal(str(total))
        return balance if balance > _ZERO else _ZERO

    def candidate_batches(
        self,
        product_id: UUID,
        location_id: UUID,
        policy: InventoryPolicy,
        today: date | None = None,
    ) -> list[BatchSnapshot]:
        """Live batches in allocation order for ``policy.method``."""
        stmt = select(Batch).where(
            *self._live_filters(product_id, location_id, policy.expiry_considered, today)
        )
        match policy.method:
            case InventoryMethod.FIFO:
                stmt = stmt.order_by(Batch.created_at.asc(), Batch.id.asc())
            case InventoryMethod.LIFO:
                stmt = stmt.order_by(Batch.created_at.desc(), Batch.id.desc())
            case InventoryMethod.FEFO:
                stmt = stmt.order_by(
                    Batch.expiry_date.is_(None).asc(),
                    Batch.expiry_date.asc(),
                    Batch.created_at.asc(),
                    Batch.id.asc(),
                )
            case _:
                raise ValueError(f"Unknown inventory method: {policy.method}")

        stmt = stmt.execution_options(populate_existing=True)
        return [_snapshot(b) for b in self.session.execute(stmt).scalars()]

    def batches_for(
        self,
        product_id: UUID,
        location_id: UUID,
        include_exhausted: bool = True,
    ) -> list[BatchSnapshot]:
        """All batches of product at location, oldest first (audit listing)."""
        stmt = select(Batch).where(
            Batch.product_id == product_id,
            Batch.location_id == location_id,
        )
        if not include_exhausted:
            stmt = stmt.where(Batch.quantity_in_stock > 0)
        stmt = stmt.order_by(Batch.created_at.asc(), Batch.id.asc())
        return [_snapshot(b) for b in self.session.execute(stmt).scalars()]

    def stock_levels(
        self,
        location_id: UUID,
        expiry_considered: bool = False,
        today: date | None = None,
    ) -> list[StockLevel]:
        """Per-product balance at a location; products with no stock omitted."""
        stmt = (
            select(Batch.product_id, func.sum(Batch.quantity_in_stock))
            .where(Batch.location_id == location_id, Batch.quantity_in_stock > 0)
            .group_by(Batch.product_id)
        )
        if expiry_considered:
            if today is None:
                raise ValueError("today is required when expiry is considered")
            stmt = stmt.where(or_(Batch.expiry_date.is_(None), Batch.expiry_date > today))

        return [
            StockLevel(
                product_id=product_id,
                location_id=location_id,
                quantity=Decimal(str(quantity)),
            )
            for product_id, quantity in self.session.execute(stmt)
        ]
