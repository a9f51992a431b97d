"""
StockMovement -- the one parameterised primitive behind every stock change.

Responsibility:
    Purchase, increase adjustment and transfer receipt move stock IN (a new
    batch).  Sale, decrease adjustment and transfer send move stock OUT
    (candidate query, pure allocation, conditional decrement per batch).
    Shrinking or deleting an out-line RELEASES stock back to the batches it
    came from, most recent draw first.

Architecture position:
    Services -- composes BatchSelector, BatchLedger and the pure engines.
    Never commits; the recorder that called it owns the unit of work.

Failure modes:
    - ProductNotFoundError: stock-in for a product the catalog lacks.
    - InsufficientStockError: allocation shortfall, or a batch decremented
      by a concurrent writer between the candidate query and the update.
    - BatchCapacityExceededError: a release that would overfill a batch.
"""

from __future__ import annotations

from collections.abc import Callable, MutableSequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from stock_engines.allocation import AllocationCandidate, AllocationEngine
from stock_engines.transit import TransitEngine, TransitPlan
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import AllocationEntry
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import InsufficientStockError, ProductNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Product
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.services.batch_ledger import BatchLedger

logger = get_logger("services.stock_movement")


class StockMovement:
    """
    Stock in, stock out and release.

    Contract:
        ``stock_out`` either applies every decrement of its plan or raises
        before returning; the enclosing unit of work rolls back any partial
        decrements.
    Non-goals:
        - Does NOT run the availability pre-check; callers do that first.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: BatchLedger | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = ledger or BatchLedger(session, self._clock)
        self._selector = BatchSelector(session)
        self._allocation = AllocationEngine()
        self._transit = TransitEngine()

    @property
    def ledger(self) -> BatchLedger:
        return self._ledger

    def stock_in(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        expiry_date: date | None = None,
    ) -> AllocationEntry:
        """Create a new batch and return the allocation line pointing at it."""
        if self._session.get(Product, product_id) is None:
            raise ProductNotFoundError(str(product_id))

        batch = self._ledger.create_batch(
            product_id=product_id,
            location_id=location_id,
            quantity=quantity,
            unit_cost=unit_cost,
            actor_id=actor_id,
            expiry_date=expiry_date,
        )
        return AllocationEntry(batch_id=batch.id, quantity=batch.total_quantity)

    def stock_out(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        policy: InventoryPolicy,
    ) -> tuple[AllocationEntry, ...]:
        """
        Draw ``quantity`` from live batches in ``policy`` order.

        Raises:
            InsufficientStockError: the candidates cannot cover the request.
        """
        snapshots = self._selector.candidate_batches(
            product_id, location_id, policy, today=self._clock.today()
        )
        plan = self._allocation.allocate(
            requested=quantity,
            candidates=[AllocationCandidate.from_snapshot(s) for s in snapshots],
        )
        if not plan.is_complete:
            raise InsufficientStockError(
                product_id=str(product_id),
                location_id=str(location_id),
                available=plan.allocated,
                requested=quantity,
            )

        for line in plan.lines:
            self._ledger.adjust_stock(line.batch_id, -line.quantity)

        logger.info(
            "stock_out_applied",
            extra={
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": str(quantity),
                "inventory_method": policy.method.value,
                "batches": [str(line.batch_id) for line in plan.lines],
            },
        )
        return plan.lines

    def release(self, allocations: MutableSequence[Any], quantity: Decimal) -> TransitPlan:
        """
        Give ``quantity`` back to the batches an out-line drew from.

        ``allocations`` is the line's ordered collection of allocation rows
        (anything with ``batch_id`` and ``quantity``).  Walked in reverse;
        rows released in full are removed from the collection, others shrink
        in place.

        Raises:
            ValueError: ``quantity`` exceeds what the rows hold.
        """
        entries = [AllocationEntry(batch_id=row.batch_id, quantity=row.quantity) for row in allocations]
        plan = self._transit.plan_release(requested=quantity, entries=entries)
        if not plan.is_complete:
            raise ValueError(
                f"Cannot release {quantity}: allocation lines hold only {plan.fulfilled}"
            )

        doomed = []
        for step in plan.steps:
            self._ledger.adjust_stock(step.batch_id, step.quantity)
            row = allocations[step.index]
            if step.remove_entry:
                doomed.append(row)
            else:
                row.quantity = row.quantity - step.quantity
        for row in doomed:
            allocations.remove(row)
        self._session.flush()

        logger.info(
            "stock_released",
            extra={
                "quantity": str(quantity),
                "batches": [str(step.batch_id) for step in plan.steps],
            },
        )
        return plan

    def resize_out(
        self,
        allocations: MutableSequence[Any],
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        policy: InventoryPolicy,
        make_row: Callable[[AllocationEntry, int], Any],
    ) -> None:
        """
        Bring an out-line's allocation rows to ``quantity`` in total.

        Shrinking releases the difference (reverse walk); growing draws the
        difference with a fresh allocation and appends one row per batch via
        ``make_row(entry, position)``.
        """
        current = sum((row.quantity for row in allocations), Decimal("0"))
        if quantity < current:
            self.release(allocations, current - quantity)
        elif quantity > current:
            entries = self.stock_out(product_id, location_id, quantity - current, policy)
            position = max((row.position for row in allocations), default=-1) + 1
            for offset, entry in enumerate(entries):
                allocations.append(make_row(entry, position + offset))
            self._session.flush()
