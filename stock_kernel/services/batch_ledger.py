"""
BatchLedger -- the write side of the batch store.

Responsibility:
    Creates batches (stock-in) and moves ``quantity_in_stock`` up or down
    through the single ``adjust_stock`` primitive.  Also hosts the two
    line-edit operations that touch a batch's totals: resizing a batch
    created by a purchase/increase line, and deleting such a batch while
    it is still untouched.

Architecture position:
    Kernel > Services -- imperative shell.  Used by the stock-movement
    primitive and the transfer service; never by engines.

Invariants enforced:
    L1 -- Non-negativity: decrements run as one conditional UPDATE
          (``... WHERE quantity_in_stock >= n``).  Two concurrent decrements
          against the same batch cannot both succeed into negative stock;
          the loser sees zero affected rows and gets InsufficientStockError.
    L2 -- Increments are bounded by total_quantity (``... WHERE
          quantity_in_stock + n <= total_quantity``); restoring stock can
          never manufacture units.
    L3 -- Resize keeps the consumed amount fixed:
          new in_stock = new total - (old total - old in_stock).

Failure modes:
    - InsufficientStockError: decrement larger than the batch holds.
    - BatchCapacityExceededError: increment past total_quantity.
    - BatchNotFoundError: unknown batch id.
    - QuantityBelowConsumedError / LineDeletionNotAllowedError: line edits
      that would orphan already-consumed units.

Audit relevance:
    Every stock movement is logged at INFO (``stock_adjusted``) with batch
    id and signed delta.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from stock_kernel.db.types import to_quantity
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    BatchCapacityExceededError,
    BatchNotFoundError,
    InsufficientStockError,
    LineDeletionNotAllowedError,
    QuantityBelowConsumedError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch

logger = get_logger("services.batch_ledger")

_ZERO = Decimal("0")


class BatchLedger:
    """
    Batch creation and atomic stock movement.

    Contract:
        All quantity_in_stock mutation goes through ``adjust_stock``; callers
        never assign the column directly.

    Guarantees:
        - L1/L2 hold under concurrency without application-level locks.

    Non-goals:
        - Does NOT commit; the calling recorder owns the unit of work.
        - Does NOT choose batches; that is the allocation engine's job.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def create_batch(
        self,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        expiry_date: date | None = None,
    ) -> Batch:
        """
        Stock-in: a new batch with quantity_in_stock == total_quantity.

        Preconditions:
            quantity > 0 and unit_cost > 0 (validated upstream; the CHECK
            constraints reject anything else at flush).
        """
        quantity = to_quantity(quantity)
        batch = Batch(
            product_id=product_id,
            location_id=location_id,
            total_quantity=quantity,
            quantity_in_stock=quantity,
            unit_cost=to_quantity(unit_cost),
            expiry_date=expiry_date,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(batch)
        self._session.flush()

        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "product_id": str(product_id),
                "location_id": str(location_id),
                "quantity": str(quantity),
                "unit_cost": str(batch.unit_cost),
                "expiry_date": expiry_date.isoformat() if expiry_date else None,
            },
        )
        return batch

    def get_batch(self, batch_id: UUID, lock: bool = False) -> Batch:
        """
        Load a batch, optionally with ``SELECT ... FOR UPDATE``.

        Raises:
            BatchNotFoundError: no such batch.
        """
        stmt = select(Batch).where(Batch.id == batch_id)
        if lock:
            stmt = stmt.with_for_update()
        batch = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def adjust_stock(self, batch_id: UUID, delta: Decimal) -> None:
        """
        Atomically add ``delta`` (signed) to a batch's quantity_in_stock.

        Postconditions:
            - On success the row changed by exactly ``delta`` and any copy of
              the batch in this session is expired so it reloads.
            - On failure nothing changed.

        Raises:
            InsufficientStockError: decrement exceeds current stock (L1).
            BatchCapacityExceededError: increment exceeds total (L2).
            BatchNotFoundError: unknown batch.
        """
        delta = to_quantity(delta)
        if delta == _ZERO:
            return

        stmt = update(Batch).where(Batch.id == batch_id)
        if delta < _ZERO:
            # INVARIANT: L1 -- conditional decrement
            stmt = stmt.where(Batch.quantity_in_stock >= -delta)
        else:
            # INVARIANT: L2
            stmt = stmt.where(Batch.quantity_in_stock + delta <= Batch.total_quantity)
        stmt = stmt.values(quantity_in_stock=Batch.quantity_in_stock + delta)

        result = self._session.execute(
            stmt, execution_options={"synchronize_session": False}
        )

        if result.rowcount == 1:
            cached = self._session.identity_map.get(identity_key(Batch, batch_id))
            if cached is not None:
                self._session.expire(cached, ["quantity_in_stock"])
            logger.info(
                "stock_adjusted",
                extra={"batch_id": str(batch_id), "delta": str(delta)},
            )
            return

        batch = self._session.get(Batch, batch_id, populate_existing=True)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))

        if delta < _ZERO:
            logger.warning(
                "stock_decrement_rejected",
                extra={
                    "batch_id": str(batch_id),
                    "available": str(batch.quantity_in_stock),
                    "requested": str(-delta),
                },
            )
            raise InsufficientStockError(
                product_id=str(batch.product_id),
                location_id=str(batch.location_id),
                available=batch.quantity_in_stock,
                requested=-delta,
                batch_id=str(batch_id),
            )

        logger.error(
            "stock_increment_rejected",
            extra={"batch_id": str(batch_id), "delta": str(delta)},
        )
        raise BatchCapacityExceededError(str(batch_id), delta)

    def resize_batch(
        self,
        batch_id: UUID,
        total_quantity: Decimal,
        unit_cost: Decimal | None = None,
        expiry_date: date | None = None,
        update_expiry: bool = False,
        consumed_verb: str = "sold",
    ) -> Batch:
        """
        Change the size of a stock-in batch after a line edit.

        The units already consumed stay consumed (L3).

        Raises:
            QuantityBelowConsumedError: total_quantity < consumed units.
        """
        total_quantity = to_quantity(total_quantity)
        batch = self.get_batch(batch_id, lock=True)
        consumed = batch.consumed_quantity

        if total_quantity < consumed:
            raise QuantityBelowConsumedError(
                str(batch_id), consumed, total_quantity, verb=consumed_verb
            )

        # INVARIANT: L3
        batch.total_quantity = total_quantity
        batch.quantity_in_stock = total_quantity - consumed
        if unit_cost is not None:
            batch.unit_cost = to_quantity(unit_cost)
        if update_expiry:
            batch.expiry_date = expiry_date
        self._session.flush()

        logger.info(
            "batch_resized",
            extra={
                "batch_id": str(batch_id),
                "total_quantity": str(total_quantity),
                "consumed": str(consumed),
            },
        )
        return batch

    def delete_untouched_batch(self, batch_id: UUID, line_id: UUID) -> None:
        """
        Remove a batch that no document other than its creator ever touched.

        Raises:
            LineDeletionNotAllowedError: some units already left the batch.
        """
        batch = self.get_batch(batch_id, lock=True)
        if not batch.is_untouched:
            raise LineDeletionNotAllowedError(str(line_id), batch.consumed_quantity)

        self._session.delete(batch)
        self._session.flush()
        logger.info("batch_deleted", extra={"batch_id": str(batch_id), "line_id": str(line_id)})
