"""
AdjustmentRecorder -- non-trade stock corrections.

Responsibility:
    Increase adjustments bring stock in exactly like a purchase (one new
    batch per line, tagged with an estimated unit cost).  Decrease
    adjustments take stock out exactly like a sale.  Neither carries a
    contact or a payment; both require a reason.

Architecture position:
    Services -- stateful orchestration on top of StockMovement.  Each public
    method owns its transaction boundary.

Invariants enforced:
    - reason is mandatory, non-blank free text.
    - Increase lines need unit_cost > 0; decrease lines carry none.
    - Increase and decrease share one counter ("adjustment") and differ in
      prefix: ADJ-INC-n, ADJ-DEC-n.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import AdjustmentItem, AllocationEntry
from stock_kernel.domain.policy import AdjustmentType, DocumentType, InventoryPolicy
from stock_kernel.domain.validation import (
    validate_adjustment_items,
    validate_quantity,
    validate_reason,
    validate_unit_cost,
)
from stock_kernel.exceptions import (
    DocumentLineNotFoundError,
    DocumentNotFoundError,
    LineDeletionNotAllowedError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.adjustment import (
    StockAdjustment,
    StockAdjustmentLine,
    StockAdjustmentLineBatch,
)
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settings_service import SettingsService
from stock_services.availability import AvailabilityChecker, AvailabilityRequest
from stock_services.stock_movement import StockMovement
from stock_services.unit_of_work import unit_of_work

logger = get_logger("services.adjustment_recorder")

DUPLICATE_ON_ADJUSTMENT = "This product is already part of the adjustment."


def _allocation_row(entry: AllocationEntry, position: int) -> StockAdjustmentLineBatch:
    return StockAdjustmentLineBatch(batch_id=entry.batch_id, quantity=entry.quantity, position=position)


class AdjustmentRecorder:
    """
    Stock adjustment recording.

    Contract:
        Every public method is all-or-nothing.

    Non-goals:
        - Does NOT dispatch low-stock alerts.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._settings = SettingsService(session)
        self._movement = StockMovement(session, self._clock)
        self._availability = AvailabilityChecker(session, self._clock)

    def increase_stock(
        self,
        location_id: UUID,
        reason: str,
        items: Sequence[AdjustmentItem],
        actor_id: UUID,
    ) -> StockAdjustment:
        return self._record(AdjustmentType.INCREASE, location_id, reason, items, actor_id)

    def decrease_stock(
        self,
        location_id: UUID,
        reason: str,
        items: Sequence[AdjustmentItem],
        actor_id: UUID,
    ) -> StockAdjustment:
        return self._record(AdjustmentType.DECREASE, location_id, reason, items, actor_id)

    def add_items(
        self,
        adjustment_id: UUID,
        items: Sequence[AdjustmentItem],
        actor_id: UUID,
    ) -> StockAdjustment:
        """Append lines using the adjustment's own direction."""
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "add_adjustment_items"):
            adjustment = self._load_adjustment(adjustment_id)
            adjustment_type = AdjustmentType(adjustment.adjustment_type)
            items = validate_adjustment_items(items, adjustment_type)
            existing = {line.product_id for line in adjustment.lines}
            if any(item.product_id in existing for item in items):
                raise ValidationError(DUPLICATE_ON_ADJUSTMENT, field="product_id")

            policy = self._settings.get_policy()
            self._append_lines(adjustment, adjustment_type, items, policy, actor_id)
            adjustment.mark_updated(actor_id, self._clock.now())
            self._session.flush()
            logger.info(
                "adjustment_items_added",
                extra={"document_id": adjustment.sequence_id, "line_count": len(items)},
            )
        return adjustment

    def update_line(
        self,
        line_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        unit_cost: Decimal | None = None,
        expiry_date: date | None = None,
    ) -> StockAdjustmentLine:
        """
        Increase lines resize their batch (never below what was consumed);
        decrease lines release or draw the difference.
        """
        quantity = validate_quantity(quantity)

        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "update_adjustment_line"):
            line = self._load_line(line_id)
            adjustment = line.adjustment
            adjustment.mark_updated(actor_id, self._clock.now())
            policy = self._settings.get_policy()

            if adjustment.adjustment_type == AdjustmentType.INCREASE.value:
                if unit_cost is not None:
                    unit_cost = validate_unit_cost(unit_cost)
                row = line.batches[0]
                self._movement.ledger.resize_batch(
                    row.batch_id,
                    quantity,
                    unit_cost=unit_cost,
                    expiry_date=expiry_date if policy.expiry_considered else None,
                    update_expiry=policy.expiry_considered,
                    consumed_verb="consumed",
                )
                row.quantity = quantity
                if unit_cost is not None:
                    line.unit_cost = unit_cost
            else:
                self._availability.ensure(
                    adjustment.location_id,
                    [AvailabilityRequest(line.product_id, quantity, restocked_quantity=line.quantity)],
                    policy,
                )
                self._movement.resize_out(
                    line.batches,
                    line.product_id,
                    adjustment.location_id,
                    quantity,
                    policy,
                    _allocation_row,
                )
            self._session.flush()
            logger.info(
                "adjustment_line_updated",
                extra={
                    "line_id": str(line_id),
                    "adjustment_type": adjustment.adjustment_type,
                    "quantity": str(quantity),
                },
            )
        return line

    def delete_line(self, line_id: UUID, actor_id: UUID) -> None:
        """
        Increase lines: only while their batch is untouched.  Decrease lines:
        every unit goes back to its batch.

        Raises:
            LineDeletionNotAllowedError: increase line whose batch was touched.
        """
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "delete_adjustment_line"):
            line = self._load_line(line_id)
            adjustment = line.adjustment
            adjustment.mark_updated(actor_id, self._clock.now())

            if adjustment.adjustment_type == AdjustmentType.INCREASE.value:
                batch_id = line.batches[0].batch_id
                batch = self._movement.ledger.get_batch(batch_id, lock=True)
                if not batch.is_untouched:
                    raise LineDeletionNotAllowedError(str(line_id), batch.consumed_quantity)
                adjustment.lines.remove(line)
                self._session.flush()
                self._movement.ledger.delete_untouched_batch(batch_id, line_id)
            else:
                self._movement.release(line.batches, line.quantity)
                adjustment.lines.remove(line)
                self._session.flush()

            logger.info(
                "adjustment_line_deleted",
                extra={"line_id": str(line_id), "adjustment_type": adjustment.adjustment_type},
            )

    def update_reason(self, adjustment_id: UUID, reason: str, actor_id: UUID) -> StockAdjustment:
        reason = validate_reason(reason)
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "update_adjustment_reason"):
            adjustment = self._load_adjustment(adjustment_id)
            adjustment.reason = reason
            adjustment.mark_updated(actor_id, self._clock.now())
            self._session.flush()
            logger.info("adjustment_reason_updated", extra={"document_id": adjustment.sequence_id})
        return adjustment

    def get_adjustment(self, adjustment_id: UUID) -> StockAdjustment:
        adjustment = self._session.get(StockAdjustment, adjustment_id)
        if adjustment is None:
            raise DocumentNotFoundError("adjustment", str(adjustment_id))
        return adjustment

    def _record(
        self,
        adjustment_type: AdjustmentType,
        location_id: UUID,
        reason: str,
        items: Sequence[AdjustmentItem],
        actor_id: UUID,
    ) -> StockAdjustment:
        reason = validate_reason(reason)
        items = validate_adjustment_items(items, adjustment_type)
        operation = f"{adjustment_type.value}_stock"

        with LogContext.bind(actor_id=actor_id, location_id=location_id), unit_of_work(
            self._session, operation
        ):
            policy = self._settings.get_policy()
            if adjustment_type == AdjustmentType.DECREASE:
                self._availability.ensure(
                    location_id,
                    [AvailabilityRequest(item.product_id, item.quantity) for item in items],
                    policy,
                )

            sequence_id = self._sequences.next_document_id(
                DocumentType.for_adjustment(adjustment_type)
            )
            adjustment = StockAdjustment(
                sequence_id=sequence_id,
                adjustment_type=adjustment_type.value,
                location_id=location_id,
                reason=reason,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(adjustment)
            self._session.flush()

            self._append_lines(adjustment, adjustment_type, items, policy, actor_id)
            self._session.flush()

            logger.info(
                "adjustment_recorded",
                extra={
                    "document_id": sequence_id,
                    "adjustment_id": str(adjustment.id),
                    "adjustment_type": adjustment_type.value,
                    "line_count": len(items),
                },
            )
        return adjustment

    def _append_lines(
        self,
        adjustment: StockAdjustment,
        adjustment_type: AdjustmentType,
        items: Sequence[AdjustmentItem],
        policy: InventoryPolicy,
        actor_id: UUID,
    ) -> None:
        position = max((line.position for line in adjustment.lines), default=-1) + 1
        for offset, item in enumerate(items):
            if adjustment_type == AdjustmentType.INCREASE:
                entry = self._movement.stock_in(
                    product_id=item.product_id,
                    location_id=adjustment.location_id,
                    quantity=item.quantity,
                    unit_cost=item.unit_cost,
                    actor_id=actor_id,
                    expiry_date=item.expiry_date if policy.expiry_considered else None,
                )
                rows = [_allocation_row(entry, 0)]
            else:
                entries = self._movement.stock_out(
                    item.product_id, adjustment.location_id, item.quantity, policy
                )
                rows = [_allocation_row(entry, i) for i, entry in enumerate(entries)]

            adjustment.lines.append(
                StockAdjustmentLine(
                    product_id=item.product_id,
                    unit_cost=item.unit_cost,
                    position=position + offset,
                    batches=rows,
                )
            )

    def _load_adjustment(self, adjustment_id: UUID) -> StockAdjustment:
        adjustment = self._session.execute(
            select(StockAdjustment)
            .where(StockAdjustment.id == adjustment_id)
            .with_for_update()
        ).scalar_one_or_none()
        if adjustment is None:
            raise DocumentNotFoundError("adjustment", str(adjustment_id))
        return adjustment

    def _load_line(self, line_id: UUID) -> StockAdjustmentLine:
        line = self._session.execute(
            select(StockAdjustmentLine)
            .where(StockAdjustmentLine.id == line_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise DocumentLineNotFoundError("adjustment", str(line_id))
        return line
