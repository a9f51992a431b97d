"""
TransferService -- stock in transit between two locations.

Responsibility:
    ``send`` takes stock out at the sender (same allocation as a sale) and
    records, per line, which sender batches it left.  ``receive`` walks
    those entries forward and materializes new batches at the receiver.
    ``return_product`` walks them backward and puts unreceived stock back
    into the sender's original batches.

Architecture position:
    Services -- stateful orchestration.  The walks themselves are pure
    (stock_engines.transit); this service loads the line under a row lock,
    applies the plan and saves the whole aggregate.

State model:
    Per transfer line, derived from quantities only:

        in_transit = total_quantity - returned_quantity - received_quantity

    The line is closed when in_transit reaches 0.  There is no stored state
    flag.

Invariants enforced:
    - Closure: total == returned + received + in_transit, in_transit >= 0.
    - Per sending entry: 0 <= received_qty <= quantity.
    - Receive walks entries in send order; return walks them in reverse,
      independent of the inventory method used at send time.
    - Entries with nothing unreceived are skipped, never errored.
    - A fully returned entry that never fed a receipt is removed.

Failure modes:
    - SameLocationTransferError on send.
    - LocationMismatchError when the caller is on the wrong side.
    - TransitInconsistencyError when in_transit is already negative.
    - InsufficientRemainingQuantityError when asking for more than in_transit.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from stock_engines.transit import SendingEntry, TransitEngine, remaining_quantity
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import TransferItem
from stock_kernel.domain.policy import DocumentType
from stock_kernel.domain.validation import validate_quantity, validate_transfer_items
from stock_kernel.exceptions import (
    DocumentLineNotFoundError,
    DocumentNotFoundError,
    InsufficientRemainingQuantityError,
    LocationMismatchError,
    SameLocationTransferError,
    TransitInconsistencyError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.transfer import (
    Transfer,
    TransferLine,
    TransferReceivingBatch,
    TransferSendingBatch,
)
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settings_service import SettingsService
from stock_services.availability import AvailabilityChecker, AvailabilityRequest
from stock_services.stock_movement import StockMovement
from stock_services.unit_of_work import unit_of_work

logger = get_logger("services.transfer")

_ZERO = Decimal("0")


class TransferService:
    """
    Transfer send / receive / return.

    Contract:
        Every public write is all-or-nothing and leaves each touched line
        satisfying the closure invariant.

    Non-goals:
        - Does NOT decide who may act for a location; it only checks the
          caller's location against the transfer's sender or receiver.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._settings = SettingsService(session)
        self._movement = StockMovement(session, self._clock)
        self._availability = AvailabilityChecker(session, self._clock)
        self._transit = TransitEngine()

    def send(
        self,
        sender_location_id: UUID,
        receiver_location_id: UUID,
        items: Sequence[TransferItem],
        actor_id: UUID,
        note: str | None = None,
    ) -> Transfer:
        if sender_location_id == receiver_location_id:
            raise SameLocationTransferError(str(sender_location_id))
        items = validate_transfer_items(items)

        with LogContext.bind(actor_id=actor_id, location_id=sender_location_id), unit_of_work(
            self._session, "send_transfer"
        ):
            policy = self._settings.get_policy()
            self._availability.ensure(
                sender_location_id,
                [AvailabilityRequest(item.product_id, item.quantity) for item in items],
                policy,
            )

            transfer = Transfer(
                sequence_id=self._sequences.next_document_id(DocumentType.TRANSFER),
                sender_location_id=sender_location_id,
                receiver_location_id=receiver_location_id,
                note=note,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(transfer)
            self._session.flush()

            for position, item in enumerate(items):
                entries = self._movement.stock_out(
                    item.product_id, sender_location_id, item.quantity, policy
                )
                transfer.lines.append(
                    TransferLine(
                        product_id=item.product_id,
                        total_quantity=item.quantity,
                        returned_quantity=_ZERO,
                        position=position,
                        sending_batches=[
                            TransferSendingBatch(
                                batch_id=entry.batch_id,
                                quantity=entry.quantity,
                                received_qty=_ZERO,
                                position=i,
                            )
                            for i, entry in enumerate(entries)
                        ],
                    )
                )
            self._session.flush()

            logger.info(
                "transfer_sent",
                extra={
                    "document_id": transfer.sequence_id,
                    "transfer_id": str(transfer.id),
                    "receiver_location_id": str(receiver_location_id),
                    "line_count": len(items),
                },
            )
        return transfer

    def receive(
        self,
        transfer_id: UUID,
        line_id: UUID,
        receiver_location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
    ) -> TransferLine:
        """
        Materialize ``quantity`` at the receiver, one new batch per sending
        entry touched, each carrying its source batch's cost and expiry.
        Repeatable until the line has nothing left in transit.
        """
        quantity = validate_quantity(quantity)

        with LogContext.bind(actor_id=actor_id, location_id=receiver_location_id), unit_of_work(
            self._session, "receive_transfer"
        ):
            line = self._load_line(transfer_id, line_id)
            transfer = line.transfer
            if transfer.receiver_location_id != receiver_location_id:
                raise LocationMismatchError(str(transfer_id), str(receiver_location_id), "receive")
            self._check_remaining(line, quantity)

            plan = self._transit.plan_receipt(
                requested=quantity,
                entries=self._sending_entries(line),
            )
            if not plan.is_complete:
                raise InsufficientRemainingQuantityError(str(line_id), plan.fulfilled, quantity)

            position = max((row.position for row in line.receiving_batches), default=-1) + 1
            for offset, step in enumerate(plan.steps):
                source = self._movement.ledger.get_batch(step.batch_id)
                entry = self._movement.stock_in(
                    product_id=line.product_id,
                    location_id=receiver_location_id,
                    quantity=step.quantity,
                    unit_cost=source.unit_cost,
                    actor_id=actor_id,
                    expiry_date=source.expiry_date,
                )
                sending = line.sending_batches[step.index]
                sending.received_qty = sending.received_qty + step.quantity
                line.receiving_batches.append(
                    TransferReceivingBatch(
                        batch_id=entry.batch_id,
                        quantity=entry.quantity,
                        position=position + offset,
                    )
                )
            transfer.mark_updated(actor_id, self._clock.now())
            self._session.flush()

            logger.info(
                "transfer_received",
                extra={
                    "document_id": transfer.sequence_id,
                    "line_id": str(line_id),
                    "quantity": str(quantity),
                    "in_transit": str(line.in_transit_quantity),
                    "is_closed": line.is_closed,
                },
            )
        return line

    def return_product(
        self,
        transfer_id: UUID,
        line_id: UUID,
        sender_location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
    ) -> TransferLine:
        """
        Put ``quantity`` of unreceived stock back into the sender's batches,
        most recently sent entry first.
        """
        quantity = validate_quantity(quantity)

        with LogContext.bind(actor_id=actor_id, location_id=sender_location_id), unit_of_work(
            self._session, "return_transfer"
        ):
            line = self._load_line(transfer_id, line_id)
            transfer = line.transfer
            if transfer.sender_location_id != sender_location_id:
                raise LocationMismatchError(str(transfer_id), str(sender_location_id), "return")
            self._check_remaining(line, quantity)

            plan = self._transit.plan_return(
                requested=quantity,
                entries=self._sending_entries(line),
            )
            if not plan.is_complete:
                raise InsufficientRemainingQuantityError(str(line_id), plan.fulfilled, quantity)

            doomed = []
            for step in plan.steps:
                self._movement.ledger.adjust_stock(step.batch_id, step.quantity)
                sending = line.sending_batches[step.index]
                if step.remove_entry:
                    doomed.append(sending)
                else:
                    sending.quantity = sending.quantity - step.quantity
            for sending in doomed:
                line.sending_batches.remove(sending)
            line.returned_quantity = line.returned_quantity + quantity
            transfer.mark_updated(actor_id, self._clock.now())
            self._session.flush()

            logger.info(
                "transfer_returned",
                extra={
                    "document_id": transfer.sequence_id,
                    "line_id": str(line_id),
                    "quantity": str(quantity),
                    "removed_entries": len(doomed),
                    "in_transit": str(line.in_transit_quantity),
                    "is_closed": line.is_closed,
                },
            )
        return line

    def get_transfer(self, transfer_id: UUID) -> Transfer:
        transfer = self._session.get(Transfer, transfer_id)
        if transfer is None:
            raise DocumentNotFoundError("transfer", str(transfer_id))
        return transfer

    def transfers_for_location(self, location_id: UUID) -> list[Transfer]:
        """Transfers where the location is the sender or the receiver, newest first."""
        return list(
            self._session.execute(
                select(Transfer)
                .where(
                    or_(
                        Transfer.sender_location_id == location_id,
                        Transfer.receiver_location_id == location_id,
                    )
                )
                .order_by(Transfer.created_at.desc(), Transfer.id.desc())
            ).scalars()
        )

    @staticmethod
    def _sending_entries(line: TransferLine) -> list[SendingEntry]:
        return [
            SendingEntry(batch_id=row.batch_id, quantity=row.quantity, received_qty=row.received_qty)
            for row in line.sending_batches
        ]

    @staticmethod
    def _check_remaining(line: TransferLine, quantity: Decimal) -> None:
        remaining = remaining_quantity(
            line.total_quantity, line.returned_quantity, line.received_quantity
        )
        if remaining < _ZERO:
            logger.error(
                "transfer_line_inconsistent",
                extra={"line_id": str(line.id), "remaining": str(remaining)},
            )
            raise TransitInconsistencyError(str(line.id), remaining)
        if quantity > remaining:
            raise InsufficientRemainingQuantityError(str(line.id), remaining, quantity)

    def _load_line(self, transfer_id: UUID, line_id: UUID) -> TransferLine:
        line = self._session.execute(
            select(TransferLine)
            .where(TransferLine.id == line_id, TransferLine.transfer_id == transfer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise DocumentLineNotFoundError("transfer", str(line_id))
        return line
