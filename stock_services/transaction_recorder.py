"""
TransactionRecorder -- purchases and sales as atomic units of work.

Responsibility:
    Composes the sequence generator, the stock-movement primitive and the
    availability checker into "record a purchase" and "record a sale", plus
    the edits a recorded transaction allows afterwards: adding items,
    changing or deleting a line, recording payments, updating the header.

Architecture position:
    Services -- stateful orchestration.  Each public method owns its
    transaction boundary: commit on success, rollback and re-raise on any
    failure (see ``unit_of_work``).

Invariants enforced:
    - A purchase line owns exactly one allocation row: the batch it created.
    - A sale line's allocation rows are the batches it drew from, in
      allocation order.
    - Purchase requires a supplier, sale requires a customer.
    - A purchase line never shrinks below what already left its batch; it
      is deletable only while its batch is untouched.

Failure modes:
    - ValidationError / ContactTypeMismatchError before any write.
    - InsufficientStockError when the pre-check fails or a concurrent sale
      won the race for a batch.  Reported, never retried.
    - ConfigNotFoundError when a counter or the settings row is missing.

Audit relevance:
    ``purchase_recorded`` / ``sale_recorded`` log the sequence id, location
    and line count; every batch touch is logged by the ledger underneath.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import to_quantity
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import AllocationEntry, PurchaseItem, SaleItem
from stock_kernel.domain.policy import (
    EXPECTED_CONTACT_TYPE,
    PAYMENT_TYPE_FOR,
    DocumentType,
    InventoryPolicy,
    TransactionType,
)
from stock_kernel.domain.validation import (
    validate_purchase_items,
    validate_quantity,
    validate_sale_items,
    validate_unit_price,
    validate_vat,
)
from stock_kernel.exceptions import (
    ContactTypeMismatchError,
    DocumentLineNotFoundError,
    DocumentNotFoundError,
    LineDeletionNotAllowedError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.catalog import Contact
from stock_kernel.models.transaction import (
    Payment,
    Transaction,
    TransactionLine,
    TransactionLineBatch,
)
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settings_service import SettingsService
from stock_services.availability import AvailabilityChecker, AvailabilityRequest
from stock_services.stock_movement import StockMovement
from stock_services.unit_of_work import unit_of_work

logger = get_logger("services.transaction_recorder")

_ZERO = Decimal("0")

DUPLICATE_ON_TRANSACTION = "This product is already part of the transaction."
BAD_PAYMENT = "Payment amount must be greater than zero."


def _allocation_row(entry: AllocationEntry, position: int) -> TransactionLineBatch:
    return TransactionLineBatch(batch_id=entry.batch_id, quantity=entry.quantity, position=position)


class TransactionRecorder:
    """
    Purchase and sale recording.

    Contract:
        Every public method is all-or-nothing.  On return the session has
        been committed; on exception it has been rolled back.

    Non-goals:
        - Does NOT dispatch low-stock alerts (see LowStockMonitor).
        - Does NOT check user permissions or location access.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._settings = SettingsService(session)
        self._movement = StockMovement(session, self._clock)
        self._availability = AvailabilityChecker(session, self._clock)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_purchase(
        self,
        location_id: UUID,
        contact_id: UUID | None,
        items: Sequence[PurchaseItem],
        actor_id: UUID,
        note: str | None = None,
        paid_amount: Decimal | None = None,
        payment_remark: str | None = None,
    ) -> Transaction:
        """Stock-in one new batch per item, optionally with a PAID payment."""
        items = validate_purchase_items(items)
        paid = self._validate_paid_amount(paid_amount)

        with LogContext.bind(actor_id=actor_id, location_id=location_id), unit_of_work(
            self._session, "record_purchase"
        ):
            self._check_contact(contact_id, TransactionType.PURCHASE)
            policy = self._settings.get_policy()
            trx = self._create_header(TransactionType.PURCHASE, location_id, contact_id, actor_id, note)
            self._append_purchase_lines(trx, items, policy, actor_id)
            if paid > _ZERO:
                self._add_payment(trx, paid, actor_id, payment_remark)
            self._session.flush()

            logger.info(
                "purchase_recorded",
                extra={
                    "document_id": trx.sequence_id,
                    "transaction_id": str(trx.id),
                    "line_count": len(items),
                    "paid_amount": str(paid),
                },
            )
        return trx

    def record_sale(
        self,
        location_id: UUID,
        contact_id: UUID | None,
        items: Sequence[SaleItem],
        actor_id: UUID,
        note: str | None = None,
        paid_amount: Decimal | None = None,
        payment_remark: str | None = None,
    ) -> Transaction:
        """Stock-out each item by the current inventory method, optionally with a RECEIVED payment."""
        items = validate_sale_items(items)
        paid = self._validate_paid_amount(paid_amount)

        with LogContext.bind(actor_id=actor_id, location_id=location_id), unit_of_work(
            self._session, "record_sale"
        ):
            self._check_contact(contact_id, TransactionType.SALE)
            policy = self._settings.get_policy()
            self._availability.ensure(
                location_id,
                [AvailabilityRequest(item.product_id, item.quantity) for item in items],
                policy,
            )
            trx = self._create_header(TransactionType.SALE, location_id, contact_id, actor_id, note)
            self._append_sale_lines(trx, items, policy)
            if paid > _ZERO:
                self._add_payment(trx, paid, actor_id, payment_remark)
            self._session.flush()

            logger.info(
                "sale_recorded",
                extra={
                    "document_id": trx.sequence_id,
                    "transaction_id": str(trx.id),
                    "line_count": len(items),
                    "paid_amount": str(paid),
                },
            )
        return trx

    def record_payment(
        self,
        transaction_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        remark: str | None = None,
    ) -> Payment:
        """PAID for a purchase, RECEIVED for a sale."""
        try:
            amount = to_quantity(amount)
        except (TypeError, ValueError) as exc:
            raise ValidationError(BAD_PAYMENT, field="amount") from exc
        if amount <= _ZERO:
            raise ValidationError(BAD_PAYMENT, field="amount")

        with unit_of_work(self._session, "record_payment"):
            trx = self._load_transaction(transaction_id)
            payment = self._add_payment(trx, amount, actor_id, remark)
            self._session.flush()
            logger.info(
                "payment_recorded",
                extra={
                    "document_id": trx.sequence_id,
                    "amount": str(amount),
                    "payment_type": payment.payment_type,
                },
            )
        return payment

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def add_purchase_items(
        self,
        transaction_id: UUID,
        items: Sequence[PurchaseItem],
        actor_id: UUID,
    ) -> Transaction:
        items = validate_purchase_items(items)
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "add_purchase_items"):
            trx = self._load_transaction(transaction_id, TransactionType.PURCHASE)
            self._reject_existing_products(trx, items)
            policy = self._settings.get_policy()
            self._append_purchase_lines(trx, items, policy, actor_id)
            trx.mark_updated(actor_id, self._clock.now())
            self._session.flush()
            logger.info(
                "purchase_items_added",
                extra={"document_id": trx.sequence_id, "line_count": len(items)},
            )
        return trx

    def add_sale_items(
        self,
        transaction_id: UUID,
        items: Sequence[SaleItem],
        actor_id: UUID,
    ) -> Transaction:
        items = validate_sale_items(items)
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "add_sale_items"):
            trx = self._load_transaction(transaction_id, TransactionType.SALE)
            self._reject_existing_products(trx, items)
            policy = self._settings.get_policy()
            self._availability.ensure(
                trx.location_id,
                [AvailabilityRequest(item.product_id, item.quantity) for item in items],
                policy,
            )
            self._append_sale_lines(trx, items, policy)
            trx.mark_updated(actor_id, self._clock.now())
            self._session.flush()
            logger.info(
                "sale_items_added",
                extra={"document_id": trx.sequence_id, "line_count": len(items)},
            )
        return trx

    def update_purchase_line(
        self,
        line_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        unit_price: Decimal | None = None,
        expiry_date: date | None = None,
    ) -> TransactionLine:
        """
        Resize the line's batch.  Units already sold or transferred stay
        consumed; the new quantity may not go below them.

        Raises:
            QuantityBelowConsumedError: quantity < units already consumed.
        """
        quantity = validate_quantity(quantity)
        if unit_price is not None:
            unit_price = validate_unit_price(unit_price)

        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "update_purchase_line"):
            line = self._load_line(line_id, TransactionType.PURCHASE)
            line.transaction.mark_updated(actor_id, self._clock.now())
            policy = self._settings.get_policy()
            row = line.batches[0]
            self._movement.ledger.resize_batch(
                row.batch_id,
                quantity,
                unit_cost=unit_price,
                expiry_date=expiry_date if policy.expiry_considered else None,
                update_expiry=policy.expiry_considered,
                consumed_verb="sold",
            )
            row.quantity = quantity
            if unit_price is not None:
                line.unit_price = unit_price
            self._session.flush()
            logger.info(
                "purchase_line_updated",
                extra={"line_id": str(line_id), "quantity": str(quantity)},
            )
        return line

    def update_sale_line(
        self,
        line_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        unit_price: Decimal | None = None,
        vat_percentage: Decimal | None = None,
    ) -> TransactionLine:
        """
        Shrinking gives the difference back to the most recently drawn
        batches; growing draws the difference by the current method.
        """
        quantity = validate_quantity(quantity)
        if unit_price is not None:
            unit_price = validate_unit_price(unit_price)
        if vat_percentage is not None:
            vat_percentage = validate_vat(vat_percentage)

        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "update_sale_line"):
            line = self._load_line(line_id, TransactionType.SALE)
            trx = line.transaction
            trx.mark_updated(actor_id, self._clock.now())
            policy = self._settings.get_policy()
            self._availability.ensure(
                trx.location_id,
                [AvailabilityRequest(line.product_id, quantity, restocked_quantity=line.quantity)],
                policy,
            )
            self._movement.resize_out(
                line.batches,
                line.product_id,
                trx.location_id,
                quantity,
                policy,
                _allocation_row,
            )
            if unit_price is not None:
                line.unit_price = unit_price
            if vat_percentage is not None:
                line.vat_percentage = vat_percentage
            self._session.flush()
            logger.info(
                "sale_line_updated",
                extra={"line_id": str(line_id), "quantity": str(quantity)},
            )
        return line

    def delete_purchase_line(self, line_id: UUID, actor_id: UUID) -> None:
        """
        Raises:
            LineDeletionNotAllowedError: the line's batch was already touched.
        """
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "delete_purchase_line"):
            line = self._load_line(line_id, TransactionType.PURCHASE)
            line.transaction.mark_updated(actor_id, self._clock.now())
            batch_id = line.batches[0].batch_id
            batch = self._movement.ledger.get_batch(batch_id, lock=True)
            if not batch.is_untouched:
                raise LineDeletionNotAllowedError(str(line_id), batch.consumed_quantity)

            line.transaction.lines.remove(line)
            self._session.flush()
            self._movement.ledger.delete_untouched_batch(batch_id, line_id)
            logger.info("purchase_line_deleted", extra={"line_id": str(line_id)})

    def delete_sale_line(self, line_id: UUID, actor_id: UUID) -> None:
        """Every unit the line drew goes back to its batch."""
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "delete_sale_line"):
            line = self._load_line(line_id, TransactionType.SALE)
            line.transaction.mark_updated(actor_id, self._clock.now())
            self._movement.release(line.batches, line.quantity)
            line.transaction.lines.remove(line)
            self._session.flush()
            logger.info("sale_line_deleted", extra={"line_id": str(line_id)})

    def update_general_info(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        contact_id: UUID | None = None,
        note: str | None = None,
    ) -> Transaction:
        """Change the contact (re-checked against the transaction type) and note."""
        with LogContext.bind(actor_id=actor_id), unit_of_work(self._session, "update_general_info"):
            trx = self._load_transaction(transaction_id)
            trx.mark_updated(actor_id, self._clock.now())
            if contact_id is not None:
                self._check_contact(contact_id, TransactionType(trx.transaction_type))
                trx.contact_id = contact_id
            if note is not None:
                trx.note = note
            self._session.flush()
            logger.info("transaction_updated", extra={"document_id": trx.sequence_id})
        return trx

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        trx = self._session.get(Transaction, transaction_id)
        if trx is None:
            raise DocumentNotFoundError("transaction", str(transaction_id))
        return trx

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_paid_amount(paid_amount: Decimal | None) -> Decimal:
        if paid_amount is None:
            return _ZERO
        try:
            paid = to_quantity(paid_amount)
        except (TypeError, ValueError) as exc:
            raise ValidationError(BAD_PAYMENT, field="paid_amount") from exc
        if paid < _ZERO:
            raise ValidationError(BAD_PAYMENT, field="paid_amount")
        return paid

    def _check_contact(self, contact_id: UUID | None, transaction_type: TransactionType) -> Contact:
        expected = EXPECTED_CONTACT_TYPE[transaction_type]
        if contact_id is None:
            raise ContactTypeMismatchError(expected.value, None)
        contact = self._session.get(Contact, contact_id)
        if contact is None or contact.contact_type != expected.value:
            raise ContactTypeMismatchError(expected.value, str(contact_id))
        return contact

    def _create_header(
        self,
        transaction_type: TransactionType,
        location_id: UUID,
        contact_id: UUID,
        actor_id: UUID,
        note: str | None,
    ) -> Transaction:
        sequence_id = self._sequences.next_document_id(
            DocumentType.for_transaction(transaction_type)
        )
        trx = Transaction(
            sequence_id=sequence_id,
            transaction_type=transaction_type.value,
            contact_id=contact_id,
            location_id=location_id,
            note=note,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(trx)
        self._session.flush()
        return trx

    def _append_purchase_lines(
        self,
        trx: Transaction,
        items: Sequence[PurchaseItem],
        policy: InventoryPolicy,
        actor_id: UUID,
    ) -> None:
        position = max((line.position for line in trx.lines), default=-1) + 1
        for offset, item in enumerate(items):
            entry = self._movement.stock_in(
                product_id=item.product_id,
                location_id=trx.location_id,
                quantity=item.quantity,
                unit_cost=item.unit_price,
                actor_id=actor_id,
                expiry_date=item.expiry_date if policy.expiry_considered else None,
            )
            trx.lines.append(
                TransactionLine(
                    product_id=item.product_id,
                    unit_price=item.unit_price,
                    position=position + offset,
                    batches=[_allocation_row(entry, 0)],
                )
            )

    def _append_sale_lines(
        self,
        trx: Transaction,
        items: Sequence[SaleItem],
        policy: InventoryPolicy,
    ) -> None:
        position = max((line.position for line in trx.lines), default=-1) + 1
        for offset, item in enumerate(items):
            entries = self._movement.stock_out(
                item.product_id, trx.location_id, item.quantity, policy
            )
            trx.lines.append(
                TransactionLine(
                    product_id=item.product_id,
                    unit_price=item.unit_price,
                    vat_percentage=item.vat_percentage,
                    position=position + offset,
                    batches=[_allocation_row(entry, i) for i, entry in enumerate(entries)],
                )
            )

    def _add_payment(
        self,
        trx: Transaction,
        amount: Decimal,
        actor_id: UUID,
        remark: str | None,
    ) -> Payment:
        payment = Payment(
            amount=amount,
            payment_type=PAYMENT_TYPE_FOR[TransactionType(trx.transaction_type)].value,
            remark=remark,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        trx.payments.append(payment)
        return payment

    @staticmethod
    def _reject_existing_products(trx: Transaction, items: Sequence[PurchaseItem | SaleItem]) -> None:
        existing = {line.product_id for line in trx.lines}
        if any(item.product_id in existing for item in items):
            raise ValidationError(DUPLICATE_ON_TRANSACTION, field="product_id")

    def _load_transaction(
        self,
        transaction_id: UUID,
        transaction_type: TransactionType | None = None,
    ) -> Transaction:
        trx = self._session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
        ).scalar_one_or_none()
        if trx is None or (
            transaction_type is not None and trx.transaction_type != transaction_type.value
        ):
            raise DocumentNotFoundError(
                transaction_type.value if transaction_type else "transaction",
                str(transaction_id),
            )
        return trx

    def _load_line(self, line_id: UUID, transaction_type: TransactionType) -> TransactionLine:
        line = self._session.execute(
            select(TransactionLine)
            .where(TransactionLine.id == line_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None or line.transaction.transaction_type != transaction_type.value:
            raise DocumentLineNotFoundError(transaction_type.value, str(line_id))
        return line
