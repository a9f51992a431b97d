"""
Typed exception hierarchy for the stock ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Route handlers sitting above the ledger need to turn failures into the right
response: a validation problem goes back to the user verbatim, a shortfall is
rendered with available-vs-requested figures, a missing counter row becomes a
generic "try again later".  Parsing message strings for that is fragile, so:

  1. Every error has its own class (catch by type, not message).
  2. Every class has a ``code`` class attribute (machine-readable, API-safe).
  3. Context is stored as attributes (product_id, available, requested...).

Example:
    try:
        recorder.record_sale(...)
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available, "requested": e.requested}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockLedgerError (base)
    |
    +-- ValidationError
    |   +-- ContactTypeMismatchError
    |   +-- SameLocationTransferError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- BatchCapacityExceededError
    |   +-- QuantityBelowConsumedError
    |   +-- LineDeletionNotAllowedError
    |
    +-- TransferError
    |   +-- InsufficientRemainingQuantityError
    |   +-- TransitInconsistencyError
    |   +-- LocationMismatchError
    |
    +-- NotFoundError
    |   +-- BatchNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- DocumentLineNotFoundError
    |   +-- ProductNotFoundError
    |   +-- ContactNotFoundError
    |
    +-- ConfigNotFoundError
    |
    +-- TransactionAbortedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                            | When Raised
------------|---------------------------------|----------------------------------
Validation  | VALIDATION_ERROR                | Bad quantity/cost, duplicate product
            | CONTACT_TYPE_MISMATCH           | Supplier/customer pairing wrong
            | SAME_LOCATION_TRANSFER          | Sender == receiver
------------|---------------------------------|----------------------------------
Stock       | INSUFFICIENT_STOCK              | Request exceeds available stock
            | BATCH_CAPACITY_EXCEEDED         | Restore would exceed total_quantity
            | QUANTITY_BELOW_CONSUMED         | Line edit below already-consumed
            | LINE_DELETION_NOT_ALLOWED       | Batch already touched elsewhere
------------|---------------------------------|----------------------------------
Transfer    | INSUFFICIENT_REMAINING_QUANTITY | Receive/return > in transit
            | TRANSIT_INCONSISTENCY           | In-transit quantity is negative
            | LOCATION_MISMATCH               | Wrong side of the transfer
------------|---------------------------------|----------------------------------
Lookup      | BATCH_NOT_FOUND, DOCUMENT_NOT_FOUND, DOCUMENT_LINE_NOT_FOUND,
            | PRODUCT_NOT_FOUND, CONTACT_NOT_FOUND
------------|---------------------------------|----------------------------------
Config      | CONFIG_NOT_FOUND                | Counter or settings row missing
------------|---------------------------------|----------------------------------
Storage     | TRANSACTION_ABORTED             | Non-ledger failure inside a unit
            |                                 | of work (original chained)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Ledger errors raised inside a unit of work are re-raised with their own
   class after rollback.  Only foreign storage failures (SQLAlchemy errors)
   are wrapped in TransactionAbortedError, with ``__cause__`` set.

2. ConfigNotFoundError is fatal misconfiguration.  Callers should render it
   as a generic server error and never retry.

3. ``user_message`` on ConfigNotFoundError and TransactionAbortedError is the
   text safe to show end users; ``str(exc)`` carries the internal detail.
"""

from decimal import Decimal


def _fmt(value) -> str:
    """Quantities in messages without trailing zeros."""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


class StockLedgerError(Exception):
    """
    Base exception for all stock ledger errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "STOCK_LEDGER_ERROR"


# Validation


class ValidationError(StockLedgerError):
    """Request rejected before any stock was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ContactTypeMismatchError(ValidationError):
    """Purchase needs a supplier, sale needs a customer."""

    code: str = "CONTACT_TYPE_MISMATCH"

    def __init__(self, expected_type: str, contact_id: str | None):
        self.expected_type = expected_type
        self.contact_id = contact_id
        if contact_id is None:
            message = f"{expected_type} is required!"
        else:
            message = f"{expected_type} not found or contact type mismatch!"
        super().__init__(message, field="contact_id")


class SameLocationTransferError(ValidationError):
    code: str = "SAME_LOCATION_TRANSFER"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__("Cannot transfer to the same location!", field="receiver_location_id")


# Stock


class StockError(StockLedgerError):
    """Base exception for batch-level stock errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """Requested quantity exceeds what the location can supply."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        location_id: str | None,
        available: Decimal,
        requested: Decimal,
        message: str | None = None,
        batch_id: str | None = None,
    ):
        self.product_id = product_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        self.batch_id = batch_id
        super().__init__(
            message
            or (
                f"Insufficient stock for product {product_id} at location "
                f"{location_id}: available {_fmt(available)}, requested {_fmt(requested)}"
            )
        )


class BatchCapacityExceededError(StockError):
    """Restoring stock would push quantity_in_stock above total_quantity."""

    code: str = "BATCH_CAPACITY_EXCEEDED"

    def __init__(self, batch_id: str, delta: Decimal):
        self.batch_id = batch_id
        self.delta = delta
        super().__init__(
            f"Batch {batch_id} cannot take back {_fmt(delta)}: exceeds its total quantity"
        )


class QuantityBelowConsumedError(StockError):
    code: str = "QUANTITY_BELOW_CONSUMED"

    def __init__(self, batch_id: str, consumed: Decimal, requested: Decimal, verb: str = "sold"):
        self.batch_id = batch_id
        self.consumed = consumed
        self.requested = requested
        super().__init__(f"Quantity too low. {_fmt(consumed)} items have already been {verb}!")


class LineDeletionNotAllowedError(StockError):
    code: str = "LINE_DELETION_NOT_ALLOWED"

    def __init__(self, line_id: str, consumed: Decimal):
        self.line_id = line_id
        self.consumed = consumed
        super().__init__(
            f"Deletion not allowed: {_fmt(consumed)} items of this product have "
            "already been sold or transferred."
        )


# Transfer


class TransferError(StockLedgerError):
    """Base exception for transfer receive/return errors."""

    code: str = "TRANSFER_ERROR"


class InsufficientRemainingQuantityError(TransferError):
    """Receive/return asked for more than is still in transit."""

    code: str = "INSUFFICIENT_REMAINING_QUANTITY"

    def __init__(self, line_id: str, remaining: Decimal, requested: Decimal):
        self.line_id = line_id
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"No sufficient remaining quantity. Remaining: {_fmt(remaining)}, "
            f"Requested: {_fmt(requested)}"
        )


class TransitInconsistencyError(TransferError):
    """received + returned exceeds what was sent. Data corruption."""

    code: str = "TRANSIT_INCONSISTENCY"

    def __init__(self, line_id: str, remaining: Decimal):
        self.line_id = line_id
        self.remaining = remaining
        super().__init__(
            "Data inconsistency detected. Total remaining quantity is "
            f"negative: {_fmt(remaining)}"
        )


class LocationMismatchError(TransferError):
    code: str = "LOCATION_MISMATCH"

    def __init__(self, transfer_id: str, location_id: str, action: str):
        self.transfer_id = transfer_id
        self.location_id = location_id
        self.action = action
        super().__init__(
            f"This transfer is not available to {action} at your current location."
        )


# Lookup


class NotFoundError(StockLedgerError):
    code: str = "NOT_FOUND"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type} not found: {document_id}")


class DocumentLineNotFoundError(NotFoundError):
    code: str = "DOCUMENT_LINE_NOT_FOUND"

    def __init__(self, document_type: str, line_id: str):
        self.document_type = document_type
        self.line_id = line_id
        super().__init__(f"{document_type} line not found: {line_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product not found.")


class ContactNotFoundError(NotFoundError):
    code: str = "CONTACT_NOT_FOUND"

    def __init__(self, contact_id: str):
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


# Configuration


class ConfigNotFoundError(StockLedgerError):
    """Sequence counter or settings row is missing. Fatal, never retried."""

    code: str = "CONFIG_NOT_FOUND"
    user_message: str = "Something went wrong. Please try again later."

    def __init__(self, config_kind: str, name: str):
        self.config_kind = config_kind
        self.name = name
        super().__init__(f"{config_kind} not configured: {name}")


# Unit of work


class TransactionAbortedError(StockLedgerError):
    """A storage failure aborted the unit of work; nothing was committed."""

    code: str = "TRANSACTION_ABORTED"
    user_message: str = "Something went wrong. Please try again later."

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} aborted: {reason}")
