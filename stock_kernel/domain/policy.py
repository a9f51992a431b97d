"""
Policy enums and value objects shared by every layer.

``InventoryMethod`` selects candidate batch ordering; ``DocumentType`` binds
each document kind to its sequence counter and id prefix.  Purchase and sale
number independently; increase and decrease adjustments share one counter
and differ only in prefix.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InventoryMethod(str, Enum):
    """Ordering policy for stock-out allocation."""

    FIFO = "FIFO"  # created_at ascending
    LIFO = "LIFO"  # created_at descending
    FEFO = "FEFO"  # expiry ascending (nulls last), then created_at ascending


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"


class AdjustmentType(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class ContactType(str, Enum):
    SUPPLIER = "supplier"
    CUSTOMER = "customer"


class PaymentType(str, Enum):
    PAID = "PAID"  # we paid a supplier
    RECEIVED = "RECEIVED"  # a customer paid us


class DocumentType(str, Enum):
    """Numbered document kinds."""

    PURCHASE = "purchase"
    SALE = "sale"
    TRANSFER = "transfer"
    INCREASE = "increase"
    DECREASE = "decrease"

    @property
    def counter_name(self) -> str:
        return _COUNTERS[self]

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @classmethod
    def for_transaction(cls, transaction_type: TransactionType) -> DocumentType:
        return cls(transaction_type.value)

    @classmethod
    def for_adjustment(cls, adjustment_type: AdjustmentType) -> DocumentType:
        return cls(adjustment_type.value)


_COUNTERS: dict[DocumentType, str] = {
    DocumentType.PURCHASE: "purchase",
    DocumentType.SALE: "sale",
    DocumentType.TRANSFER: "transfer",
    DocumentType.INCREASE: "adjustment",
    DocumentType.DECREASE: "adjustment",
}

_PREFIXES: dict[DocumentType, str] = {
    DocumentType.PURCHASE: "TRXPU-",
    DocumentType.SALE: "TRXSA-",
    DocumentType.TRANSFER: "TSFR-",
    DocumentType.INCREASE: "ADJ-INC-",
    DocumentType.DECREASE: "ADJ-DEC-",
}

SEQUENCE_COUNTER_NAMES: tuple[str, ...] = ("purchase", "sale", "transfer", "adjustment")

EXPECTED_CONTACT_TYPE: dict[TransactionType, ContactType] = {
    TransactionType.PURCHASE: ContactType.SUPPLIER,
    TransactionType.SALE: ContactType.CUSTOMER,
}

PAYMENT_TYPE_FOR: dict[TransactionType, PaymentType] = {
    TransactionType.PURCHASE: PaymentType.PAID,
    TransactionType.SALE: PaymentType.RECEIVED,
}


@dataclass(frozen=True)
class InventoryPolicy:
    """
    Snapshot of the settings store, read once at the start of an operation.

    Changing the stored settings afterwards never reinterprets documents
    already committed under an earlier snapshot.
    """

    method: InventoryMethod = InventoryMethod.FIFO
    expiry_considered: bool = False
