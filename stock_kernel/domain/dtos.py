"""
Data transfer objects crossing the service boundary.

Request items are what route handlers hand to the recorders; BatchSnapshot
is what selectors hand back.  All are frozen so that a validated request
cannot change between validation and the write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class PurchaseItem:
    """One purchased product: becomes exactly one new batch."""

    product_id: UUID | None
    quantity: Decimal
    unit_price: Decimal
    expiry_date: date | None = None


@dataclass(frozen=True)
class SaleItem:
    """One sold product: allocated across existing batches."""

    product_id: UUID | None
    quantity: Decimal
    unit_price: Decimal
    vat_percentage: Decimal = Decimal("0")


@dataclass(frozen=True)
class AdjustmentItem:
    """One adjusted product. ``unit_cost`` is required for increases only."""

    product_id: UUID | None
    quantity: Decimal
    unit_cost: Decimal | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class TransferItem:
    product_id: UUID | None
    quantity: Decimal


@dataclass(frozen=True)
class AllocationEntry:
    """``{batch_id, quantity}``: N units moved into or out of one batch."""

    batch_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class BatchSnapshot:
    """Read-only view of a batch row at query time."""

    batch_id: UUID
    product_id: UUID
    location_id: UUID
    total_quantity: Decimal
    quantity_in_stock: Decimal
    unit_cost: Decimal
    expiry_date: date | None
    created_at: datetime

    @property
    def is_exhausted(self) -> bool:
        return self.quantity_in_stock <= 0


@dataclass(frozen=True)
class StockLevel:
    """Current balance of one product at one location."""

    product_id: UUID
    location_id: UUID
    quantity: Decimal
