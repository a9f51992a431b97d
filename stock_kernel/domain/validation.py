"""
Request validation shared by every recorder.

Runs before any unit of work touches a row.  Each validator returns a
normalized copy of the items (quantities and prices coerced to Decimal) or
raises ``ValidationError`` with the message shown to the user.

Check order per request: every line is checked for product, quantity and
price in turn; then the request must be non-empty; then no product may
repeat.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from typing import TypeVar

from stock_kernel.db.types import to_quantity
from stock_kernel.domain.dtos import AdjustmentItem, PurchaseItem, SaleItem, TransferItem
from stock_kernel.domain.policy import AdjustmentType
from stock_kernel.exceptions import ValidationError

MISSING_PRODUCT = "Please select a product for all entries."
BAD_QUANTITY = "Some products have a quantity less than zero. Please update them."
BAD_UNIT_PRICE = "Some products have a unit less than zero. Please update them."
BAD_ESTIMATED_COST = "Some products have an estimated cost less than zero. Please update them."
BAD_VAT = "Some products have a VAT percentage less than zero. Please update them."
EMPTY_REQUEST = "You must select at least one valid product."
MISSING_REASON = "A reason is required for every stock adjustment."

_ZERO = Decimal("0")

ItemT = TypeVar("ItemT")


def _positive(value, message: str, field: str) -> Decimal:
    try:
        amount = to_quantity(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(message, field=field) from exc
    if amount <= _ZERO:
        raise ValidationError(message, field=field)
    return amount


def _non_negative(value, message: str, field: str) -> Decimal:
    try:
        amount = to_quantity(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(message, field=field) from exc
    if amount < _ZERO:
        raise ValidationError(message, field=field)
    return amount


def _finish(items: list[ItemT], duplicate_message: str) -> tuple[ItemT, ...]:
    if not items:
        raise ValidationError(EMPTY_REQUEST, field="items")
    seen = set()
    for item in items:
        if item.product_id in seen:
            raise ValidationError(duplicate_message, field="product_id")
        seen.add(item.product_id)
    return tuple(items)


def validate_quantity(value, field: str = "quantity") -> Decimal:
    """Single positive quantity (line edits, receive, return)."""
    return _positive(value, BAD_QUANTITY, field)


def validate_purchase_items(items: Sequence[PurchaseItem]) -> tuple[PurchaseItem, ...]:
    normalized = []
    for item in items:
        if item.product_id is None:
            raise ValidationError(MISSING_PRODUCT, field="product_id")
        normalized.append(
            replace(
                item,
                quantity=_positive(item.quantity, BAD_QUANTITY, "quantity"),
                unit_price=_positive(item.unit_price, BAD_UNIT_PRICE, "unit_price"),
            )
        )
    return _finish(
        normalized,
        "A product cannot be purchased more than once in a single transaction.",
    )


def validate_sale_items(items: Sequence[SaleItem]) -> tuple[SaleItem, ...]:
    normalized = []
    for item in items:
        if item.product_id is None:
            raise ValidationError(MISSING_PRODUCT, field="product_id")
        normalized.append(
            replace(
                item,
                quantity=_positive(item.quantity, BAD_QUANTITY, "quantity"),
                unit_price=_positive(item.unit_price, BAD_UNIT_PRICE, "unit_price"),
                vat_percentage=_non_negative(item.vat_percentage, BAD_VAT, "vat_percentage"),
            )
        )
    return _finish(
        normalized,
        "A product cannot be sold more than once in a single transaction.",
    )


def validate_adjustment_items(
    items: Sequence[AdjustmentItem],
    adjustment_type: AdjustmentType,
) -> tuple[AdjustmentItem, ...]:
    """Increase lines need a positive unit cost; decrease lines carry none."""
    normalized = []
    for item in items:
        if item.product_id is None:
            raise ValidationError(MISSING_PRODUCT, field="product_id")
        quantity = _positive(item.quantity, BAD_QUANTITY, "quantity")
        if adjustment_type == AdjustmentType.INCREASE:
            if item.unit_cost is None:
                raise ValidationError(BAD_ESTIMATED_COST, field="unit_cost")
            unit_cost = _positive(item.unit_cost, BAD_ESTIMATED_COST, "unit_cost")
            normalized.append(replace(item, quantity=quantity, unit_cost=unit_cost))
        else:
            normalized.append(
                replace(item, quantity=quantity, unit_cost=None, expiry_date=None)
            )
    return _finish(
        normalized,
        "A product cannot be adjusted more than once in a single adjustment.",
    )


def validate_transfer_items(items: Sequence[TransferItem]) -> tuple[TransferItem, ...]:
    normalized = []
    for item in items:
        if item.product_id is None:
            raise ValidationError(MISSING_PRODUCT, field="product_id")
        normalized.append(
            replace(item, quantity=_positive(item.quantity, BAD_QUANTITY, "quantity"))
        )
    return _finish(
        normalized,
        "A product cannot be transferred more than once in a single transfer.",
    )


def validate_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError(MISSING_REASON, field="reason")
    return reason.strip()


def validate_unit_price(value, field: str = "unit_price") -> Decimal:
    return _positive(value, BAD_UNIT_PRICE, field)


def validate_unit_cost(value, field: str = "unit_cost") -> Decimal:
    return _positive(value, BAD_ESTIMATED_COST, field)


def validate_vat(value) -> Decimal:
    return _non_negative(value, BAD_VAT, "vat_percentage")
