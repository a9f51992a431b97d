"""
AvailabilityChecker -- read-only guard run before every stock-out.

Responsibility:
    For each requested line, compare the requested quantity against the
    product's live balance at the location plus whatever the caller is
    about to put back (``restocked_quantity``, e.g. a sale line's current
    quantity when the line is being edited).  Reports the first failing
    line with a message fit for the end user.

Architecture position:
    Services -- reads through BatchSelector and the settings store.

Concurrency:
    Advisory only.  Stock can change between the check and the allocation;
    the conditional decrement in BatchLedger.adjust_stock is what actually
    keeps stock non-negative.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.db.types import format_quantity, to_quantity
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.exceptions import (
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Product
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.services.settings_service import SettingsService

logger = get_logger("services.availability")

NO_ITEMS = "No items provided to check stock availability."
PRODUCT_NOT_FOUND = "Product not found."


@dataclass(frozen=True)
class AvailabilityRequest:
    product_id: UUID
    quantity: Decimal
    restocked_quantity: Decimal = Decimal("0")


@dataclass(frozen=True)
class AvailabilityResult:
    """``stock_error`` is set exactly when ``can_proceed`` is False."""

    can_proceed: bool
    stock_error: str | None = None
    product_id: UUID | None = None
    available: Decimal | None = None
    requested: Decimal | None = None


class AvailabilityChecker:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._selector = BatchSelector(session)

    def check(
        self,
        location_id: UUID,
        items: Sequence[AvailabilityRequest],
        policy: InventoryPolicy | None = None,
    ) -> AvailabilityResult:
        """First failing line wins; later lines are not examined."""
        if not items:
            return AvailabilityResult(can_proceed=False, stock_error=NO_ITEMS)

        if policy is None:
            policy = SettingsService(self._session).get_policy()
        today = self._clock.today()

        for item in items:
            product = self._session.get(Product, item.product_id)
            if product is None:
                return AvailabilityResult(
                    can_proceed=False,
                    stock_error=PRODUCT_NOT_FOUND,
                    product_id=item.product_id,
                )

            requested = to_quantity(item.quantity)
            balance = self._selector.stock_balance(
                item.product_id,
                location_id,
                expiry_considered=policy.expiry_considered,
                today=today,
            )
            available = balance + to_quantity(item.restocked_quantity)

            if requested > available:
                unit = product.unit_name
                message = (
                    f"Insufficient stock for product {product.name}. "
                    f"Maximum Allowed: {format_quantity(available)} {unit} "
                    f"Requested: {format_quantity(requested)} {unit}"
                )
                logger.info(
                    "availability_check_failed",
                    extra={
                        "product_id": str(item.product_id),
                        "location_id": str(location_id),
                        "available": str(available),
                        "requested": str(requested),
                    },
                )
                return AvailabilityResult(
                    can_proceed=False,
                    stock_error=message,
                    product_id=item.product_id,
                    available=available,
                    requested=requested,
                )

        return AvailabilityResult(can_proceed=True)

    def ensure(
        self,
        location_id: UUID,
        items: Sequence[AvailabilityRequest],
        policy: InventoryPolicy | None = None,
    ) -> None:
        """
        Same check, raising instead of returning.

        Raises:
            ValidationError: no items.
            ProductNotFoundError: an unknown product.
            InsufficientStockError: a line asks for more than is available.
        """
        result = self.check(location_id, items, policy)
        if result.can_proceed:
            return
        if result.stock_error == NO_ITEMS:
            raise ValidationError(NO_ITEMS, field="items")
        if result.available is None:
            raise ProductNotFoundError(str(result.product_id))
        raise InsufficientStockError(
            product_id=str(result.product_id),
            location_id=str(location_id),
            available=result.available,
            requested=result.requested,
            message=result.stock_error,
        )
