"""
LowStockMonitor -- computes low-stock alerts after a stock-out.

An alert fires when a product's configured ``low_quantity`` is greater than
or equal to its balance at the location, so a balance sitting exactly on the
threshold alerts.  Products without a threshold never alert.

Dispatching the alert (mail, push, webhook) is the caller's job; the
monitor only computes and logs.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.policy import InventoryPolicy
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Product
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.services.settings_service import SettingsService

logger = get_logger("services.low_stock")


@dataclass(frozen=True)
class LowStockAlert:
    product_id: UUID
    product_name: str
    location_id: UUID
    balance: Decimal
    low_quantity: Decimal


class LowStockMonitor:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._selector = BatchSelector(session)

    def check(
        self,
        location_id: UUID,
        product_ids: Iterable[UUID],
        policy: InventoryPolicy | None = None,
    ) -> list[LowStockAlert]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        if policy is None:
            policy = SettingsService(self._session).get_policy()

        products = self._session.execute(
            select(Product).where(Product.id.in_(ids), Product.low_quantity.is_not(None))
        ).scalars()

        alerts = []
        for product in sorted(products, key=lambda p: ids.index(p.id)):
            balance = self._selector.stock_balance(
                product.id,
                location_id,
                expiry_considered=policy.expiry_considered,
                today=self._clock.today(),
            )
            if product.low_quantity >= balance:
                alert = LowStockAlert(
                    product_id=product.id,
                    product_name=product.name,
                    location_id=location_id,
                    balance=balance,
                    low_quantity=product.low_quantity,
                )
                logger.info(
                    "low_stock_detected",
                    extra={
                        "product_id": str(product.id),
                        "location_id": str(location_id),
                        "balance": str(balance),
                        "low_quantity": str(product.low_quantity),
                    },
                )
                alerts.append(alert)
        return alerts
