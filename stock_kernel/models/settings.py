"""
Module: stock_kernel.models.settings
Responsibility: The single settings row that governs allocation behaviour --
    inventory method and whether expiry dates are considered.
Architecture position: Kernel > Models.

Invariants enforced:
    - Exactly one row per ``setting_key`` (unique constraint); the ledger
      reads the ``default`` row.
    - Read at the start of each allocation-involving operation; documents
      already committed are never reinterpreted when it changes.
"""

from __future__ import annotations

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.domain.policy import InventoryMethod

DEFAULT_SETTING_KEY = "default"


class InventorySettings(Base):
    __tablename__ = "inventory_settings"

    setting_key: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        default=DEFAULT_SETTING_KEY,
    )

    inventory_method: Mapped[InventoryMethod] = mapped_column(
        String(10),
        nullable=False,
        default=InventoryMethod.FIFO.value,
    )

    is_expiry_date_considered: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return (
            f"<InventorySettings {self.setting_key}: {self.inventory_method} "
            f"expiry={self.is_expiry_date_considered}>"
        )
