"""
SettingsService -- the settings store read by every allocation path.

Responsibility:
    Reads and updates the single InventorySettings row and hands callers
    an immutable InventoryPolicy snapshot.

Architecture position:
    Kernel > Services.  Consumed by the stock-movement primitive and the
    recorders at the start of each operation.

Failure modes:
    - ConfigNotFoundError when the settings row is missing (fatal).
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.policy import InventoryMethod, InventoryPolicy
from stock_kernel.exceptions import ConfigNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.settings import DEFAULT_SETTING_KEY, InventorySettings

logger = get_logger("services.settings")


class SettingsService:
    """
    Settings store access.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
    """

    def __init__(self, session: Session, setting_key: str = DEFAULT_SETTING_KEY):
        self._session = session
        self._setting_key = setting_key

    def _row(self) -> InventorySettings | None:
        return self._session.execute(
            select(InventorySettings).where(
                InventorySettings.setting_key == self._setting_key
            )
        ).scalar_one_or_none()

    def get_policy(self) -> InventoryPolicy:
        """
        Snapshot of the current inventory method and expiry flag.

        Raises:
            ConfigNotFoundError: the settings row does not exist.
        """
        row = self._row()
        if row is None:
            logger.error("settings_missing", extra={"setting_key": self._setting_key})
            raise ConfigNotFoundError("inventory settings", self._setting_key)
        return InventoryPolicy(
            method=InventoryMethod(row.inventory_method),
            expiry_considered=bool(row.is_expiry_date_considered),
        )

    def update_policy(
        self,
        method: InventoryMethod | None = None,
        expiry_considered: bool | None = None,
    ) -> InventoryPolicy:
        """Change settings for future operations; committed documents are untouched."""
        row = self._row()
        if row is None:
            raise ConfigNotFoundError("inventory settings", self._setting_key)
        if method is not None:
            row.inventory_method = InventoryMethod(method).value
        if expiry_considered is not None:
            row.is_expiry_date_considered = expiry_considered
        self._session.flush()

        policy = self.get_policy()
        logger.info(
            "settings_updated",
            extra={
                "inventory_method": policy.method.value,
                "expiry_considered": policy.expiry_considered,
            },
        )
        return policy

    def initialize(
        self,
        method: InventoryMethod = InventoryMethod.FIFO,
        expiry_considered: bool = False,
    ) -> bool:
        """Create the settings row if missing.  Returns True when created."""
        if self._row() is not None:
            return False
        self._session.add(
            InventorySettings(
                setting_key=self._setting_key,
                inventory_method=InventoryMethod(method).value,
                is_expiry_date_considered=expiry_considered,
            )
        )
        self._session.flush()
        logger.info(
            "settings_initialized",
            extra={"inventory_method": InventoryMethod(method).value, "expiry_considered": expiry_considered},
        )
        return True
