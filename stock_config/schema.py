"""
StoreConfig schema.

The frozen runtime artifact produced from a store YAML file.  The YAML is
the human-authored source; callers only ever see this dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_kernel.domain.policy import InventoryMethod

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class StoreConfig:
    """Runtime configuration for one store deployment."""

    name: str
    version: int
    database_url: str
    echo_sql: bool
    log_level: str
    inventory_method: InventoryMethod
    is_expiry_date_considered: bool
    checksum: str
