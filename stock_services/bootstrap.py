"""
Store bootstrap: the settings row and every sequence counter.

The ledger never creates either on demand (a missing row is a fatal
ConfigNotFoundError), so a new store must be bootstrapped once before the
first document is recorded.  Running it again changes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from stock_config.schema import StoreConfig
from stock_kernel.logging_config import get_logger
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settings_service import SettingsService
from stock_services.unit_of_work import unit_of_work

logger = get_logger("services.bootstrap")


@dataclass(frozen=True)
class BootstrapResult:
    settings_created: bool
    counters_created: tuple[str, ...]


def bootstrap_store(session: Session, config: StoreConfig) -> BootstrapResult:
    """Seed the settings row from ``config`` and create missing counters. Idempotent."""
    with unit_of_work(session, "bootstrap_store"):
        settings_created = SettingsService(session).initialize(
            method=config.inventory_method,
            expiry_considered=config.is_expiry_date_considered,
        )
        counters = SequenceService(session).initialize_sequences()

    result = BootstrapResult(settings_created=settings_created, counters_created=tuple(counters))
    logger.info(
        "store_bootstrapped",
        extra={
            "config_name": config.name,
            "settings_created": result.settings_created,
            "counters_created": list(result.counters_created),
        },
    )
    return result
