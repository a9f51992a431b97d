"""Services for the stock kernel (write side)."""

from stock_kernel.services.batch_ledger import BatchLedger
from stock_kernel.services.sequence_service import SequenceCounter, SequenceService
from stock_kernel.services.settings_service import SettingsService

__all__ = [
    "BatchLedger",
    "SequenceCounter",
    "SequenceService",
    "SettingsService",
]
