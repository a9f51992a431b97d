"""Domain models for the stock ledger."""

from stock_kernel.models.adjustment import (
    StockAdjustment,
    StockAdjustmentLine,
    StockAdjustmentLineBatch,
)
from stock_kernel.models.batch import Batch
from stock_kernel.models.catalog import Contact, Product
from stock_kernel.models.settings import DEFAULT_SETTING_KEY, InventorySettings
from stock_kernel.models.transaction import (
    Payment,
    Transaction,
    TransactionLine,
    TransactionLineBatch,
)
from stock_kernel.models.transfer import (
    Transfer,
    TransferLine,
    TransferReceivingBatch,
    TransferSendingBatch,
)

__all__ = [
    "Batch",
    "Product",
    "Contact",
    "InventorySettings",
    "DEFAULT_SETTING_KEY",
    "Transaction",
    "TransactionLine",
    "TransactionLineBatch",
    "Payment",
    "StockAdjustment",
    "StockAdjustmentLine",
    "StockAdjustmentLineBatch",
    "Transfer",
    "TransferLine",
    "TransferSendingBatch",
    "TransferReceivingBatch",
]
