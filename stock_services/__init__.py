"""
Module: stock_services
Responsibility:
    Orchestration layer.  Composes the kernel's persistence and services
    with the pure engines into the public operations route handlers call:
    recording purchases, sales and adjustments, moving stock between
    locations, and the read-only availability and low-stock checks.

Architecture position:
    Services -- above stock_kernel and stock_engines.  Every public write
    owns its unit of work (commit on success, rollback on failure).
"""

from stock_services.adjustment_recorder import AdjustmentRecorder
from stock_services.availability import (
    AvailabilityChecker,
    AvailabilityRequest,
    AvailabilityResult,
)
from stock_services.bootstrap import BootstrapResult, bootstrap_store
from stock_services.low_stock import LowStockAlert, LowStockMonitor
from stock_services.stock_movement import StockMovement
from stock_services.transaction_recorder import TransactionRecorder
from stock_services.transfer_service import TransferService

__all__ = [
    "AdjustmentRecorder",
    "AvailabilityChecker",
    "AvailabilityRequest",
    "AvailabilityResult",
    "BootstrapResult",
    "LowStockAlert",
    "LowStockMonitor",
    "StockMovement",
    "TransactionRecorder",
    "TransferService",
    "bootstrap_store",
]
