"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.batch_selector import BatchSelector

__all__ = [
    "BatchSelector",
]
