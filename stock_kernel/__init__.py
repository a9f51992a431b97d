"""
Stock Kernel

Batch-based stock ledger for multi-location inventory:
- Every unit of stock lives in a dated, cost-tagged batch
- FIFO / LIFO / FEFO allocation with optional expiry awareness
- Atomic conditional decrements (stock never goes negative)
- Gap-free document numbering inside the writing transaction
"""

__version__ = "0.1.0"
