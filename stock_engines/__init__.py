"""
Module: stock_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines.  This
    is the canonical import surface for stock_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain and stock_kernel.logging_config.
    MUST NOT import stock_kernel models, services, selectors or db, nor
    stock_services or stock_config.

Invariants enforced:
    - Purity: engines never read the clock.  Dates are passed in.
    - Decimal-only arithmetic; floats are rejected upstream.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``, emitting
    STOCK_ENGINE_TRACE log records with engine name, version, input
    fingerprint and duration.
"""

from stock_engines.allocation import AllocationCandidate, AllocationEngine, AllocationPlan
from stock_engines.transit import (
    SendingEntry,
    TransitEngine,
    TransitPlan,
    TransitStep,
    remaining_quantity,
)

__all__ = [
    "AllocationCandidate",
    "AllocationEngine",
    "AllocationPlan",
    "SendingEntry",
    "TransitEngine",
    "TransitPlan",
    "TransitStep",
    "remaining_quantity",
]
