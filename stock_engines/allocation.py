"""
Module: stock_engines.allocation
Responsibility:
    Distribute a requested quantity across ordered candidate batches.  The
    ordering (FIFO, LIFO, FEFO) is decided by the candidate query; this
    engine only walks the list it is given.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain (and the kernel logger).

Invariants enforced:
    - Conservation: allocated + shortfall == requested.
    - Per-batch bound: no line takes more than its candidate's available.
    - Determinism: the same candidates in the same order always yield the
      same lines; no clock, no randomness.
    - Candidates with nothing available produce no line.

Failure modes:
    - ValueError on a non-positive request or a negative candidate.
    - A shortfall is NOT an error here; the plan reports it and the caller
      decides (the stock-movement primitive raises InsufficientStockError).

Usage:
    from stock_engines.allocation import AllocationEngine, AllocationCandidate

    plan = AllocationEngine().allocate(
        requested=Decimal("15"),
        candidates=[
            AllocationCandidate(batch_id=b1, available=Decimal("10")),
            AllocationCandidate(batch_id=b2, available=Decimal("10")),
        ],
    )
    # plan.lines == (AllocationEntry(b1, 10), AllocationEntry(b2, 5))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import AllocationEntry, BatchSnapshot
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationCandidate:
    """
    A batch that can supply stock.

    Guarantees:
        - ``available`` is non-negative.
    """

    batch_id: UUID
    available: Decimal

    def __post_init__(self) -> None:
        if self.available < _ZERO:
            raise ValueError(f"Candidate {self.batch_id} has negative availability")

    @classmethod
    def from_snapshot(cls, snapshot: BatchSnapshot) -> AllocationCandidate:
        return cls(batch_id=snapshot.batch_id, available=snapshot.quantity_in_stock)


@dataclass(frozen=True)
class AllocationPlan:
    """
    Outcome of one allocation run.

    Guarantees:
        - ``allocated + shortfall == requested``.
        - ``lines`` are in candidate order, every quantity > 0.
    Non-goals:
        - Does not touch any batch; the caller applies the plan.
    """

    requested: Decimal
    lines: tuple[AllocationEntry, ...]
    allocated: Decimal
    shortfall: Decimal

    @property
    def is_complete(self) -> bool:
        return self.shortfall == _ZERO


class AllocationEngine:
    """
    Greedy walk over ordered candidates.

    Contract:
        For each candidate in the order given, take
        ``min(candidate.available, remaining)``; stop once nothing remains.
    Non-goals:
        - Does not order candidates.
        - Does not re-validate total availability across request lines.
    """

    @traced_engine("allocation", "1.0", fingerprint_fields=("requested", "candidates"))
    def allocate(
        self,
        requested: Decimal,
        candidates: Sequence[AllocationCandidate],
    ) -> AllocationPlan:
        if requested <= _ZERO:
            raise ValueError("Requested quantity must be positive")

        remaining = requested
        lines: list[AllocationEntry] = []
        for candidate in candidates:
            if remaining == _ZERO:
                break
            if candidate.available == _ZERO:
                continue
            take = min(candidate.available, remaining)
            lines.append(AllocationEntry(batch_id=candidate.batch_id, quantity=take))
            remaining -= take

        plan = AllocationPlan(
            requested=requested,
            lines=tuple(lines),
            allocated=requested - remaining,
            shortfall=remaining,
        )

        if not plan.is_complete:
            logger.warning("allocation_shortfall", extra={
                "requested": str(requested),
                "allocated": str(plan.allocated),
                "shortfall": str(plan.shortfall),
                "candidate_count": len(candidates),
            })
        else:
            logger.debug("allocation_completed", extra={
                "requested": str(requested),
                "line_count": len(lines),
            })
        return plan
