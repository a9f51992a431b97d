"""
Module: stock_engines.transit
Responsibility:
    The ordered walks over a line's allocation entries:

    - ``plan_receipt``  forward over a transfer line's sending entries,
      taking each entry's unreceived remainder until the receipt is met.
    - ``plan_return``   backward over the same entries ("last out, first
      back"), restoring unreceived units to their source batches.
    - ``plan_release``  backward over a sale or decrease line's allocation
      entries when the line shrinks or is deleted.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The transfer service and
    the stock-movement primitive apply the plans.

Invariants enforced:
    - Entries whose unreceived remainder is 0 are skipped, never errored.
    - A returned sending entry with received_qty == 0 that is returned in
      full is marked for removal; any other touched entry shrinks in place,
      so received_qty <= quantity keeps holding.
    - fulfilled + shortfall == requested.

Failure modes:
    - ValueError on a non-positive request.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import AllocationEntry
from stock_kernel.logging_config import get_logger

logger = get_logger("engines.transit")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class SendingEntry:
    """Sender-side allocation entry with its received counter."""

    batch_id: UUID
    quantity: Decimal
    received_qty: Decimal = _ZERO

    @property
    def unreceived(self) -> Decimal:
        return self.quantity - self.received_qty


@dataclass(frozen=True)
class TransitStep:
    """
    One touch of one entry.

    ``index`` is the entry's position in the sequence that was walked, so
    the caller can map the step back onto its own rows.
    """

    index: int
    batch_id: UUID
    quantity: Decimal
    remove_entry: bool = False


@dataclass(frozen=True)
class TransitPlan:
    requested: Decimal
    steps: tuple[TransitStep, ...]
    fulfilled: Decimal
    shortfall: Decimal

    @property
    def is_complete(self) -> bool:
        return self.shortfall == _ZERO


def remaining_quantity(
    total_quantity: Decimal,
    returned_quantity: Decimal,
    received_quantity: Decimal,
) -> Decimal:
    """Quantity still in transit; negative means the line is corrupt."""
    return total_quantity - returned_quantity - received_quantity


def _require_positive(requested: Decimal) -> None:
    if requested <= _ZERO:
        raise ValueError("Requested quantity must be positive")


def _plan(requested: Decimal, steps: list[TransitStep]) -> TransitPlan:
    fulfilled = sum((s.quantity for s in steps), _ZERO)
    return TransitPlan(
        requested=requested,
        steps=tuple(steps),
        fulfilled=fulfilled,
        shortfall=requested - fulfilled,
    )


class TransitEngine:
    """
    Receive, return and release walks.

    Contract:
        Every method takes the entries in their stored (send-time) order
        and returns a plan; none mutates its input.
    """

    @traced_engine("transit_receipt", "1.0", fingerprint_fields=("requested", "entries"))
    def plan_receipt(
        self,
        requested: Decimal,
        entries: Sequence[SendingEntry],
    ) -> TransitPlan:
        _require_positive(requested)
        remaining = requested
        steps: list[TransitStep] = []
        for index, entry in enumerate(entries):
            if remaining == _ZERO:
                break
            if entry.unreceived <= _ZERO:
                continue
            take = min(entry.unreceived, remaining)
            steps.append(TransitStep(index=index, batch_id=entry.batch_id, quantity=take))
            remaining -= take

        plan = _plan(requested, steps)
        logger.debug("receipt_planned", extra={
            "requested": str(requested),
            "fulfilled": str(plan.fulfilled),
            "step_count": len(steps),
        })
        return plan

    @traced_engine("transit_return", "1.0", fingerprint_fields=("requested", "entries"))
    def plan_return(
        self,
        requested: Decimal,
        entries: Sequence[SendingEntry],
    ) -> TransitPlan:
        _require_positive(requested)
        remaining = requested
        steps: list[TransitStep] = []
        for index in range(len(entries) - 1, -1, -1):
            if remaining == _ZERO:
                break
            entry = entries[index]
            if entry.unreceived <= _ZERO:
                continue
            take = min(entry.unreceived, remaining)
            steps.append(
                TransitStep(
                    index=index,
                    batch_id=entry.batch_id,
                    quantity=take,
                    remove_entry=entry.received_qty == _ZERO and take == entry.quantity,
                )
            )
            remaining -= take

        plan = _plan(requested, steps)
        logger.debug("return_planned", extra={
            "requested": str(requested),
            "fulfilled": str(plan.fulfilled),
            "step_count": len(steps),
        })
        return plan

    @traced_engine("release", "1.0", fingerprint_fields=("requested", "entries"))
    def plan_release(
        self,
        requested: Decimal,
        entries: Sequence[AllocationEntry],
    ) -> TransitPlan:
        """Give back the most recently drawn units first."""
        _require_positive(requested)
        remaining = requested
        steps: list[TransitStep] = []
        for index in range(len(entries) - 1, -1, -1):
            if remaining == _ZERO:
                break
            entry = entries[index]
            if entry.quantity <= _ZERO:
                continue
            take = min(entry.quantity, remaining)
            steps.append(
                TransitStep(
                    index=index,
                    batch_id=entry.batch_id,
                    quantity=take,
                    remove_entry=take == entry.quantity,
                )
            )
            remaining -= take

        return _plan(requested, steps)
