"""
Tests for the allocation engine (stock_engines.allocation).

Covers:
- Greedy walk in candidate order
- Exhausted candidates skipped
- Shortfall reporting
- Conservation and per-batch bounds (property-based)
- Determinism and engine tracing
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_engines.allocation import AllocationCandidate, AllocationEngine, AllocationPlan
from stock_engines.tracer import compute_input_fingerprint
from stock_kernel.domain.dtos import AllocationEntry


def _candidates(*available: str) -> list[AllocationCandidate]:
    return [AllocationCandidate(batch_id=uuid4(), available=Decimal(a)) for a in available]


class TestGreedyWalk:
    """Take min(available, remaining) per candidate, in order."""

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_spans_two_batches(self):
        """15 units over [10, 10] -> B1:10, B2:5."""
        b1, b2 = _candidates("10", "10")
        plan = self.engine.allocate(requested=Decimal("15"), candidates=[b1, b2])

        assert plan.is_complete
        assert plan.lines == (
            AllocationEntry(b1.batch_id, Decimal("10")),
            AllocationEntry(b2.batch_id, Decimal("5")),
        )
        assert plan.allocated == Decimal("15")
        assert plan.shortfall == Decimal("0")

    def test_single_batch_covers(self):
        b1, b2 = _candidates("10", "10")
        plan = self.engine.allocate(requested=Decimal("4"), candidates=[b1, b2])

        assert plan.lines == (AllocationEntry(b1.batch_id, Decimal("4")),)

    def test_order_is_callers_order(self):
        """The engine never reorders; LIFO is just a reversed candidate list."""
        b1, b2 = _candidates("10", "10")
        plan = self.engine.allocate(requested=Decimal("12"), candidates=[b2, b1])

        assert [line.batch_id for line in plan.lines] == [b2.batch_id, b1.batch_id]
        assert plan.lines[0].quantity == Decimal("10")
        assert plan.lines[1].quantity == Decimal("2")

    def test_exhausted_candidates_skipped(self):
        b1, b2, b3 = _candidates("0", "3", "0")
        plan = self.engine.allocate(requested=Decimal("2"), candidates=[b1, b2, b3])

        assert plan.lines == (AllocationEntry(b2.batch_id, Decimal("2")),)

    def test_fractional_quantities(self):
        b1, b2 = _candidates("1.25", "4")
        plan = self.engine.allocate(requested=Decimal("2.5"), candidates=[b1, b2])

        assert plan.lines[0].quantity == Decimal("1.25")
        assert plan.lines[1].quantity == Decimal("1.25")


class TestShortfall:

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_shortfall_reported_not_raised(self):
        b1, b2 = _candidates("3", "4")
        plan = self.engine.allocate(requested=Decimal("10"), candidates=[b1, b2])

        assert not plan.is_complete
        assert plan.allocated == Decimal("7")
        assert plan.shortfall == Decimal("3")
        assert len(plan.lines) == 2

    def test_no_candidates(self):
        plan = self.engine.allocate(requested=Decimal("1"), candidates=[])

        assert plan.lines == ()
        assert plan.shortfall == Decimal("1")

    def test_shortfall_logged(self, captured_logs):
        self.engine.allocate(requested=Decimal("5"), candidates=_candidates("1"))

        records = [r for r in captured_logs() if r["message"] == "allocation_shortfall"]
        assert len(records) == 1
        assert records[0]["shortfall"] == "4"
        assert records[0]["level"] == "WARNING"


class TestInputValidation:

    def setup_method(self):
        self.engine = AllocationEngine()

    @pytest.mark.parametrize("requested", [Decimal("0"), Decimal("-1")])
    def test_non_positive_request(self, requested):
        with pytest.raises(ValueError):
            self.engine.allocate(requested=requested, candidates=_candidates("5"))

    def test_negative_candidate(self):
        with pytest.raises(ValueError):
            AllocationCandidate(batch_id=uuid4(), available=Decimal("-1"))


class TestAllocationProperties:
    """Property-based invariants over arbitrary candidate lists."""

    @given(
        requested=st.integers(min_value=1, max_value=500),
        available=st.lists(st.integers(min_value=0, max_value=100), max_size=12),
    )
    @settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_conservation_and_bounds(self, requested, available):
        candidates = [AllocationCandidate(uuid4(), Decimal(a)) for a in available]
        plan = AllocationEngine().allocate(requested=Decimal(requested), candidates=candidates)

        assert plan.allocated + plan.shortfall == Decimal(requested)
        assert sum((line.quantity for line in plan.lines), Decimal("0")) == plan.allocated
        assert plan.allocated == min(Decimal(requested), Decimal(sum(available)))

        by_id = {c.batch_id: c.available for c in candidates}
        for line in plan.lines:
            assert Decimal("0") < line.quantity <= by_id[line.batch_id]

    @given(
        requested=st.integers(min_value=1, max_value=200),
        available=st.lists(st.integers(min_value=0, max_value=50), min_size=1, max_size=8),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_only_last_line_is_partial(self, requested, available):
        candidates = [AllocationCandidate(uuid4(), Decimal(a)) for a in available]
        plan = AllocationEngine().allocate(requested=Decimal(requested), candidates=candidates)

        by_id = {c.batch_id: c.available for c in candidates}
        for line in plan.lines[:-1]:
            assert line.quantity == by_id[line.batch_id]

    @given(available=st.lists(st.integers(min_value=0, max_value=50), max_size=8))
    @settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_deterministic(self, available):
        candidates = [AllocationCandidate(uuid4(), Decimal(a)) for a in available]
        engine = AllocationEngine()
        first = engine.allocate(requested=Decimal("37"), candidates=candidates)
        second = engine.allocate(requested=Decimal("37"), candidates=candidates)

        assert isinstance(first, AllocationPlan)
        assert first == second


class TestEngineTrace:

    def test_trace_emitted_with_fingerprint(self, captured_logs):
        candidates = _candidates("10")
        AllocationEngine().allocate(requested=Decimal("3"), candidates=candidates)

        traces = [r for r in captured_logs() if r["message"] == "STOCK_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "allocation"
        assert traces[0]["input_fingerprint"] == compute_input_fingerprint(
            ("requested", "candidates"),
            {"requested": Decimal("3"), "candidates": candidates},
        )

    def test_fingerprint_ignores_decimal_scale(self):
        fields = ("requested",)
        assert compute_input_fingerprint(fields, {"requested": Decimal("3")}) == (
            compute_input_fingerprint(fields, {"requested": Decimal("3.000")})
        )

    def test_fingerprint_missing_field_is_null(self):
        fp = compute_input_fingerprint(("requested",), {})
        assert len(fp) == 16
