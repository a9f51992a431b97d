"""
Tests for the transit walks (stock_engines.transit).

Covers:
- Receipt: forward over sending entries, skipping fully received ones
- Return: reverse over sending entries, removal of untouched entries
- Release: reverse over allocation entries
- Closure arithmetic
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_engines.transit import (
    SendingEntry,
    TransitEngine,
    TransitStep,
    remaining_quantity,
)
from stock_kernel.domain.dtos import AllocationEntry

D = Decimal


class TestPlanReceipt:

    def setup_method(self):
        self.engine = TransitEngine()
        self.b1, self.b2 = uuid4(), uuid4()

    def test_walks_forward(self):
        entries = [SendingEntry(self.b1, D("10")), SendingEntry(self.b2, D("2"))]
        plan = self.engine.plan_receipt(requested=D("5"), entries=entries)

        assert plan.is_complete
        assert plan.steps == (TransitStep(index=0, batch_id=self.b1, quantity=D("5")),)

    def test_continues_into_next_entry(self):
        entries = [SendingEntry(self.b1, D("10"), D("8")), SendingEntry(self.b2, D("2"))]
        plan = self.engine.plan_receipt(requested=D("3"), entries=entries)

        assert [(s.index, s.quantity) for s in plan.steps] == [(0, D("2")), (1, D("1"))]

    def test_fully_received_entry_skipped(self):
        entries = [SendingEntry(self.b1, D("4"), D("4")), SendingEntry(self.b2, D("6"))]
        plan = self.engine.plan_receipt(requested=D("6"), entries=entries)

        assert [(s.index, s.batch_id) for s in plan.steps] == [(1, self.b2)]

    def test_shortfall(self):
        entries = [SendingEntry(self.b1, D("4"), D("1"))]
        plan = self.engine.plan_receipt(requested=D("5"), entries=entries)

        assert not plan.is_complete
        assert plan.fulfilled == D("3")
        assert plan.shortfall == D("2")

    def test_receipt_never_removes(self):
        entries = [SendingEntry(self.b1, D("4"))]
        plan = self.engine.plan_receipt(requested=D("4"), entries=entries)

        assert plan.steps[0].remove_entry is False

    def test_non_positive_request(self):
        with pytest.raises(ValueError):
            self.engine.plan_receipt(requested=D("0"), entries=[])


class TestPlanReturn:

    def setup_method(self):
        self.engine = TransitEngine()
        self.b1, self.b2 = uuid4(), uuid4()

    def test_walks_backward(self):
        """Most recently sent entry is returned first."""
        entries = [SendingEntry(self.b1, D("5")), SendingEntry(self.b2, D("5"))]
        plan = self.engine.plan_return(requested=D("3"), entries=entries)

        assert plan.steps == (TransitStep(index=1, batch_id=self.b2, quantity=D("3")),)

    def test_untouched_entry_returned_in_full_is_removed(self):
        entries = [SendingEntry(self.b1, D("5")), SendingEntry(self.b2, D("2"))]
        plan = self.engine.plan_return(requested=D("4"), entries=entries)

        assert plan.steps[0] == TransitStep(index=1, batch_id=self.b2, quantity=D("2"), remove_entry=True)
        assert plan.steps[1] == TransitStep(index=0, batch_id=self.b1, quantity=D("2"), remove_entry=False)

    def test_partly_received_entry_kept(self):
        entries = [SendingEntry(self.b1, D("10"), D("5"))]
        plan = self.engine.plan_return(requested=D("5"), entries=entries)

        assert plan.steps == (TransitStep(index=0, batch_id=self.b1, quantity=D("5"), remove_entry=False),)

    def test_fully_received_entry_skipped(self):
        entries = [SendingEntry(self.b1, D("3")), SendingEntry(self.b2, D("2"), D("2"))]
        plan = self.engine.plan_return(requested=D("3"), entries=entries)

        assert [s.index for s in plan.steps] == [0]
        assert plan.steps[0].remove_entry is True


class TestPlanRelease:

    def setup_method(self):
        self.engine = TransitEngine()
        self.b1, self.b2 = uuid4(), uuid4()

    def test_reverse_walk(self):
        entries = [AllocationEntry(self.b1, D("10")), AllocationEntry(self.b2, D("5"))]
        plan = self.engine.plan_release(requested=D("7"), entries=entries)

        assert plan.steps == (
            TransitStep(index=1, batch_id=self.b2, quantity=D("5"), remove_entry=True),
            TransitStep(index=0, batch_id=self.b1, quantity=D("2"), remove_entry=False),
        )

    def test_release_everything(self):
        entries = [AllocationEntry(self.b1, D("10")), AllocationEntry(self.b2, D("5"))]
        plan = self.engine.plan_release(requested=D("15"), entries=entries)

        assert plan.is_complete
        assert all(s.remove_entry for s in plan.steps)

    def test_over_release_shortfall(self):
        plan = self.engine.plan_release(requested=D("3"), entries=[AllocationEntry(self.b1, D("2"))])
        assert plan.shortfall == D("1")


class TestSendReceiveReturnWalk:
    """
    Send 12 over [B1:10, B2:2], receive 5, return 7: the B2 entry goes
    away, B1 shrinks to 5 with received_qty 5, the line closes.
    """

    def test_full_lifecycle(self):
        engine = TransitEngine()
        b1, b2 = uuid4(), uuid4()
        entries = [SendingEntry(b1, D("10")), SendingEntry(b2, D("2"))]

        receipt = engine.plan_receipt(requested=D("5"), entries=entries)
        assert [(s.batch_id, s.quantity) for s in receipt.steps] == [(b1, D("5"))]
        entries = [SendingEntry(b1, D("10"), D("5")), SendingEntry(b2, D("2"))]

        assert remaining_quantity(D("12"), D("0"), D("5")) == D("7")
        returned = engine.plan_return(requested=D("7"), entries=entries)
        assert returned.steps == (
            TransitStep(index=1, batch_id=b2, quantity=D("2"), remove_entry=True),
            TransitStep(index=0, batch_id=b1, quantity=D("5"), remove_entry=False),
        )
        assert remaining_quantity(D("12"), D("7"), D("5")) == D("0")


class TestClosureProperty:

    @given(
        sent=st.lists(st.integers(min_value=1, max_value=20), min_size=1, max_size=6),
        receive_share=st.integers(min_value=0, max_value=100),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_receipt_then_return_empties_transit(self, sent, receive_share):
        """Receiving any part and returning the rest moves every unit exactly once."""
        engine = TransitEngine()
        total = sum(sent)
        batch_ids = [uuid4() for _ in sent]
        entries = [SendingEntry(b, D(q)) for b, q in zip(batch_ids, sent)]
        to_receive = total * receive_share // 100

        received = [D(0)] * len(entries)
        if to_receive:
            plan = engine.plan_receipt(requested=D(to_receive), entries=entries)
            assert plan.is_complete
            for step in plan.steps:
                received[step.index] += step.quantity
        entries = [SendingEntry(e.batch_id, e.quantity, r) for e, r in zip(entries, received)]

        to_return = total - to_receive
        if to_return:
            plan = engine.plan_return(requested=D(to_return), entries=entries)
            assert plan.is_complete
            for step in plan.steps:
                assert step.quantity <= entries[step.index].unreceived

        assert remaining_quantity(D(total), D(to_return), D(to_receive)) == D(0)
