"""
Tests for reception planning (dairy_engines.reception).

Validates:
- Cumulative quantities per line
- Completeness over every order line, mentioned or not
- Over-delivery counts as fully received
- Round trip: delivering every outstanding quantity completes the order
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dairy_engines.reception import (
    OrderLineState,
    ReceivedQuantity,
    ReceptionOutcome,
    plan_reception,
)


def _line(ordered: str, received: str = "0") -> OrderLineState:
    return OrderLineState(
        line_id=uuid4(),
        product_id=uuid4(),
        quantity_ordered=Decimal(ordered),
        quantity_received=Decimal(received),
    )


class TestPlanReception:

    def test_full_delivery_completes(self):
        line = _line("100")
        plan = plan_reception([line], [ReceivedQuantity(line.line_id, Decimal("100"))])

        assert plan.outcome is ReceptionOutcome.COMPLETE
        assert plan.lines[0].cumulative == Decimal("100")
        assert plan.total_received_now == Decimal("100")

    def test_short_delivery_is_partial(self):
        line = _line("100")
        plan = plan_reception([line], [ReceivedQuantity(line.line_id, Decimal("60"))])

        assert plan.outcome is ReceptionOutcome.PARTIAL
        assert not plan.lines[0].is_fully_received

    def test_previous_receptions_accumulate(self):
        line = _line("100", received="60")
        plan = plan_reception([line], [ReceivedQuantity(line.line_id, Decimal("40"))])

        assert plan.lines[0].previously_received == Decimal("60")
        assert plan.lines[0].cumulative == Decimal("100")
        assert plan.is_complete

    def test_unmentioned_line_keeps_order_partial(self):
        delivered, missing = _line("10"), _line("20")
        plan = plan_reception(
            [delivered, missing], [ReceivedQuantity(delivered.line_id, Decimal("10"))],
        )

        assert plan.outcome is ReceptionOutcome.PARTIAL
        assert [lp.line_id for lp in plan.receiving_lines()] == [delivered.line_id]

    def test_unmentioned_line_already_received_counts(self):
        done, open_line = _line("10", received="10"), _line("20")
        plan = plan_reception([done, open_line], [ReceivedQuantity(open_line.line_id, Decimal("20"))])
        assert plan.is_complete

    def test_over_delivery_is_complete(self):
        line = _line("100")
        plan = plan_reception([line], [ReceivedQuantity(line.line_id, Decimal("120"))])
        assert plan.is_complete
        assert plan.lines[0].cumulative == Decimal("120")

    def test_duplicate_entries_summed(self):
        line = _line("100")
        plan = plan_reception(
            [line],
            [ReceivedQuantity(line.line_id, Decimal("30")), ReceivedQuantity(line.line_id, Decimal("70"))],
        )
        assert plan.lines[0].received_now == Decimal("100")

    def test_negative_quantity_rejected(self):
        line = _line("100")
        with pytest.raises(ValueError):
            plan_reception([line], [ReceivedQuantity(line.line_id, Decimal("-1"))])

    def test_unknown_line_rejected(self):
        with pytest.raises(ValueError):
            plan_reception([_line("100")], [ReceivedQuantity(uuid4(), Decimal("1"))])


_amounts = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("10000"), places=3)


class TestReceptionRoundTrip:

    @settings(max_examples=100, deadline=None)
    @given(
        ordered=st.lists(_amounts, min_size=1, max_size=6),
        fractions=st.lists(st.integers(min_value=0, max_value=100), min_size=6, max_size=6),
    )
    def test_receiving_outstanding_completes(self, ordered, fractions):
        lines = [
            _line(str(qty), received=str((qty * fractions[i] / 100).quantize(Decimal("0.001"))))
            for i, qty in enumerate(ordered)
        ]
        received = [
            ReceivedQuantity(line.line_id, line.quantity_outstanding)
            for line in lines
            if line.quantity_outstanding > 0
        ]
        plan = plan_reception(lines, received)
        assert plan.outcome is ReceptionOutcome.COMPLETE
