"""Tests for the engine invocation tracer (DAIRY_ENGINE_TRACE)."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from dairy_engines.fifo import LotCandidate, plan_fifo_consumption
from dairy_engines.tracer import canonical_form, fingerprint, traced_engine


class TestCanonicalForm:

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, "null"),
            (Decimal("100.000000000"), "100"),
            (Decimal("1.500"), "1.5"),
            (date(2025, 1, 15), "2025-01-15"),
            ({"b": 1, "a": 2}, "{a:2,b:1}"),
            ((Decimal("1"), None), "[1,null]"),
        ],
    )
    def test_values(self, value, expected):
        assert canonical_form(value) == expected

    def test_database_scale_does_not_change_fingerprint(self):
        assert fingerprint({"q": Decimal("40")}, ("q",)) == fingerprint({"q": Decimal("40.000000000")}, ("q",))


class TestTracedEngine:

    def test_unknown_field_rejected_at_decoration(self):
        with pytest.raises(ValueError, match="quantity"):
            @traced_engine("demo", "1.0", fingerprint_fields=("quantity",))
            def demo(amount):
                return amount

    def test_positional_and_keyword_calls_share_fingerprint(self, captured_logs):
        @traced_engine("demo", "1.0", fingerprint_fields=("amount",), summarize=lambda r: {"doubled": str(r)})
        def double(amount):
            return amount * 2

        assert double(Decimal("3")) == Decimal("6")
        double(amount=Decimal("3"))

        traces = [r for r in captured_logs() if r["message"] == "DAIRY_ENGINE_TRACE"]
        assert len(traces) == 2
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]
        assert traces[0]["result_summary"] == {"doubled": "6"}
        assert traces[0]["engine_name"] == "demo"

    def test_generator_argument_not_exhausted(self, captured_logs):
        lots = (
            LotCandidate(
                lot_id=uuid4(), lot_number=f"L{n}", quantity_remaining=Decimal("10"),
                expiry_date=None, created_at=datetime(2025, 1, 15, 8, n, tzinfo=timezone.utc),
            )
            for n in range(2)
        )
        plan = plan_fifo_consumption(lots, quantity=Decimal("15"))

        assert plan.sufficient
        (trace,) = [r for r in captured_logs() if r["message"] == "DAIRY_ENGINE_TRACE"]
        assert trace["result_summary"] == {"sufficient": True, "lots_touched": 2}
