"""Tests for reorder-level classification (dairy_engines.stock_state)."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dairy_engines.stock_state import StockState, compute_stock_state, effective_order_threshold

SAFETY = Decimal("50")
ORDER = Decimal("80")


class TestComputeStockState:

    @pytest.mark.parametrize(
        "stock,expected",
        [
            (Decimal("0"), StockState.OUT_OF_STOCK),
            (Decimal("-2"), StockState.OUT_OF_STOCK),
            (Decimal("10"), StockState.TO_ORDER),
            (Decimal("80"), StockState.TO_ORDER),
            (Decimal("80.5"), StockState.HEALTHY),
        ],
    )
    def test_ordinary_material(self, stock, expected):
        assert compute_stock_state(stock, SAFETY, ORDER).state is expected

    @pytest.mark.parametrize(
        "stock,expected",
        [
            (Decimal("0"), StockState.BLOCKING_PRODUCTION),
            (Decimal("49"), StockState.BLOCKING_PRODUCTION),
            (Decimal("50"), StockState.TO_ORDER),
            (Decimal("81"), StockState.HEALTHY),
        ],
    )
    def test_production_blocking_material(self, stock, expected):
        assert compute_stock_state(stock, SAFETY, ORDER, blocks_production=True).state is expected

    def test_below_safety_only_when_order_level_is_lower(self):
        level = compute_stock_state(Decimal("45"), SAFETY, Decimal("40"))
        assert level.state is StockState.BELOW_SAFETY
        assert not level.needs_order

    def test_no_thresholds(self):
        assert compute_stock_state(Decimal("1")).state is StockState.HEALTHY
        assert compute_stock_state(Decimal("0")).state is StockState.OUT_OF_STOCK

    def test_missing_order_threshold_derived_from_safety(self):
        level = compute_stock_state(Decimal("70"), SAFETY)
        assert level.order_threshold == Decimal("75")
        assert level.state is StockState.TO_ORDER
        assert level.needs_order

    @pytest.mark.parametrize(
        "safety,expected",
        [(Decimal("0"), Decimal("0")), (Decimal("5"), Decimal("8")), (Decimal("33"), Decimal("50"))],
    )
    def test_effective_order_threshold_rounds_half_up(self, safety, expected):
        assert effective_order_threshold(safety, None) == expected

    def test_traced(self, captured_logs):
        compute_stock_state(Decimal("10"), SAFETY, ORDER)
        (trace,) = [r for r in captured_logs() if r["message"] == "DAIRY_ENGINE_TRACE"]
        assert trace["engine_name"] == "stock_state"
        assert trace["result_summary"] == {"state": "TO_ORDER"}

    @given(
        stock=st.decimals(min_value=0, max_value=1000, places=2),
        safety=st.decimals(min_value=0, max_value=500, places=2),
        gap=st.decimals(min_value=Decimal("0.01"), max_value=500, places=2),
    )
    @settings(max_examples=200)
    def test_valid_pair_never_reports_below_safety(self, stock, safety, gap):
        level = compute_stock_state(stock, safety, safety + gap)
        assert level.state is not StockState.BELOW_SAFETY
        assert (level.state is StockState.HEALTHY) == (stock > safety + gap)
