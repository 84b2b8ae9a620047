"""Tests for late purchase-order assessment (dairy_engines.delivery_delay)."""

from datetime import date, timedelta

import pytest

from dairy_engines.delivery_delay import (
    ON_TIME,
    DelayImpact,
    assess_delay,
    late_percentage,
)

TODAY = date(2025, 1, 15)


class TestAssessDelay:

    @pytest.mark.parametrize("expected", [None, TODAY, TODAY + timedelta(days=3)])
    def test_not_late(self, expected):
        assert assess_delay(expected, TODAY) == ON_TIME

    def test_one_day_late_is_minor(self):
        result = assess_delay(TODAY - timedelta(days=1), TODAY)
        assert result.is_late
        assert result.days_late == 1
        assert not result.is_critical
        assert result.impact is DelayImpact.MINOR

    def test_threshold_reached_is_critical(self):
        result = assess_delay(TODAY - timedelta(days=3), TODAY, critical_threshold_days=3)
        assert result.is_critical
        assert result.impact is DelayImpact.MAJOR

    def test_critical_material_blocks_production(self):
        result = assess_delay(
            TODAY - timedelta(days=5), TODAY, critical_threshold_days=3, has_critical_material=True,
        )
        assert result.impact is DelayImpact.BLOCKING

    def test_critical_material_below_threshold_stays_minor(self):
        result = assess_delay(TODAY - timedelta(days=2), TODAY, has_critical_material=True)
        assert result.impact is DelayImpact.MINOR


class TestLatePercentage:

    @pytest.mark.parametrize(
        "active,late,expected",
        [
            (0, 0, 0),
            (4, 1, 25),
            (3, 1, 33),
            (8, 1, 13),   # 12.5 rounds half up
            (3, 2, 67),
            (5, 5, 100),
        ],
    )
    def test_rounding(self, active, late, expected):
        assert late_percentage(active, late) == expected
