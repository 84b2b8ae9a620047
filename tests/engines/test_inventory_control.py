"""
Tests for inventory count tiering and anti-fraud predicates
(dairy_engines.inventory_control).
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from dairy_engines.inventory_control import (
    DEFAULT_TOLERANCES,
    DeclarationStatus,
    RiskLevel,
    SecondValidationRefusal,
    ToleranceCategory,
    ToleranceThresholds,
    assess_count,
    can_second_validate,
    can_validate,
    classify_risk,
    drift_percent,
    is_in_cooldown,
    is_suspicious_pattern,
    status_for_risk,
    tolerance_category,
)

PERISHABLE = DEFAULT_TOLERANCES[ToleranceCategory.MP_PERISHABLE]
NOW = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)


class TestToleranceThresholds:

    def test_defaults(self):
        assert PERISHABLE == ToleranceThresholds(Decimal("2"), Decimal("5"))
        assert DEFAULT_TOLERANCES[ToleranceCategory.MP_NON_PERISHABLE].single_validation_percent == Decimal("8")
        assert DEFAULT_TOLERANCES[ToleranceCategory.PF].auto_approve_percent == Decimal("1")

    @pytest.mark.parametrize("auto,single", [("5", "5"), ("5", "3")])
    def test_single_must_exceed_auto(self, auto, single):
        with pytest.raises(ValueError):
            ToleranceThresholds(Decimal(auto), Decimal(single))

    @pytest.mark.parametrize(
        "finished,perishable,expected",
        [
            (True, True, ToleranceCategory.PF),
            (True, False, ToleranceCategory.PF),
            (False, True, ToleranceCategory.MP_PERISHABLE),
            (False, False, ToleranceCategory.MP_NON_PERISHABLE),
        ],
    )
    def test_category(self, finished, perishable, expected):
        assert tolerance_category(finished, perishable) is expected


class TestRiskTiering:

    @pytest.mark.parametrize(
        "theoretical,physical,expected",
        [
            ("100", "100", "0"),
            ("100", "98", "2"),
            ("100", "110", "10"),
            ("0", "0", "0"),
            ("0", "5", "100"),
        ],
    )
    def test_drift_percent(self, theoretical, physical, expected):
        assert drift_percent(Decimal(theoretical), Decimal(physical)) == Decimal(expected)

    @pytest.mark.parametrize(
        "drift,value,expected",
        [
            ("0", "0", RiskLevel.LOW),
            ("2", "10", RiskLevel.LOW),          # boundary is inclusive
            ("2.01", "10", RiskLevel.MEDIUM),
            ("5", "10", RiskLevel.MEDIUM),
            ("5.01", "10", RiskLevel.CRITICAL),
            ("0.5", "50001", RiskLevel.CRITICAL),  # value overrides drift
            ("0.5", "50000", RiskLevel.LOW),
        ],
    )
    def test_classify(self, drift, value, expected):
        assert classify_risk(Decimal(drift), Decimal(value), PERISHABLE) is expected

    def test_status_per_tier(self):
        assert status_for_risk(RiskLevel.LOW) is DeclarationStatus.AUTO_APPROVED
        assert status_for_risk(RiskLevel.MEDIUM) is DeclarationStatus.PENDING_VALIDATION
        assert status_for_risk(RiskLevel.CRITICAL) is DeclarationStatus.PENDING_DOUBLE_VALIDATION


class TestAntiFraudPredicates:

    def test_counter_cannot_validate(self):
        counter = uuid4()
        assert not can_validate(counter, counter)
        assert can_validate(counter, uuid4())

    def test_second_validation(self):
        counter, first, second = uuid4(), uuid4(), uuid4()
        assert can_second_validate(first, second, counter).allowed
        same = can_second_validate(first, first, counter)
        assert not same.allowed
        assert same.reason is SecondValidationRefusal.SAME_VALIDATOR
        own = can_second_validate(first, counter, counter)
        assert own.reason is SecondValidationRefusal.SELF_VALIDATION

    @pytest.mark.parametrize(
        "elapsed,expected",
        [
            (timedelta(hours=1), True),
            (timedelta(hours=3, minutes=59), True),
            (timedelta(hours=4), False),
            (timedelta(days=1), False),
        ],
    )
    def test_cooldown(self, elapsed, expected):
        assert is_in_cooldown(NOW - elapsed, NOW) is expected

    def test_no_previous_count_no_cooldown(self):
        assert not is_in_cooldown(None, NOW)

    @pytest.mark.parametrize(
        "differences,expected",
        [
            (["-1", "-2", "-3"], True),
            (["-1", "-2", "-3", "5"], True),
            (["-1", "-2"], False),
            (["-1", "0", "-3"], False),
            (["-1", "2", "-3"], False),
            (["5", "-2", "-3"], False),
        ],
    )
    def test_suspicious_pattern(self, differences, expected):
        assert is_suspicious_pattern([Decimal(d) for d in differences]) is expected


class TestAssessCount:

    def _assess(self, theoretical, physical, previous=(), unit_cost="1", has_evidence=False):
        return assess_count(
            theoretical=Decimal(theoretical),
            physical=Decimal(physical),
            unit_cost=Decimal(unit_cost),
            thresholds=PERISHABLE,
            previous_differences=[Decimal(p) for p in previous],
            has_evidence=has_evidence,
        )

    def test_small_drift_auto_approved(self):
        result = self._assess("100", "99")
        assert result.difference == Decimal("-1")
        assert result.risk_level is RiskLevel.LOW
        assert result.status is DeclarationStatus.AUTO_APPROVED
        assert not result.suspicious

    def test_medium_drift_single_validation(self):
        result = self._assess("100", "96")
        assert result.status is DeclarationStatus.PENDING_VALIDATION

    def test_large_drift_double_validation_requires_evidence(self):
        result = self._assess("100", "80")
        assert result.risk_level is RiskLevel.CRITICAL
        assert result.status is DeclarationStatus.PENDING_DOUBLE_VALIDATION
        assert result.requires_evidence
        assert not self._assess("100", "80", has_evidence=True).requires_evidence

    def test_value_computed_from_unit_cost(self):
        result = self._assess("1000", "990", unit_cost="2.5")
        assert result.value == Decimal("25.0")

    def test_suspicious_run_blocks_auto_approval(self):
        result = self._assess("100", "99", previous=["-1", "-1"])
        assert result.suspicious
        assert result.risk_level is RiskLevel.LOW
        assert result.status is DeclarationStatus.PENDING_VALIDATION

    def test_zero_difference_never_suspicious(self):
        result = self._assess("100", "100", previous=["-1", "-1"])
        assert not result.suspicious
        assert result.status is DeclarationStatus.AUTO_APPROVED
