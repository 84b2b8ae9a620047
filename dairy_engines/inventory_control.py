"""
dairy_engines.inventory_control -- Inventory count risk tiering and anti-fraud predicates.

Responsibility:
    Classify a physical count against the theoretical stock into a risk
    tier (and therefore a declaration status), and answer the anti-fraud
    questions asked before a count is accepted or validated: who may
    validate, whether a new count is inside the cooldown window, whether a
    run of negative differences is suspicious.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``now`` is always passed
    in; the service in ``dairy_modules.stock.service`` loads the history
    and applies the answers.

Invariants enforced:
    - The counter may never validate their own count.
    - The second validator of a double-validation count differs from the
      first validator and from the counter.
    - Tiering: value above the critical value is CRITICAL whatever the
      drift; otherwise drift <= auto-approve is LOW, drift <= single
      validation is MEDIUM, anything above is CRITICAL.
    - Thresholds are only valid when single validation > auto-approve.

Failure modes:
    - ValueError from ToleranceThresholds on inconsistent thresholds; the
      config layer wraps it into ThresholdInvalidError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from dairy_engines.tracer import traced_engine

DEFAULT_COOLDOWN_HOURS = 4
DEFAULT_SUSPICIOUS_THRESHOLD = 3
DEFAULT_CRITICAL_VALUE = Decimal("50000")


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    CRITICAL = "CRITICAL"


class DeclarationStatus(str, Enum):
    """Lifecycle of an inventory declaration."""

    AUTO_APPROVED = "AUTO_APPROVED"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    PENDING_DOUBLE_VALIDATION = "PENDING_DOUBLE_VALIDATION"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


PENDING_STATUSES = frozenset({
    DeclarationStatus.PENDING_VALIDATION,
    DeclarationStatus.PENDING_DOUBLE_VALIDATION,
})


class ToleranceCategory(str, Enum):
    MP_PERISHABLE = "MP_PERISHABLE"
    MP_NON_PERISHABLE = "MP_NON_PERISHABLE"
    PF = "PF"


@dataclass(frozen=True)
class ToleranceThresholds:
    """Drift percentages bounding the LOW and MEDIUM tiers."""
    auto_approve_percent: Decimal
    single_validation_percent: Decimal

    def __post_init__(self) -> None:
        if self.auto_approve_percent < 0:
            raise ValueError("auto_approve_percent must be >= 0")
        if self.single_validation_percent <= self.auto_approve_percent:
            raise ValueError(
                f"single_validation_percent ({self.single_validation_percent}) must be "
                f"> auto_approve_percent ({self.auto_approve_percent})"
            )


DEFAULT_TOLERANCES: dict[ToleranceCategory, ToleranceThresholds] = {
    ToleranceCategory.MP_PERISHABLE: ToleranceThresholds(Decimal("2"), Decimal("5")),
    ToleranceCategory.MP_NON_PERISHABLE: ToleranceThresholds(Decimal("3"), Decimal("8")),
    ToleranceCategory.PF: ToleranceThresholds(Decimal("1"), Decimal("3")),
}


def tolerance_category(is_finished_product: bool, is_perishable: bool) -> ToleranceCategory:
    if is_finished_product:
        return ToleranceCategory.PF
    return ToleranceCategory.MP_PERISHABLE if is_perishable else ToleranceCategory.MP_NON_PERISHABLE


# -----------------------------------------------------------------------------
# Anti-fraud predicates
# -----------------------------------------------------------------------------


def can_validate(counted_by: UUID, validator: UUID) -> bool:
    """False iff the validator is the person who counted."""
    return counted_by != validator


class SecondValidationRefusal(str, Enum):
    SAME_VALIDATOR = "SAME_VALIDATOR"
    SELF_VALIDATION = "SELF_VALIDATION"


@dataclass(frozen=True)
class SecondValidationCheck:
    allowed: bool
    reason: SecondValidationRefusal | None = None


def can_second_validate(
    first_validator: UUID,
    second_validator: UUID,
    counted_by: UUID,
) -> SecondValidationCheck:
    if second_validator == first_validator:
        return SecondValidationCheck(False, SecondValidationRefusal.SAME_VALIDATOR)
    if second_validator == counted_by:
        return SecondValidationCheck(False, SecondValidationRefusal.SELF_VALIDATION)
    return SecondValidationCheck(True)


def is_in_cooldown(
    last_declared_at: datetime | None,
    now: datetime,
    hours: int = DEFAULT_COOLDOWN_HOURS,
) -> bool:
    """True when the previous count is less than ``hours`` old."""
    if last_declared_at is None:
        return False
    return now - last_declared_at < timedelta(hours=hours)


def is_suspicious_pattern(
    differences: Sequence[Decimal],
    threshold: int = DEFAULT_SUSPICIOUS_THRESHOLD,
) -> bool:
    """
    True iff the ``threshold`` most recent differences are all negative.

    ``differences`` is ordered most recent first (the current count first).
    A shorter history is never suspicious.
    """
    if len(differences) < threshold:
        return False
    return all(d < 0 for d in differences[:threshold])


# -----------------------------------------------------------------------------
# Risk tiering
# -----------------------------------------------------------------------------


def drift_percent(theoretical: Decimal, physical: Decimal) -> Decimal:
    """|physical - theoretical| as a percentage of theoretical."""
    difference = physical - theoretical
    if theoretical == 0:
        return Decimal("0") if difference == 0 else Decimal("100")
    return abs(difference / theoretical) * 100


def classify_risk(
    drift: Decimal,
    value: Decimal,
    thresholds: ToleranceThresholds,
    critical_value: Decimal = DEFAULT_CRITICAL_VALUE,
) -> RiskLevel:
    if value > critical_value:
        return RiskLevel.CRITICAL
    if drift <= thresholds.auto_approve_percent:
        return RiskLevel.LOW
    if drift <= thresholds.single_validation_percent:
        return RiskLevel.MEDIUM
    return RiskLevel.CRITICAL


_STATUS_BY_RISK = {
    RiskLevel.LOW: DeclarationStatus.AUTO_APPROVED,
    RiskLevel.MEDIUM: DeclarationStatus.PENDING_VALIDATION,
    RiskLevel.CRITICAL: DeclarationStatus.PENDING_DOUBLE_VALIDATION,
}


def status_for_risk(risk: RiskLevel) -> DeclarationStatus:
    return _STATUS_BY_RISK[risk]


@dataclass(frozen=True)
class CountAssessment:
    """Everything decided about one physical count before it is stored."""
    theoretical: Decimal
    physical: Decimal
    difference: Decimal
    drift_percent: Decimal
    value: Decimal
    risk_level: RiskLevel
    status: DeclarationStatus
    suspicious: bool
    requires_evidence: bool


@traced_engine(
    "inventory_control", "1.1",
    fingerprint_fields=("theoretical", "physical", "unit_cost"),
    summarize=lambda a: {"risk_level": a.risk_level.value, "status": a.status.value},
)
def assess_count(
    *,
    theoretical: Decimal,
    physical: Decimal,
    unit_cost: Decimal,
    thresholds: ToleranceThresholds,
    previous_differences: Sequence[Decimal] = (),
    has_evidence: bool = False,
    critical_value: Decimal = DEFAULT_CRITICAL_VALUE,
    suspicious_threshold: int = DEFAULT_SUSPICIOUS_THRESHOLD,
) -> CountAssessment:
    """
    Tier a physical count.

    ``previous_differences`` holds the differences of earlier approved
    counts by the same counter, most recent first.  A suspicious run of
    negative differences never lets a count auto-approve: it is raised to
    PENDING_VALIDATION.
    """
    difference = physical - theoretical
    drift = drift_percent(theoretical, physical)
    value = abs(difference) * unit_cost
    risk = classify_risk(drift, value, thresholds, critical_value)
    status = status_for_risk(risk)

    suspicious = difference != 0 and is_suspicious_pattern(
        [difference, *previous_differences], suspicious_threshold,
    )
    if suspicious and status is DeclarationStatus.AUTO_APPROVED:
        status = DeclarationStatus.PENDING_VALIDATION

    return CountAssessment(
        theoretical=theoretical,
        physical=physical,
        difference=difference,
        drift_percent=drift,
        value=value,
        risk_level=risk,
        status=status,
        suspicious=suspicious,
        requires_evidence=risk is RiskLevel.CRITICAL and not has_evidence,
    )
