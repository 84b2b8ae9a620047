"""
dairy_engines.delivery_delay -- Late purchase-order assessment.

Responsibility:
    Decide whether an active purchase order is late against its expected
    delivery date, by how many days, and how badly the delay hurts
    production.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``today`` comes from the
    caller's clock.

Invariants enforced:
    - An order is late only when its expected date is strictly before today.
    - ``days_late`` counts whole calendar days; a late order is critical
      when ``days_late >= critical_threshold_days``.
    - Impact: BLOCKING when critical and at least one line is a
      high-criticality material, MAJOR when critical, MINOR otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

DEFAULT_CRITICAL_THRESHOLD_DAYS = 3


class DelayImpact(str, Enum):
    NONE = "NONE"
    MINOR = "MINOR"
    MAJOR = "MAJOR"
    BLOCKING = "BLOCKING"


@dataclass(frozen=True)
class DelayAssessment:
    is_late: bool
    days_late: int
    is_critical: bool
    impact: DelayImpact


ON_TIME = DelayAssessment(is_late=False, days_late=0, is_critical=False, impact=DelayImpact.NONE)


def assess_delay(
    expected: date | None,
    today: date,
    critical_threshold_days: int = DEFAULT_CRITICAL_THRESHOLD_DAYS,
    has_critical_material: bool = False,
) -> DelayAssessment:
    """Assess one order; an order without an expected date is never late."""
    if expected is None or expected >= today:
        return ON_TIME

    days_late = (today - expected).days
    is_critical = days_late >= critical_threshold_days
    if is_critical and has_critical_material:
        impact = DelayImpact.BLOCKING
    elif is_critical:
        impact = DelayImpact.MAJOR
    else:
        impact = DelayImpact.MINOR

    return DelayAssessment(
        is_late=True,
        days_late=days_late,
        is_critical=is_critical,
        impact=impact,
    )


def late_percentage(total_active: int, total_late: int) -> int:
    """Share of late orders among active ones, rounded half up to an integer."""
    if total_active <= 0:
        return 0
    ratio = Decimal(total_late) * 100 / Decimal(total_active)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
