"""
Module: dairy_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    decision engines.  This is the canonical import surface for the
    modules layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import dairy_kernel (logging) and sibling engine modules.
    MUST NOT import dairy_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in by the calling service, which owns the clock.
    - Decimal-only arithmetic for quantities, percentages and values.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - ValueError propagated from individual engines on invalid input.

Audit relevance:
    Engine entry points are traced via ``@traced_engine`` (see
    ``dairy_engines.tracer``), emitting DAIRY_ENGINE_TRACE log records.

Usage:
    from dairy_engines.fifo import plan_fifo_consumption
    from dairy_engines.reception import plan_reception
    from dairy_engines.inventory_control import assess_count
    from dairy_engines.delivery_delay import assess_delay
    from dairy_engines.stock_state import compute_stock_state
"""

from dairy_kernel.logging_config import get_logger

logger = get_logger("engines")

from dairy_engines.delivery_delay import (
    DelayAssessment,
    DelayImpact,
    assess_delay,
    late_percentage,
)
from dairy_engines.fifo import (
    FifoPlan,
    LotCandidate,
    LotConsumption,
    LotStatus,
    order_lots_fifo,
    plan_fifo_consumption,
)
from dairy_engines.inventory_control import (
    CountAssessment,
    DeclarationStatus,
    RiskLevel,
    ToleranceCategory,
    ToleranceThresholds,
    assess_count,
    can_second_validate,
    can_validate,
    is_in_cooldown,
    is_suspicious_pattern,
)
from dairy_engines.reception import (
    LinePlan,
    OrderLineState,
    ReceivedQuantity,
    ReceptionOutcome,
    ReceptionPlan,
    plan_reception,
)
from dairy_engines.stock_state import StockLevel, StockState, compute_stock_state

__all__ = [
    "CountAssessment",
    "DeclarationStatus",
    "DelayAssessment",
    "DelayImpact",
    "FifoPlan",
    "LinePlan",
    "LotCandidate",
    "LotConsumption",
    "LotStatus",
    "OrderLineState",
    "ReceivedQuantity",
    "ReceptionOutcome",
    "ReceptionPlan",
    "RiskLevel",
    "StockLevel",
    "StockState",
    "ToleranceCategory",
    "ToleranceThresholds",
    "assess_count",
    "assess_delay",
    "can_second_validate",
    "can_validate",
    "compute_stock_state",
    "is_in_cooldown",
    "is_suspicious_pattern",
    "late_percentage",
    "order_lots_fifo",
    "plan_fifo_consumption",
    "plan_reception",
]
