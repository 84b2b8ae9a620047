"""
dairy_engines.stock_state -- Reorder-level classification of a raw material.

Responsibility:
    Turn a product's current stock and its two reorder thresholds into a
    stock state the purchasing desk acts on.  The state is always computed,
    never stored.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``order_threshold`` > ``safety_threshold`` when both are set; the
      product service refuses any other pair.
    - Without an order threshold the effective one is 1.5 x safety.
    - Evaluation order: empty stock, then the order threshold, then the
      safety threshold.  A production-blocking material under its safety
      level is BLOCKING_PRODUCTION even while stock remains.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from dairy_engines.tracer import traced_engine

DEFAULT_ORDER_FACTOR = Decimal("1.5")


class StockState(str, Enum):
    HEALTHY = "HEALTHY"
    BELOW_SAFETY = "BELOW_SAFETY"
    TO_ORDER = "TO_ORDER"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    BLOCKING_PRODUCTION = "BLOCKING_PRODUCTION"


@dataclass(frozen=True)
class StockLevel:
    current_stock: Decimal
    safety_threshold: Decimal
    order_threshold: Decimal
    state: StockState

    @property
    def needs_order(self) -> bool:
        return self.state is not StockState.HEALTHY and self.state is not StockState.BELOW_SAFETY


def effective_order_threshold(safety_threshold: Decimal, order_threshold: Decimal | None) -> Decimal:
    if order_threshold is not None:
        return order_threshold
    return (safety_threshold * DEFAULT_ORDER_FACTOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


@traced_engine(
    "stock_state", "1.0",
    fingerprint_fields=("current_stock", "safety_threshold", "order_threshold", "blocks_production"),
    summarize=lambda level: {"state": level.state.value},
)
def compute_stock_state(
    current_stock: Decimal,
    safety_threshold: Decimal = Decimal("0"),
    order_threshold: Decimal | None = None,
    blocks_production: bool = False,
) -> StockLevel:
    """
    Classify ``current_stock`` against the reorder thresholds.

    ``blocks_production`` marks a material whose shortage stops the line
    (high criticality).
    """
    order_level = effective_order_threshold(safety_threshold, order_threshold)

    if current_stock <= 0:
        state = StockState.BLOCKING_PRODUCTION if blocks_production else StockState.OUT_OF_STOCK
    elif current_stock <= order_level:
        if blocks_production and current_stock < safety_threshold:
            state = StockState.BLOCKING_PRODUCTION
        else:
            state = StockState.TO_ORDER
    elif current_stock <= safety_threshold:
        state = StockState.BELOW_SAFETY
    else:
        state = StockState.HEALTHY

    return StockLevel(
        current_stock=current_stock,
        safety_threshold=safety_threshold,
        order_threshold=order_level,
        state=state,
    )
