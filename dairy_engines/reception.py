"""
dairy_engines.reception -- Reception completeness planning.

Responsibility:
    Given the current state of a purchase order's lines and the quantities
    delivered by one reception, compute the new cumulative received
    quantity per line and whether the order is now fully received.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The reconciler in
    ``dairy_modules.appro.service`` loads the order, calls
    ``plan_reception`` and only then consults the transition guard and
    writes anything.

Invariants enforced:
    - cumulative = previously received + received now, per line.
    - The order is complete iff EVERY order line (mentioned in this
      reception or not) has cumulative >= ordered.  Over-delivery counts
      as complete for that line.
    - Receiving zero on a line leaves its cumulative unchanged.
    - Several input entries for the same line are summed.

Failure modes:
    - ValueError for a negative received quantity or a line id that is not
      part of the order; callers validate first and raise typed errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from dairy_engines.tracer import traced_engine


class ReceptionOutcome(str, Enum):
    """Completeness of an order after a reception."""

    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class OrderLineState:
    """One purchase-order line before the reception."""
    line_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    quantity_received: Decimal

    @property
    def quantity_outstanding(self) -> Decimal:
        return max(self.quantity_ordered - self.quantity_received, Decimal("0"))


@dataclass(frozen=True)
class ReceivedQuantity:
    """Quantity delivered against one order line."""
    line_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class LinePlan:
    line_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    previously_received: Decimal
    received_now: Decimal

    @property
    def cumulative(self) -> Decimal:
        return self.previously_received + self.received_now

    @property
    def is_fully_received(self) -> bool:
        return self.cumulative >= self.quantity_ordered


@dataclass(frozen=True)
class ReceptionPlan:
    """New per-line cumulative quantities, in order-line order."""
    lines: tuple[LinePlan, ...]

    @property
    def is_complete(self) -> bool:
        return all(line.is_fully_received for line in self.lines)

    @property
    def outcome(self) -> ReceptionOutcome:
        return ReceptionOutcome.COMPLETE if self.is_complete else ReceptionOutcome.PARTIAL

    @property
    def total_received_now(self) -> Decimal:
        return sum((line.received_now for line in self.lines), Decimal("0"))

    def receiving_lines(self) -> list[LinePlan]:
        """Lines that take stock in this reception."""
        return [line for line in self.lines if line.received_now > 0]


@traced_engine(
    "reception", "1.1",
    fingerprint_fields=("order_lines", "received"),
    summarize=lambda plan: {"outcome": plan.outcome.value, "lines_receiving": len(plan.receiving_lines())},
)
def plan_reception(
    order_lines: Iterable[OrderLineState],
    received: Iterable[ReceivedQuantity],
) -> ReceptionPlan:
    """
    Compute the reception plan for one delivery.

    Args:
        order_lines: Every line of the purchase order.
        received: Delivered quantities; lines absent here receive 0.

    Returns:
        ReceptionPlan covering every order line.

    Raises:
        ValueError: negative quantity, or a line id not on the order.
    """
    lines = list(order_lines)
    known = {line.line_id for line in lines}

    delivered: dict[UUID, Decimal] = {}
    for entry in received:
        if entry.quantity < 0:
            raise ValueError(f"Received quantity must be >= 0, got {entry.quantity}")
        if entry.line_id not in known:
            raise ValueError(f"Line {entry.line_id} is not part of the order")
        delivered[entry.line_id] = delivered.get(entry.line_id, Decimal("0")) + entry.quantity

    return ReceptionPlan(
        lines=tuple(
            LinePlan(
                line_id=line.line_id,
                product_id=line.product_id,
                quantity_ordered=line.quantity_ordered,
                previously_received=line.quantity_received,
                received_now=delivered.get(line.line_id, Decimal("0")),
            )
            for line in lines
        )
    )
