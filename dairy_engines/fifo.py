"""
dairy_engines.fifo -- FIFO lot ordering and consumption planning.

Responsibility:
    Decide which stock lots a draw-down (production consumption, loss,
    negative inventory adjustment) takes quantity from, and how much from
    each, without touching storage.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock.  The reference
    date for expiry checks is passed in by the caller.  The stateful
    application of a plan lives in ``dairy_modules.stock.service``.

Invariants enforced:
    - Ordering: lots with an expiry date come before lots without one;
      among dated lots, soonest expiry first; ties by oldest ``created_at``,
      then by lot id so the order is total.
    - Eligibility: only ``AVAILABLE`` lots with ``quantity_remaining > 0``
      (and not expired at ``as_of`` when given) are ever selected.
    - Draining: each lot is emptied before the next one is touched; the sum
      of planned quantities never exceeds the requested quantity nor any
      lot's remaining quantity.

Failure modes:
    - ValueError if the requested quantity is not strictly positive.
    - An insufficient plan is returned (``sufficient=False``) rather than
      raised; the service turns it into ``InsufficientStockError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from dairy_engines.tracer import traced_engine


class LotStatus(str, Enum):
    """Lot availability."""

    AVAILABLE = "AVAILABLE"
    BLOCKED = "BLOCKED"      # quality hold
    CONSUMED = "CONSUMED"    # remaining reached zero


@dataclass(frozen=True)
class LotCandidate:
    """Snapshot of a lot as seen by the FIFO planner."""
    lot_id: UUID
    lot_number: str
    quantity_remaining: Decimal
    expiry_date: date | None
    created_at: datetime
    status: LotStatus = LotStatus.AVAILABLE

    def is_expired(self, as_of: date | None) -> bool:
        return as_of is not None and self.expiry_date is not None and self.expiry_date < as_of

    def is_eligible(self, as_of: date | None = None) -> bool:
        return (
            self.status is LotStatus.AVAILABLE
            and self.quantity_remaining > 0
            and not self.is_expired(as_of)
        )


def fifo_sort_key(lot: LotCandidate) -> tuple:
    """Sort key: dated lots first, soonest expiry, oldest creation, lot id."""
    return (
        lot.expiry_date is None,
        lot.expiry_date or date.max,
        lot.created_at,
        str(lot.lot_id),
    )


def order_lots_fifo(lots: Iterable[LotCandidate], as_of: date | None = None) -> list[LotCandidate]:
    """Eligible lots in consumption order."""
    return sorted((lot for lot in lots if lot.is_eligible(as_of)), key=fifo_sort_key)


@dataclass(frozen=True)
class LotConsumption:
    """Quantity taken from one lot."""
    lot_id: UUID
    lot_number: str
    quantity: Decimal
    remaining_before: Decimal
    remaining_after: Decimal

    @property
    def depletes_lot(self) -> bool:
        return self.remaining_after == 0


@dataclass(frozen=True)
class FifoPlan:
    """
    Outcome of planning a draw-down.

    ``consumptions`` lists every lot touched, in FIFO order.  When
    ``sufficient`` is False the plan drains all eligible stock and
    ``shortfall`` says how much is missing.
    """
    requested: Decimal
    available: Decimal
    consumptions: tuple[LotConsumption, ...]

    @property
    def consumed_total(self) -> Decimal:
        return sum((c.quantity for c in self.consumptions), Decimal("0"))

    @property
    def sufficient(self) -> bool:
        return self.available >= self.requested

    @property
    def shortfall(self) -> Decimal:
        return max(self.requested - self.available, Decimal("0"))


@traced_engine(
    "fifo", "1.1",
    fingerprint_fields=("lots", "quantity", "as_of"),
    summarize=lambda plan: {"sufficient": plan.sufficient, "lots_touched": len(plan.consumptions)},
)
def plan_fifo_consumption(
    lots: Iterable[LotCandidate],
    quantity: Decimal,
    as_of: date | None = None,
) -> FifoPlan:
    """
    Plan taking ``quantity`` from ``lots`` in FIFO order.

    Args:
        lots: Candidate lots of a single product (any order, any status).
        quantity: Quantity to draw down, > 0.
        as_of: Reference date; lots expired before it are skipped.

    Returns:
        FifoPlan with one LotConsumption per lot touched.

    Raises:
        ValueError: If quantity <= 0.
    """
    if quantity <= 0:
        raise ValueError(f"quantity must be > 0, got {quantity}")

    ordered = order_lots_fifo(lots, as_of)
    available = sum((lot.quantity_remaining for lot in ordered), Decimal("0"))

    consumptions: list[LotConsumption] = []
    outstanding = quantity
    for lot in ordered:
        if outstanding <= 0:
            break
        take = min(lot.quantity_remaining, outstanding)
        consumptions.append(
            LotConsumption(
                lot_id=lot.lot_id,
                lot_number=lot.lot_number,
                quantity=take,
                remaining_before=lot.quantity_remaining,
                remaining_after=lot.quantity_remaining - take,
            )
        )
        outstanding -= take

    return FifoPlan(
        requested=quantity,
        available=available,
        consumptions=tuple(consumptions),
    )
