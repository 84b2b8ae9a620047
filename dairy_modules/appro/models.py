"""
Procurement (appro) Domain Models.

The nouns of raw-material procurement: requests from production, purchase
orders (BC) to suppliers, receptions, and the results returned by
``ApproService`` operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from dairy_engines.delivery_delay import DelayImpact
from dairy_kernel.logging_config import get_logger

logger = get_logger("modules.appro.models")


class RequestStatus(Enum):
    """Raw-material request lifecycle states."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"
    ORDERING = "ORDERING"   # purchase orders generated, none sent yet
    ORDERED = "ORDERED"     # at least one purchase order sent
    RECEIVED = "RECEIVED"


class RequestPriority(Enum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


class PurchaseOrderStatus(Enum):
    """Purchase order (BC) lifecycle states."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"
    PARTIAL = "PARTIAL"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


ACTIVE_PURCHASE_ORDER_STATUSES = (
    PurchaseOrderStatus.SENT,
    PurchaseOrderStatus.CONFIRMED,
    PurchaseOrderStatus.PARTIAL,
)


class SendVia(Enum):
    EMAIL = "EMAIL"
    MANUAL = "MANUAL"


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestLineInput:
    """A requested raw material and quantity."""
    product_id: UUID
    quantity: Decimal
    note: str | None = None


@dataclass(frozen=True)
class PriceOverride:
    """Unit price negotiated for one product on a generated purchase order."""
    product_id: UUID
    unit_price: Decimal

    def __post_init__(self):
        if self.unit_price < 0:
            logger.warning(
                "price_override_negative",
                extra={"product_id": str(self.product_id), "unit_price": str(self.unit_price)},
            )
            raise ValueError(f"unit_price cannot be negative: {self.unit_price}")


@dataclass(frozen=True)
class ReceptionLineInput:
    """Quantity delivered against one purchase-order line."""
    item_id: UUID
    quantity_received: Decimal
    lot_number: str | None = None
    expiry_date: date | None = None
    note: str | None = None


# -----------------------------------------------------------------------------
# Entities
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Supplier:
    id: UUID
    code: str
    name: str
    email: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class RequestLine:
    id: UUID
    request_id: UUID
    product_id: UUID
    quantity_requested: Decimal
    quantity_validated: Decimal | None = None
    note: str | None = None

    @property
    def quantity_to_order(self) -> Decimal:
        if self.quantity_validated is not None:
            return self.quantity_validated
        return self.quantity_requested


@dataclass(frozen=True)
class MaterialRequest:
    """A production request for raw materials."""
    id: UUID
    reference: str
    status: RequestStatus
    priority: RequestPriority
    requested_by_id: UUID
    comment: str | None = None
    validated_by_id: UUID | None = None
    validated_at: datetime | None = None
    rejection_reason: str | None = None
    lines: tuple[RequestLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PurchaseOrderLine:
    id: UUID
    purchase_order_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    quantity_received: Decimal = Decimal("0")
    unit_price: Decimal = Decimal("0")

    @property
    def line_total(self) -> Decimal:
        return self.quantity_ordered * self.unit_price


@dataclass(frozen=True)
class PurchaseOrder:
    """A purchase order (BC) to one supplier."""
    id: UUID
    reference: str
    request_id: UUID
    supplier_id: UUID
    status: PurchaseOrderStatus
    total_ht: Decimal = Decimal("0")
    expected_delivery: date | None = None
    delivery_address: str | None = None
    sent_at: datetime | None = None
    sent_via: SendVia | None = None
    confirmed_at: datetime | None = None
    received_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    lines: tuple[PurchaseOrderLine, ...] = field(default_factory=tuple)

    @property
    def has_partial_received(self) -> bool:
        return any(line.quantity_received > 0 for line in self.lines)


# -----------------------------------------------------------------------------
# Operation results
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class GeneratedPurchaseOrder:
    id: UUID
    reference: str
    supplier_id: UUID
    total_ht: Decimal
    items_count: int


@dataclass(frozen=True)
class GenerateResult:
    count: int
    purchase_orders: tuple[GeneratedPurchaseOrder, ...]


@dataclass(frozen=True)
class ReceiveResult:
    """Outcome of one reception; stored verbatim against its idempotency key."""
    new_status: PurchaseOrderStatus
    reception_reference: str
    movements_created: int
    demand_closed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_status": self.new_status.value,
            "reception_reference": self.reception_reference,
            "movements_created": self.movements_created,
            "demand_closed": self.demand_closed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReceiveResult:
        return cls(
            new_status=PurchaseOrderStatus(data["new_status"]),
            reception_reference=data["reception_reference"],
            movements_created=int(data["movements_created"]),
            demand_closed=bool(data["demand_closed"]),
        )


@dataclass(frozen=True)
class SendResult:
    new_status: PurchaseOrderStatus
    sent_at: datetime
    send_via: SendVia
    request_ordered: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_status": self.new_status.value,
            "sent_at": self.sent_at.isoformat(),
            "send_via": self.send_via.value,
            "request_ordered": self.request_ordered,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SendResult:
        return cls(
            new_status=PurchaseOrderStatus(data["new_status"]),
            sent_at=datetime.fromisoformat(data["sent_at"]),
            send_via=SendVia(data["send_via"]),
            request_ordered=bool(data["request_ordered"]),
        )


@dataclass(frozen=True)
class ConfirmResult:
    new_status: PurchaseOrderStatus
    confirmed_at: datetime


@dataclass(frozen=True)
class CancelResult:
    new_status: PurchaseOrderStatus
    cancelled_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_status": self.new_status.value,
            "cancelled_at": self.cancelled_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CancelResult:
        return cls(
            new_status=PurchaseOrderStatus(data["new_status"]),
            cancelled_at=datetime.fromisoformat(data["cancelled_at"]),
        )


@dataclass(frozen=True)
class LatePurchaseOrder:
    purchase_order_id: UUID
    reference: str
    supplier_id: UUID
    status: PurchaseOrderStatus
    expected_delivery: date
    days_late: int
    is_critical: bool
    has_critical_material: bool
    impact: DelayImpact


@dataclass(frozen=True)
class DelayStats:
    total_active: int
    total_late: int
    critical_late: int
    late_percentage: int
