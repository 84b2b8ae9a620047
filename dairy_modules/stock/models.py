"""
Stock Domain Models.

The nouns of the stock ledger: products (raw materials MP and finished
products PF), lots, immutable movements, inventory declarations and loss
declarations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from dairy_engines.fifo import FifoPlan, LotStatus
from dairy_engines.inventory_control import DeclarationStatus, RiskLevel

__all__ = [
    "ConsumptionResult",
    "DeclarationStatus",
    "InventoryAdjustmentResult",
    "InventoryDeclaration",
    "LedgerCheck",
    "Lot",
    "LossReason",
    "LossRecord",
    "MaterialCriticality",
    "MovementOrigin",
    "MovementType",
    "Product",
    "ProductType",
    "ReceivedLot",
    "RiskLevel",
    "LotStatus",
    "StockMovement",
    "StockSummary",
]


class ProductType(Enum):
    MP = "MP"   # raw material
    PF = "PF"   # finished product


class MovementType(Enum):
    IN = "IN"
    OUT = "OUT"


class MovementOrigin(Enum):
    RECEPTION = "RECEPTION"
    PRODUCTION_OUT = "PRODUCTION_OUT"
    PRODUCTION_IN = "PRODUCTION_IN"
    PRODUCTION_CANCEL = "PRODUCTION_CANCEL"
    SALE = "SALE"
    CUSTOMER_RETURN = "CUSTOMER_RETURN"
    ADJUSTMENT = "ADJUSTMENT"
    LOSS = "LOSS"


class MaterialCriticality(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class LossReason(Enum):
    DLC_EXPIRED = "DLC_EXPIRED"
    QUALITY_DEFECT = "QUALITY_DEFECT"
    DAMAGE = "DAMAGE"
    CONTAMINATION = "CONTAMINATION"
    INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Product:
    id: UUID
    code: str
    name: str
    product_type: ProductType
    unit: str = "KG"
    is_perishable: bool = False
    unit_cost: Decimal = Decimal("0")
    last_price: Decimal | None = None
    main_supplier_id: UUID | None = None
    criticality: MaterialCriticality = MaterialCriticality.MEDIUM
    safety_threshold: Decimal = Decimal("0")
    order_threshold: Decimal | None = None


@dataclass(frozen=True)
class Lot:
    id: UUID
    lot_number: str
    product_id: UUID
    quantity_initial: Decimal
    quantity_remaining: Decimal
    status: LotStatus
    created_at: datetime
    expiry_date: date | None = None
    supplier_id: UUID | None = None
    purchase_order_id: UUID | None = None


@dataclass(frozen=True)
class StockMovement:
    """One immutable ledger entry."""
    id: UUID
    product_id: UUID
    product_type: ProductType
    movement_type: MovementType
    origin: MovementOrigin
    quantity: Decimal
    occurred_at: datetime
    actor_id: UUID
    lot_id: UUID | None = None
    reference: str | None = None
    note: str | None = None

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity if self.movement_type is MovementType.IN else -self.quantity


@dataclass(frozen=True)
class ReceivedLot:
    """Lot credited by a reception line, with the movement that records it."""
    lot_id: UUID
    lot_number: str
    movement_id: UUID
    quantity: Decimal
    appended: bool


@dataclass(frozen=True)
class StockSummary:
    product_id: UUID
    total: Decimal
    lot_count: int
    next_expiry: date | None


@dataclass(frozen=True)
class ConsumptionResult:
    product_id: UUID
    quantity: Decimal
    plan: FifoPlan
    movement_ids: tuple[UUID, ...]
    depleted_lot_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LedgerCheck:
    product_id: UUID
    movement_total: Decimal
    lot_total: Decimal

    @property
    def consistent(self) -> bool:
        return self.movement_total == self.lot_total

    @property
    def drift(self) -> Decimal:
        return self.movement_total - self.lot_total


@dataclass(frozen=True)
class InventoryDeclaration:
    id: UUID
    reference: str
    product_id: UUID
    product_type: ProductType
    theoretical_quantity: Decimal
    physical_quantity: Decimal
    difference: Decimal
    drift_percent: Decimal
    difference_value: Decimal
    risk_level: RiskLevel
    status: DeclarationStatus
    reason: str
    counted_by_id: UUID
    counted_at: datetime
    suspicious: bool = False
    evidence_photos: tuple[str, ...] = ()
    first_validator_id: UUID | None = None
    validator_id: UUID | None = None
    rejection_reason: str | None = None
    adjustment_applied: bool = False


@dataclass(frozen=True)
class InventoryAdjustmentResult:
    declaration: InventoryDeclaration
    adjustment_applied: bool
    requires_evidence: bool
    movement_ids: tuple[UUID, ...] = ()

    @property
    def status(self) -> DeclarationStatus:
        return self.declaration.status


@dataclass(frozen=True)
class LossRecord:
    id: UUID
    reference: str
    product_type: ProductType
    product_id: UUID
    quantity: Decimal
    reason: LossReason
    description: str
    declared_by_id: UUID
    declared_at: datetime
    lot_id: UUID | None = None
    movement_ids: tuple[UUID, ...] = ()
    evidence_photos: tuple[str, ...] = ()
