"""
SQLAlchemy ORM persistence models for the Stock module.

Responsibility
--------------
Database-backed persistence for products, lots, the stock movement ledger,
inventory declarations and loss declarations.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``StockService``.  Inherits
from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantities and amounts use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50).
* ``(product_id, lot_number)`` is unique: a reception appending to an
  existing lot number finds exactly one lot.
* ``StockMovementModel`` rows are append-only (see
  ``dairy_modules.stock.immutability``); the signed sum of a product's
  movements equals the sum of its lots' remaining quantities.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dairy_kernel.db.base import TrackedBase, as_utc

# ---------------------------------------------------------------------------
# ProductModel
# ---------------------------------------------------------------------------


class ProductModel(TrackedBase):
    """
    A raw material (MP) or finished product (PF).

    ``main_supplier_id`` routes generated purchase-order lines;
    ``last_price`` is the last purchase unit price, ``unit_cost`` values
    inventory differences.  ``order_threshold`` (when set) is above
    ``safety_threshold``.
    """

    __tablename__ = "stock_products"

    __table_args__ = (
        UniqueConstraint("code", name="uq_stock_product_code"),
        Index("idx_stock_product_type", "product_type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="KG")
    is_perishable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    unit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    last_price: Mapped[Decimal | None]
    main_supplier_id: Mapped[UUID | None] = mapped_column(ForeignKey("appro_suppliers.id"), nullable=True)
    criticality: Mapped[str] = mapped_column(String(50), nullable=False, default="MEDIUM")
    safety_threshold: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    order_threshold: Mapped[Decimal | None]

    def to_dto(self):
        from dairy_modules.stock.models import MaterialCriticality, Product, ProductType

        return Product(
            id=self.id,
            code=self.code,
            name=self.name,
            product_type=ProductType(self.product_type),
            unit=self.unit,
            is_perishable=self.is_perishable,
            unit_cost=self.unit_cost,
            last_price=self.last_price,
            main_supplier_id=self.main_supplier_id,
            criticality=MaterialCriticality(self.criticality),
            safety_threshold=self.safety_threshold,
            order_threshold=self.order_threshold,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ProductModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            product_type=dto.product_type.value,
            unit=dto.unit,
            is_perishable=dto.is_perishable,
            unit_cost=dto.unit_cost,
            last_price=dto.last_price,
            main_supplier_id=dto.main_supplier_id,
            criticality=dto.criticality.value,
            safety_threshold=dto.safety_threshold,
            order_threshold=dto.order_threshold,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<ProductModel {self.code} [{self.product_type}]>"


# ---------------------------------------------------------------------------
# LotModel
# ---------------------------------------------------------------------------


class LotModel(TrackedBase):
    """
    A traceable quantity of one product.

    Guarantees:
        - 0 <= quantity_remaining.
        - status CONSUMED iff quantity_remaining reached 0 through a draw-down.
    """

    __tablename__ = "stock_lots"

    __table_args__ = (
        UniqueConstraint("product_id", "lot_number", name="uq_stock_lot_product_number"),
        Index("idx_stock_lot_product_status", "product_id", "status"),
        Index("idx_stock_lot_expiry", "expiry_date"),
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("stock_products.id"), nullable=False)
    quantity_initial: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    quantity_remaining: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="AVAILABLE")
    supplier_id: Mapped[UUID | None]
    purchase_order_id: Mapped[UUID | None]

    def to_candidate(self):
        from dairy_engines.fifo import LotCandidate, LotStatus

        return LotCandidate(
            lot_id=self.id,
            lot_number=self.lot_number,
            quantity_remaining=self.quantity_remaining,
            expiry_date=self.expiry_date,
            created_at=as_utc(self.created_at),
            status=LotStatus(self.status),
        )

    def to_dto(self):
        from dairy_engines.fifo import LotStatus
        from dairy_modules.stock.models import Lot

        return Lot(
            id=self.id,
            lot_number=self.lot_number,
            product_id=self.product_id,
            quantity_initial=self.quantity_initial,
            quantity_remaining=self.quantity_remaining,
            status=LotStatus(self.status),
            created_at=as_utc(self.created_at),
            expiry_date=self.expiry_date,
            supplier_id=self.supplier_id,
            purchase_order_id=self.purchase_order_id,
        )

    def __repr__(self) -> str:
        return f"<LotModel {self.lot_number} remaining={self.quantity_remaining} [{self.status}]>"


# ---------------------------------------------------------------------------
# StockMovementModel
# ---------------------------------------------------------------------------


class StockMovementModel(TrackedBase):
    """
    One immutable stock ledger entry.

    ``quantity`` is always positive; ``movement_type`` carries the sign.
    ``created_by_id`` is the acting user.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_stock_movement_product", "product_id"),
        Index("idx_stock_movement_lot", "lot_id"),
        Index("idx_stock_movement_reference", "reference"),
    )

    product_id: Mapped[UUID] = mapped_column(ForeignKey("stock_products.id"), nullable=False)
    lot_id: Mapped[UUID | None] = mapped_column(ForeignKey("stock_lots.id"), nullable=True)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(50), nullable=False)
    origin: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal]
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    occurred_at: Mapped[datetime]

    def to_dto(self):
        from dairy_modules.stock.models import (
            MovementOrigin,
            MovementType,
            ProductType,
            StockMovement,
        )

        return StockMovement(
            id=self.id,
            product_id=self.product_id,
            product_type=ProductType(self.product_type),
            movement_type=MovementType(self.movement_type),
            origin=MovementOrigin(self.origin),
            quantity=self.quantity,
            occurred_at=as_utc(self.occurred_at),
            actor_id=self.created_by_id,
            lot_id=self.lot_id,
            reference=self.reference,
            note=self.note,
        )

    def __repr__(self) -> str:
        return f"<StockMovementModel {self.movement_type}/{self.origin} {self.quantity}>"


# ---------------------------------------------------------------------------
# InventoryDeclarationModel
# ---------------------------------------------------------------------------


class InventoryDeclarationModel(TrackedBase):
    """
    A physical count of one product, with its risk tier and validation trail.

    ``created_by_id`` is the counter.  ``first_validator_id`` is set by the
    first of two validations on a CRITICAL count; ``validator_id`` by the
    validation that approved it.
    """

    __tablename__ = "stock_inventory_declarations"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_stock_inventory_reference"),
        Index("idx_stock_inventory_product_counter", "product_id", "created_by_id"),
        Index("idx_stock_inventory_status", "status"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("stock_products.id"), nullable=False)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False)
    theoretical_quantity: Mapped[Decimal]
    physical_quantity: Mapped[Decimal]
    difference: Mapped[Decimal]
    drift_percent: Mapped[Decimal]
    difference_value: Mapped[Decimal]
    risk_level: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    evidence_photos: Mapped[list[Any]] = mapped_column(JSON, default=list)
    counted_at: Mapped[datetime]
    first_validator_id: Mapped[UUID | None]
    first_validated_at: Mapped[datetime | None]
    validator_id: Mapped[UUID | None]
    validated_at: Mapped[datetime | None]
    validation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    rejected_by_id: Mapped[UUID | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    adjustment_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def to_dto(self):
        from dairy_engines.inventory_control import DeclarationStatus, RiskLevel
        from dairy_modules.stock.models import InventoryDeclaration, ProductType

        return InventoryDeclaration(
            id=self.id,
            reference=self.reference,
            product_id=self.product_id,
            product_type=ProductType(self.product_type),
            theoretical_quantity=self.theoretical_quantity,
            physical_quantity=self.physical_quantity,
            difference=self.difference,
            drift_percent=self.drift_percent,
            difference_value=self.difference_value,
            risk_level=RiskLevel(self.risk_level),
            status=DeclarationStatus(self.status),
            reason=self.reason,
            counted_by_id=self.created_by_id,
            counted_at=as_utc(self.counted_at),
            suspicious=self.suspicious,
            evidence_photos=tuple(self.evidence_photos or ()),
            first_validator_id=self.first_validator_id,
            validator_id=self.validator_id,
            rejection_reason=self.rejection_reason,
            adjustment_applied=self.adjustment_applied,
        )

    def __repr__(self) -> str:
        return f"<InventoryDeclarationModel {self.reference} [{self.status}]>"


# ---------------------------------------------------------------------------
# LossDeclarationModel
# ---------------------------------------------------------------------------


class LossDeclarationModel(TrackedBase):
    """A declared loss (expiry, defect, damage...) drawn out of stock."""

    __tablename__ = "stock_loss_declarations"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_stock_loss_reference"),
        Index("idx_stock_loss_product", "product_id"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    product_type: Mapped[str] = mapped_column(String(50), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("stock_products.id"), nullable=False)
    lot_id: Mapped[UUID | None] = mapped_column(ForeignKey("stock_lots.id"), nullable=True)
    quantity: Mapped[Decimal]
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    evidence_photos: Mapped[list[Any]] = mapped_column(JSON, default=list)
    declared_at: Mapped[datetime]

    def to_dto(self, movement_ids: tuple[UUID, ...] = ()):
        from dairy_modules.stock.models import LossReason, LossRecord, ProductType

        return LossRecord(
            id=self.id,
            reference=self.reference,
            product_type=ProductType(self.product_type),
            product_id=self.product_id,
            quantity=self.quantity,
            reason=LossReason(self.reason),
            description=self.description,
            declared_by_id=self.created_by_id,
            declared_at=as_utc(self.declared_at),
            lot_id=self.lot_id,
            movement_ids=movement_ids,
            evidence_photos=tuple(self.evidence_photos or ()),
        )

    def __repr__(self) -> str:
        return f"<LossDeclarationModel {self.reference} {self.quantity}>"
