"""
SQLAlchemy ORM persistence models for the procurement (appro) module.

Responsibility
--------------
Database-backed persistence for suppliers, material requests and their
lines, purchase orders (BC) and their lines, and receptions.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ApproService``.  Inherits
from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantities and amounts use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Status fields stored as String(50); only ``ApproService`` writes them,
  and only after the transition guard accepted the change.
* References (``REQ-MP-...``, ``BC-...``, ``REC-...``) are unique.
* ``PurchaseOrderLineModel.quantity_received`` is cumulative over every
  reception of the order.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_kernel.db.base import TrackedBase, as_utc

# ---------------------------------------------------------------------------
# SupplierModel
# ---------------------------------------------------------------------------


class SupplierModel(TrackedBase):
    """A raw-material supplier."""

    __tablename__ = "appro_suppliers"

    __table_args__ = (
        UniqueConstraint("code", name="uq_appro_supplier_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self):
        from dairy_modules.appro.models import Supplier

        return Supplier(
            id=self.id,
            code=self.code,
            name=self.name,
            email=self.email,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "SupplierModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            email=dto.email,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<SupplierModel {self.code}>"


# ---------------------------------------------------------------------------
# RequestModel
# ---------------------------------------------------------------------------


class RequestModel(TrackedBase):
    """
    A raw-material request raised by production.

    ``created_by_id`` is the requester (owner).
    """

    __tablename__ = "appro_requests"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_appro_request_reference"),
        Index("idx_appro_request_status", "status"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default="NORMAL")
    comment: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    submitted_at: Mapped[datetime | None]
    validated_by_id: Mapped[UUID | None]
    validated_at: Mapped[datetime | None]
    rejected_by_id: Mapped[UUID | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["RequestLineModel"]] = relationship(
        "RequestLineModel",
        back_populates="request",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RequestLineModel.line_number",
    )

    def to_dto(self):
        from dairy_modules.appro.models import MaterialRequest, RequestPriority, RequestStatus

        return MaterialRequest(
            id=self.id,
            reference=self.reference,
            status=RequestStatus(self.status),
            priority=RequestPriority(self.priority),
            requested_by_id=self.created_by_id,
            comment=self.comment,
            validated_by_id=self.validated_by_id,
            validated_at=as_utc(self.validated_at),
            rejection_reason=self.rejection_reason,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<RequestModel {self.reference} [{self.status}]>"


class RequestLineModel(TrackedBase):
    """One requested material on a request."""

    __tablename__ = "appro_request_lines"

    __table_args__ = (
        UniqueConstraint("request_id", "line_number", name="uq_appro_request_line_number"),
    )

    request_id: Mapped[UUID] = mapped_column(ForeignKey("appro_requests.id"), nullable=False)
    line_number: Mapped[int]
    product_id: Mapped[UUID] = mapped_column(ForeignKey("stock_products.id"), nullable=False)
    quantity_requested: Mapped[Decimal]
    quantity_validated: Mapped[Decimal | None]
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    request: Mapped["RequestModel"] = relationship("RequestModel", back_populates="lines")

    def to_dto(self):
        from dairy_modules.appro.models import RequestLine

        return RequestLine(
            id=self.id,
            request_id=self.request_id,
            product_id=self.product_id,
            quantity_requested=self.quantity_requested,
            quantity_validated=self.quantity_validated,
            note=self.note,
        )


# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order (BC) to one supplier, generated from one request.

    Guarantees:
        - ``reference`` is unique (``BC-YYYY-NNNNN``).
        - ``cancel_reason`` is set iff status is CANCELLED.
    """

    __tablename__ = "appro_purchase_orders"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_appro_purchase_order_reference"),
        Index("idx_appro_po_request", "request_id"),
        Index("idx_appro_po_status", "status"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    request_id: Mapped[UUID] = mapped_column(ForeignKey("appro_requests.id"), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("appro_suppliers.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")
    total_ht: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    expected_delivery: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sent_at: Mapped[datetime | None]
    sent_via: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sent_to_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    send_proof_note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    sent_by_id: Mapped[UUID | None]
    confirmed_at: Mapped[datetime | None]
    confirmed_by_id: Mapped[UUID | None]
    received_at: Mapped[datetime | None]
    cancelled_at: Mapped[datetime | None]
    cancelled_by_id: Mapped[UUID | None]
    cancel_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        "PurchaseOrderLineModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_number",
    )

    @property
    def has_partial_received(self) -> bool:
        return any(line.quantity_received > 0 for line in self.lines)

    def to_dto(self):
        from dairy_modules.appro.models import PurchaseOrder, PurchaseOrderStatus, SendVia

        return PurchaseOrder(
            id=self.id,
            reference=self.reference,
            request_id=self.request_id,
            supplier_id=self.supplier_id,
            status=PurchaseOrderStatus(self.status),
            total_ht=self.total_ht,
            expected_delivery=self.expected_delivery,
            delivery_address=self.delivery_address,
            sent_at=as_utc(self.sent_at),
            sent_via=SendVia(self.sent_via) if self.sent_via else None,
            confirmed_at=as_utc(self.confirmed_at),
            received_at=as_utc(self.received_at),
            cancelled_at=as_utc(self.cancelled_at),
            cancel_reason=self.cancel_reason,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.reference} [{self.status}]>"


class PurchaseOrderLineModel(TrackedBase):
    """One ordered material on a purchase order."""

    __tablename__ = "appro_purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_appro_po_line_number"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("appro_purchase_orders.id"), nullable=False,
    )
    line_number: Mapped[int]
    product_id: Mapped[UUID] = mapped_column(ForeignKey("stock_products.id"), nullable=False)
    request_line_id: Mapped[UUID | None]
    quantity_ordered: Mapped[Decimal]
    quantity_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    unit_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="lines",
    )

    def to_dto(self):
        from dairy_modules.appro.models import PurchaseOrderLine

        return PurchaseOrderLine(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            product_id=self.product_id,
            quantity_ordered=self.quantity_ordered,
            quantity_received=self.quantity_received,
            unit_price=self.unit_price,
        )


# ---------------------------------------------------------------------------
# ReceptionModel
# ---------------------------------------------------------------------------


class ReceptionModel(TrackedBase):
    """One delivery recorded against a purchase order; ``created_by_id`` received it."""

    __tablename__ = "appro_receptions"

    __table_args__ = (
        UniqueConstraint("reference", name="uq_appro_reception_reference"),
        Index("idx_appro_reception_po", "purchase_order_id"),
    )

    reference: Mapped[str] = mapped_column(String(50), nullable=False)
    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("appro_purchase_orders.id"), nullable=False,
    )
    bl_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reception_date: Mapped[date] = mapped_column(Date, nullable=False)
    status_after: Mapped[str] = mapped_column(String(50), nullable=False)
    line_count: Mapped[int] = mapped_column(default=0)
    movements_created: Mapped[int] = mapped_column(default=0)

    def __repr__(self) -> str:
        return f"<ReceptionModel {self.reference} [{self.status_after}]>"
