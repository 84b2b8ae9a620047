"""
Stock Module Service (``dairy_modules.stock.service``).

Responsibility
--------------
Owns the stock ledger: lots credited by receptions, FIFO draw-downs for
production, inventory counts with their risk-tiered validation workflow,
declared losses, reorder thresholds, and the ledger consistency check.
Pure decisions are delegated to ``dairy_engines.fifo``,
``dairy_engines.inventory_control`` and ``dairy_engines.stock_state``.

Architecture position
---------------------
**Modules layer** -- ``StockService`` is the sole public entry point for
stock mutations.  ``ApproService`` composes it with ``auto_commit=False``
so that lots and movements created by a purchase-order reception land in
the reception's own transaction.

Invariants enforced
-------------------
* Ledger: for every product, the signed sum of its movements equals the
  sum of its lots' remaining quantities.  Every lot change is paired with
  exactly one movement, and movements are append-only.
* FIFO: draw-downs take from lots in ``dairy_engines.fifo`` order; a lot
  reaching 0 becomes CONSUMED.
* Anti-fraud: the counter never validates their own count; the two
  validators of a CRITICAL count differ; one count per counter and
  product per cooldown window.
* Each public method owns the transaction boundary (commit on success,
  rollback and re-raise on failure) unless ``auto_commit=False``.

Failure modes
-------------
* Invalid input  -> ``InvalidInputError`` / ``NegativeQuantityError``.
* Not enough stock  -> ``InsufficientStockError`` (nothing written).
* Anti-fraud violation  -> ``InventoryControlError`` subclasses.
* Persistence failure  -> ``DatabaseError`` (retryable).

Audit relevance
---------------
Declaration creation, validation and rejection are reported to the audit
sink; refused self-validations are reported before the error is raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_engines.fifo import FifoPlan, LotStatus, order_lots_fifo, plan_fifo_consumption
from dairy_engines.inventory_control import (
    PENDING_STATUSES,
    DeclarationStatus,
    RiskLevel,
    assess_count,
    can_second_validate,
    can_validate,
    is_in_cooldown,
    tolerance_category,
)
from dairy_engines.stock_state import StockLevel, compute_stock_state
from dairy_kernel.db.base import as_utc
from dairy_kernel.domain.audit import AuditOutcome, AuditRecord, AuditSink, LoggingAuditSink
from dairy_kernel.domain.clock import Clock, SystemClock
from dairy_kernel.domain.roles import ActorContext, Role, require_public_actor
from dairy_kernel.exceptions import (
    AdminOnlyError,
    DeclarationNotFoundError,
    InsufficientStockError,
    InvalidDeclarationStatusError,
    InvalidInputError,
    InventoryCooldownError,
    LotExpiredError,
    LotNotFoundError,
    LotProductMismatchError,
    NegativeQuantityError,
    ProductNotFoundError,
    RoleNotAuthorizedError,
    SameValidatorError,
    SelfValidationError,
    ThresholdInvalidError,
)
from dairy_kernel.logging_config import LogContext, get_logger
from dairy_kernel.services.transaction import transaction_boundary
from dairy_kernel.utils.references import (
    ADJUSTMENT_LOT_PREFIX,
    INVENTORY_PREFIX,
    LOSS_PREFIX,
    LOT_PREFIX,
    daily_prefix,
    latest_reference,
    next_reference,
)
from dairy_modules.stock.config import StockConfig
from dairy_modules.stock.models import (
    ConsumptionResult,
    InventoryAdjustmentResult,
    InventoryDeclaration,
    LedgerCheck,
    Lot,
    LossReason,
    LossRecord,
    MaterialCriticality,
    MovementOrigin,
    MovementType,
    Product,
    ProductType,
    ReceivedLot,
    StockMovement,
    StockSummary,
)
from dairy_modules.stock.orm import (
    InventoryDeclarationModel,
    LossDeclarationModel,
    LotModel,
    ProductModel,
    StockMovementModel,
)
from dairy_modules.stock.rules import check_origin_role, validate_movement

logger = get_logger("modules.stock.service")

_RISK_RANK = {RiskLevel.CRITICAL: 0, RiskLevel.MEDIUM: 1, RiskLevel.LOW: 2}


class StockService:
    """
    Stock ledger operations.

    Contract
    --------
    * Quantities are ``Decimal``; read-only queries never write.
    * Every mutation writes lots and movements together.

    Guarantees
    ----------
    * Session is committed only when the whole operation succeeded
      (``auto_commit=True``), otherwise rolled back.
    * Clock is injectable for deterministic testing.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: StockConfig | None = None,
        audit_sink: AuditSink | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()
        self._audit = audit_sink or LoggingAuditSink()
        self._auto_commit = auto_commit

    @property
    def auto_commit(self) -> bool:
        return self._auto_commit

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get_product(self, product_id: UUID) -> ProductModel:
        product = self._session.get(ProductModel, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def _product_lots(self, product_id: UUID, lock: bool = False) -> list[LotModel]:
        stmt = select(LotModel).where(LotModel.product_id == product_id)
        if lock:
            stmt = stmt.with_for_update()
        return list(self._session.execute(stmt).scalars())

    def _product_movements(self, product_id: UUID) -> list[StockMovementModel]:
        return list(
            self._session.execute(
                select(StockMovementModel)
                .where(StockMovementModel.product_id == product_id)
                .order_by(StockMovementModel.occurred_at, StockMovementModel.created_at)
            ).scalars()
        )

    def get_product(self, product_id: UUID):
        return self._get_product(product_id).to_dto()

    def list_lots(self, product_id: UUID) -> list[Lot]:
        """All lots of a product, in FIFO order first, then the ineligible ones."""
        lots = [lot.to_dto() for lot in self._product_lots(product_id)]
        return sorted(
            lots,
            key=lambda lot: (
                lot.status is not LotStatus.AVAILABLE,
                lot.expiry_date is None,
                lot.expiry_date or date.max,
                lot.created_at,
                str(lot.id),
            ),
        )

    def list_movements(self, product_id: UUID) -> list[StockMovement]:
        return [m.to_dto() for m in self._product_movements(product_id)]

    # =========================================================================
    # Ledger writes
    # =========================================================================

    def _record_movement(
        self,
        product: ProductModel,
        movement_type: MovementType,
        origin: MovementOrigin,
        quantity: Decimal,
        actor_id: UUID,
        lot_id: UUID | None = None,
        reference: str | None = None,
        note: str | None = None,
    ) -> StockMovementModel:
        validate_movement(ProductType(product.product_type), origin, movement_type)
        now = self._clock.now()
        movement = StockMovementModel(
            id=uuid4(),
            product_id=product.id,
            lot_id=lot_id,
            product_type=product.product_type,
            movement_type=movement_type.value,
            origin=origin.value,
            quantity=quantity,
            reference=reference,
            note=note,
            occurred_at=now,
            created_at=now,
            created_by_id=actor_id,
        )
        self._session.add(movement)
        return movement

    def _draw_down(
        self,
        product: ProductModel,
        quantity: Decimal,
        actor_id: UUID,
        origin: MovementOrigin,
        reference: str | None,
        as_of: date | None,
    ) -> tuple[FifoPlan, list[UUID], list[UUID]]:
        """Apply a FIFO plan: decrement lots, one OUT movement per touched lot."""
        lots = self._product_lots(product.id, lock=True)
        by_id = {lot.id: lot for lot in lots}
        plan = plan_fifo_consumption(
            [lot.to_candidate() for lot in lots], quantity=quantity, as_of=as_of,
        )
        if not plan.sufficient:
            logger.warning(
                "stock_insufficient",
                extra={
                    "product_code": product.code,
                    "required": str(quantity),
                    "available": str(plan.available),
                },
            )
            raise InsufficientStockError(product.code, quantity, plan.available)

        movement_ids: list[UUID] = []
        depleted: list[UUID] = []
        for consumption in plan.consumptions:
            lot = by_id[consumption.lot_id]
            lot.quantity_remaining = consumption.remaining_after
            if consumption.depletes_lot:
                lot.status = LotStatus.CONSUMED.value
                depleted.append(lot.id)
            movement = self._record_movement(
                product,
                MovementType.OUT,
                origin,
                consumption.quantity,
                actor_id,
                lot_id=lot.id,
                reference=reference,
                note=(
                    f"lot {lot.lot_number}: "
                    f"{consumption.remaining_before} -> {consumption.remaining_after}"
                ),
            )
            movement_ids.append(movement.id)
        return plan, movement_ids, depleted

    def _next_lot_number(self, product: ProductModel, day: date) -> str:
        prefix = f"{LOT_PREFIX}{day:%Y%m%d}-{product.code}-"
        return next_reference(prefix, 3, latest_reference(self._session, LotModel.lot_number, prefix))

    # =========================================================================
    # Receptions
    # =========================================================================

    def receive_lot(
        self,
        product_id: UUID,
        quantity: Decimal,
        actor: ActorContext,
        lot_number: str | None = None,
        expiry_date: date | None = None,
        supplier_id: UUID | None = None,
        purchase_order_id: UUID | None = None,
        reference: str | None = None,
        reception_reference: str | None = None,
        reception_date: date | None = None,
    ) -> ReceivedLot:
        """
        Credit ``quantity`` of a raw material to a lot.

        A supplied lot number that already exists for the product is
        appended to; otherwise a new lot is created (numbered
        ``L{YYYYMMDD}-{code}-{seq}`` when no number is supplied).  One
        ``IN``/``RECEPTION`` movement records the credit.

        Raises:
            NegativeQuantityError: quantity <= 0.
            LotExpiredError: expiry date before the reception date.
            InvalidMovementCombinationError: product is not a raw material.
        """
        with transaction_boundary(self._session, "stock.receive_lot", auto_commit=self._auto_commit):
            if quantity <= 0:
                raise NegativeQuantityError("quantity_received", quantity, strictly_positive=True)
            check_origin_role(MovementOrigin.RECEPTION, actor.role)
            product = self._get_product(product_id)
            validate_movement(ProductType(product.product_type), MovementOrigin.RECEPTION, MovementType.IN)

            received_on = reception_date or self._clock.today()
            if expiry_date is not None and expiry_date < received_on:
                raise LotExpiredError(lot_number or product.code, expiry_date)

            lot = None
            if lot_number:
                lot = self._session.execute(
                    select(LotModel)
                    .where(LotModel.product_id == product.id, LotModel.lot_number == lot_number)
                    .with_for_update()
                ).scalar_one_or_none()

            appended = lot is not None
            if lot is not None:
                lot.quantity_initial += quantity
                lot.quantity_remaining += quantity
                if lot.status == LotStatus.CONSUMED.value:
                    lot.status = LotStatus.AVAILABLE.value
            else:
                lot = LotModel(
                    id=uuid4(),
                    lot_number=lot_number or self._next_lot_number(product, received_on),
                    product_id=product.id,
                    quantity_initial=quantity,
                    quantity_remaining=quantity,
                    expiry_date=expiry_date,
                    status=LotStatus.AVAILABLE.value,
                    supplier_id=supplier_id,
                    purchase_order_id=purchase_order_id,
                    created_at=self._clock.now(),
                    created_by_id=actor.actor_id,
                )
                self._session.add(lot)
                self._session.flush()

            movement = self._record_movement(
                product,
                MovementType.IN,
                MovementOrigin.RECEPTION,
                quantity,
                actor.actor_id,
                lot_id=lot.id,
                reference=reference,
                note=f"Reception {reception_reference}" if reception_reference else None,
            )

            logger.info(
                "stock_lot_received",
                extra={
                    "product_code": product.code,
                    "lot_number": lot.lot_number,
                    "quantity": str(quantity),
                    "appended": appended,
                    "reference": reference,
                },
            )
            return ReceivedLot(
                lot_id=lot.id,
                lot_number=lot.lot_number,
                movement_id=movement.id,
                quantity=quantity,
                appended=appended,
            )

    # =========================================================================
    # FIFO consumption
    # =========================================================================

    def preview_fifo(self, product_id: UUID, quantity: Decimal) -> FifoPlan:
        """Plan a draw-down without writing anything."""
        if quantity <= 0:
            raise NegativeQuantityError("quantity", quantity, strictly_positive=True)
        product = self._get_product(product_id)
        return plan_fifo_consumption(
            [lot.to_candidate() for lot in self._product_lots(product.id)],
            quantity=quantity,
            as_of=self._clock.today(),
        )

    def consume_fifo(
        self,
        product_id: UUID,
        quantity: Decimal,
        actor: ActorContext,
        origin: MovementOrigin = MovementOrigin.PRODUCTION_OUT,
        reference: str | None = None,
    ) -> ConsumptionResult:
        """
        Draw ``quantity`` out of stock in FIFO order.

        Expired lots are skipped.  Nothing is written when stock is short.

        Raises:
            NegativeQuantityError: quantity <= 0.
            InsufficientStockError: eligible stock below ``quantity``.
            InvalidMovementCombinationError: origin is not an outflow for
                the product type.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(product_id)):
            with transaction_boundary(self._session, "stock.consume_fifo", auto_commit=self._auto_commit):
                require_public_actor(actor, "consume_fifo")
                check_origin_role(origin, actor.role)
                if quantity <= 0:
                    raise NegativeQuantityError("quantity", quantity, strictly_positive=True)
                product = self._get_product(product_id)
                validate_movement(ProductType(product.product_type), origin, MovementType.OUT)

                plan, movement_ids, depleted = self._draw_down(
                    product, quantity, actor.actor_id, origin, reference, as_of=self._clock.today(),
                )

                logger.info(
                    "fifo_consumption_completed",
                    extra={
                        "product_code": product.code,
                        "quantity": str(quantity),
                        "lots_touched": len(plan.consumptions),
                        "lots_depleted": len(depleted),
                        "origin": origin.value,
                    },
                )
                return ConsumptionResult(
                    product_id=product.id,
                    quantity=quantity,
                    plan=plan,
                    movement_ids=tuple(movement_ids),
                    depleted_lot_ids=tuple(depleted),
                )

    # =========================================================================
    # Stock levels
    # =========================================================================

    def get_available_stock(self, product_id: UUID) -> StockSummary:
        """Usable stock: AVAILABLE, non-empty, unexpired lots."""
        product = self._get_product(product_id)
        eligible = order_lots_fifo(
            [lot.to_candidate() for lot in self._product_lots(product.id)],
            as_of=self._clock.today(),
        )
        expiries = [lot.expiry_date for lot in eligible if lot.expiry_date is not None]
        return StockSummary(
            product_id=product.id,
            total=sum((lot.quantity_remaining for lot in eligible), Decimal("0")),
            lot_count=len(eligible),
            next_expiry=min(expiries) if expiries else None,
        )

    def calculate_stock(self, product_id: UUID) -> Decimal:
        """Signed sum of every movement of the product."""
        self._get_product(product_id)
        return sum(
            (m.quantity if m.movement_type == MovementType.IN.value else -m.quantity
             for m in self._product_movements(product_id)),
            Decimal("0"),
        )

    def check_ledger_consistency(self, product_id: UUID) -> LedgerCheck:
        movement_total = self.calculate_stock(product_id)
        lot_total = sum(
            (lot.quantity_remaining for lot in self._product_lots(product_id)),
            Decimal("0"),
        )
        check = LedgerCheck(product_id=product_id, movement_total=movement_total, lot_total=lot_total)
        if not check.consistent:
            logger.warning(
                "stock_ledger_drift_detected",
                extra={
                    "product_id": str(product_id),
                    "movement_total": str(movement_total),
                    "lot_total": str(lot_total),
                },
            )
        return check

    # =========================================================================
    # Reorder thresholds
    # =========================================================================

    def get_stock_state(self, product_id: UUID) -> StockLevel:
        """Usable stock classified against the product's reorder thresholds."""
        product = self._get_product(product_id)
        available = self.get_available_stock(product_id).total
        return compute_stock_state(
            available,
            safety_threshold=product.safety_threshold,
            order_threshold=product.order_threshold,
            blocks_production=product.criticality == MaterialCriticality.HIGH.value,
        )

    def update_product_thresholds(
        self,
        product_id: UUID,
        actor: ActorContext,
        safety_threshold: Decimal | None = None,
        order_threshold: Decimal | None = None,
    ) -> Product:
        """
        Set a raw material's safety and/or order threshold (APPRO, ADMIN).

        Omitted values keep their stored value; the resulting pair must
        have the order threshold strictly above the safety threshold.

        Raises:
            RoleNotAuthorizedError: actor is neither APPRO nor ADMIN.
            NegativeQuantityError: a threshold below zero.
            ThresholdInvalidError: order threshold <= safety threshold.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(product_id)):
            with transaction_boundary(
                self._session, "stock.update_product_thresholds", auto_commit=self._auto_commit,
            ):
                require_public_actor(actor, "update_product_thresholds")
                if actor.role not in (Role.APPRO, Role.ADMIN):
                    raise RoleNotAuthorizedError(
                        role=actor.role.value,
                        required_roles=[Role.APPRO.value],
                        operation="update_product_thresholds",
                    )
                for name, value in (("safety_threshold", safety_threshold), ("order_threshold", order_threshold)):
                    if value is not None and value < 0:
                        raise NegativeQuantityError(name, value)

                product = self._get_product(product_id)
                if product.product_type != ProductType.MP.value:
                    raise InvalidInputError("product_id", f"product {product.code} is not a raw material")

                safety = safety_threshold if safety_threshold is not None else product.safety_threshold
                order = order_threshold if order_threshold is not None else product.order_threshold
                if order is not None and order <= safety:
                    logger.warning(
                        "product_threshold_invalid",
                        extra={"product": product.code, "safety_threshold": str(safety), "order_threshold": str(order)},
                    )
                    raise ThresholdInvalidError(product.code, "safety_threshold", safety, "order_threshold", order)

                product.safety_threshold = safety
                product.order_threshold = order
                self._session.flush()

                logger.info(
                    "product_thresholds_updated",
                    extra={"product": product.code, "safety_threshold": str(safety), "order_threshold": str(order)},
                )
                return product.to_dto()

    # =========================================================================
    # Inventory counts
    # =========================================================================

    def _check_reason(self, reason: str | None, field: str = "reason") -> str:
        text = (reason or "").strip()
        lo, hi = self._config.reason_min_length, self._config.reason_max_length
        if not lo <= len(text) <= hi:
            raise InvalidInputError(field, f"must be between {lo} and {hi} characters")
        return text

    def _audit_declaration(
        self,
        declaration: InventoryDeclarationModel,
        action: str,
        actor: ActorContext,
        outcome: AuditOutcome,
        from_status: str | None,
        error_code: str | None = None,
    ) -> None:
        self._audit.record(
            AuditRecord(
                entity_type="inventory_declaration",
                entity_id=str(declaration.id),
                action=action,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                occurred_at=self._clock.now(),
                outcome=outcome,
                from_status=from_status,
                to_status=declaration.status if outcome is AuditOutcome.ACCEPTED else None,
                error_code=error_code,
                metadata={"reference": declaration.reference, "difference": str(declaration.difference)},
            )
        )

    def _apply_adjustment(
        self,
        declaration: InventoryDeclarationModel,
        product: ProductModel,
        actor_id: UUID,
    ) -> list[UUID]:
        """Book a declaration's difference into the ledger."""
        difference = declaration.difference
        if difference > 0:
            lot = LotModel(
                id=uuid4(),
                lot_number=f"{ADJUSTMENT_LOT_PREFIX}-{declaration.reference}",
                product_id=product.id,
                quantity_initial=difference,
                quantity_remaining=difference,
                status=LotStatus.AVAILABLE.value,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(lot)
            self._session.flush()
            movement = self._record_movement(
                product, MovementType.IN, MovementOrigin.ADJUSTMENT, difference, actor_id,
                lot_id=lot.id, reference=declaration.reference,
            )
            movement_ids = [movement.id]
        elif difference < 0:
            _, movement_ids, _ = self._draw_down(
                product, -difference, actor_id, MovementOrigin.ADJUSTMENT,
                declaration.reference, as_of=None,
            )
        else:
            movement_ids = []
        declaration.adjustment_applied = bool(movement_ids)
        logger.info(
            "inventory_adjustment_applied",
            extra={
                "reference": declaration.reference,
                "product_code": product.code,
                "difference": str(difference),
                "movements": len(movement_ids),
            },
        )
        return movement_ids

    def adjust_inventory(
        self,
        product_id: UUID,
        physical_quantity: Decimal,
        reason: str,
        actor: ActorContext,
        evidence_photos: Sequence[str] = (),
    ) -> InventoryAdjustmentResult:
        """
        Declare a physical count for one product.

        The count is tiered against the theoretical stock.  A LOW-risk count
        is auto-approved and its difference booked immediately; others wait
        for one or two ADMIN validations.

        Raises:
            NegativeQuantityError: physical quantity below 0.
            InvalidInputError: quantity above the maximum, reason length.
            InventoryCooldownError: same counter counted this product within
                the cooldown window.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(product_id)):
            with transaction_boundary(self._session, "stock.adjust_inventory", auto_commit=self._auto_commit):
                require_public_actor(actor, "adjust_inventory")
                if physical_quantity < 0:
                    raise NegativeQuantityError("physical_quantity", physical_quantity)
                if physical_quantity > self._config.max_physical_quantity:
                    raise InvalidInputError(
                        "physical_quantity",
                        f"must not exceed {self._config.max_physical_quantity}",
                    )
                reason_text = self._check_reason(reason)
                product = self._get_product(product_id)
                now = self._clock.now()

                last = self._session.execute(
                    select(InventoryDeclarationModel)
                    .where(
                        InventoryDeclarationModel.product_id == product.id,
                        InventoryDeclarationModel.created_by_id == actor.actor_id,
                        InventoryDeclarationModel.status != DeclarationStatus.REJECTED.value,
                    )
                    .order_by(InventoryDeclarationModel.counted_at.desc())
                    .limit(1)
                ).scalar_one_or_none()
                last_at = as_utc(last.counted_at) if last is not None else None
                if is_in_cooldown(last_at, now, self._config.cooldown_hours):
                    logger.warning(
                        "inventory_cooldown_active",
                        extra={"product_code": product.code, "last_declared_at": last_at},
                    )
                    raise InventoryCooldownError(product.code, last_at, self._config.cooldown_hours)

                previous = self._session.execute(
                    select(InventoryDeclarationModel.difference)
                    .where(
                        InventoryDeclarationModel.product_id == product.id,
                        InventoryDeclarationModel.created_by_id == actor.actor_id,
                        InventoryDeclarationModel.counted_at
                        >= now - timedelta(days=self._config.suspicious_lookback_days),
                        InventoryDeclarationModel.status.in_(
                            [DeclarationStatus.AUTO_APPROVED.value, DeclarationStatus.APPROVED.value]
                        ),
                    )
                    .order_by(InventoryDeclarationModel.counted_at.desc())
                    .limit(self._config.suspicious_threshold - 1)
                ).scalars().all()

                product_type = ProductType(product.product_type)
                category = tolerance_category(product_type is ProductType.PF, product.is_perishable)
                assessment = assess_count(
                    theoretical=self.calculate_stock(product.id),
                    physical=physical_quantity,
                    unit_cost=product.unit_cost or Decimal("0"),
                    thresholds=self._config.thresholds_for(category),
                    previous_differences=list(previous),
                    has_evidence=bool(evidence_photos),
                    critical_value=self._config.critical_value,
                    suspicious_threshold=self._config.suspicious_threshold,
                )

                prefix = daily_prefix(INVENTORY_PREFIX, now.date())
                declaration = InventoryDeclarationModel(
                    id=uuid4(),
                    reference=next_reference(
                        prefix, 3,
                        latest_reference(self._session, InventoryDeclarationModel.reference, prefix),
                    ),
                    product_id=product.id,
                    product_type=product.product_type,
                    theoretical_quantity=assessment.theoretical,
                    physical_quantity=physical_quantity,
                    difference=assessment.difference,
                    drift_percent=assessment.drift_percent,
                    difference_value=assessment.value,
                    risk_level=assessment.risk_level.value,
                    status=assessment.status.value,
                    reason=reason_text,
                    suspicious=assessment.suspicious,
                    evidence_photos=list(evidence_photos),
                    counted_at=now,
                    created_at=now,
                    created_by_id=actor.actor_id,
                )
                self._session.add(declaration)
                self._session.flush()

                movement_ids: list[UUID] = []
                if assessment.status is DeclarationStatus.AUTO_APPROVED and assessment.difference != 0:
                    movement_ids = self._apply_adjustment(declaration, product, actor.actor_id)

                logger.info(
                    "inventory_declared",
                    extra={
                        "reference": declaration.reference,
                        "product_code": product.code,
                        "difference": str(assessment.difference),
                        "drift_percent": str(assessment.drift_percent),
                        "risk_level": assessment.risk_level.value,
                        "status": assessment.status.value,
                        "suspicious": assessment.suspicious,
                    },
                )
                result = InventoryAdjustmentResult(
                    declaration=declaration.to_dto(),
                    adjustment_applied=bool(movement_ids),
                    requires_evidence=assessment.requires_evidence,
                    movement_ids=tuple(movement_ids),
                )
            self._audit_declaration(declaration, "declarer", actor, AuditOutcome.ACCEPTED, None)
            return result

    def _load_declaration(self, declaration_id: UUID) -> InventoryDeclarationModel:
        declaration = self._session.execute(
            select(InventoryDeclarationModel)
            .where(InventoryDeclarationModel.id == declaration_id)
            .with_for_update()
        ).scalar_one_or_none()
        if declaration is None:
            raise DeclarationNotFoundError(declaration_id)
        return declaration

    def validate_declaration(
        self,
        declaration_id: UUID,
        actor: ActorContext,
        reason: str,
    ) -> InventoryAdjustmentResult:
        """
        Validate a pending count (ADMIN only).

        A PENDING_DOUBLE_VALIDATION count needs two different validators:
        the first validation records the first validator and moves the
        count to PENDING_VALIDATION; the next one approves it and books the
        difference.

        Raises:
            AdminOnlyError: actor is not ADMIN.
            SelfValidationError: actor is the counter.
            InvalidDeclarationStatusError: count is not pending.
            SameValidatorError: second validator is the first one.
        """
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(declaration_id)):
            with transaction_boundary(self._session, "stock.validate_declaration", auto_commit=self._auto_commit):
                if actor.role is not Role.ADMIN:
                    raise AdminOnlyError("validate_declaration", actor.role.value)
                reason_text = self._check_reason(reason)
                declaration = self._load_declaration(declaration_id)
                from_status = declaration.status

                if not can_validate(declaration.created_by_id, actor.actor_id):
                    self._audit_declaration(
                        declaration, "valider", actor, AuditOutcome.REJECTED, from_status,
                        error_code=SelfValidationError.code,
                    )
                    logger.warning(
                        "inventory_self_validation_blocked",
                        extra={"reference": declaration.reference},
                    )
                    raise SelfValidationError(declaration.id, actor.actor_id)

                status = DeclarationStatus(declaration.status)
                if status not in PENDING_STATUSES:
                    raise InvalidDeclarationStatusError(
                        declaration.id, status.value, sorted(s.value for s in PENDING_STATUSES),
                    )

                now = self._clock.now()
                movement_ids: list[UUID] = []
                if status is DeclarationStatus.PENDING_DOUBLE_VALIDATION and declaration.first_validator_id is None:
                    declaration.first_validator_id = actor.actor_id
                    declaration.first_validated_at = now
                    declaration.validation_reason = reason_text
                    declaration.status = DeclarationStatus.PENDING_VALIDATION.value
                    action = "premiereValidation"
                else:
                    if declaration.first_validator_id is not None:
                        check = can_second_validate(
                            declaration.first_validator_id, actor.actor_id, declaration.created_by_id,
                        )
                        if not check.allowed:
                            self._audit_declaration(
                                declaration, "valider", actor, AuditOutcome.REJECTED, from_status,
                                error_code=SameValidatorError.code,
                            )
                            raise SameValidatorError(declaration.id, actor.actor_id)
                    declaration.validator_id = actor.actor_id
                    declaration.validated_at = now
                    declaration.validation_reason = reason_text
                    declaration.status = DeclarationStatus.APPROVED.value
                    if declaration.difference != 0:
                        product = self._get_product(declaration.product_id)
                        movement_ids = self._apply_adjustment(declaration, product, actor.actor_id)
                    action = "valider"

                self._session.flush()
                logger.info(
                    "inventory_declaration_validated",
                    extra={
                        "reference": declaration.reference,
                        "from_status": from_status,
                        "to_status": declaration.status,
                        "movements": len(movement_ids),
                    },
                )
                result = InventoryAdjustmentResult(
                    declaration=declaration.to_dto(),
                    adjustment_applied=bool(movement_ids),
                    requires_evidence=False,
                    movement_ids=tuple(movement_ids),
                )
            self._audit_declaration(declaration, action, actor, AuditOutcome.ACCEPTED, from_status)
            return result

    def reject_declaration(
        self,
        declaration_id: UUID,
        actor: ActorContext,
        reason: str,
    ) -> InventoryDeclaration:
        """Reject a pending count (ADMIN only); nothing is booked."""
        with transaction_boundary(self._session, "stock.reject_declaration", auto_commit=self._auto_commit):
            if actor.role is not Role.ADMIN:
                raise AdminOnlyError("reject_declaration", actor.role.value)
            reason_text = self._check_reason(reason)
            declaration = self._load_declaration(declaration_id)
            from_status = declaration.status
            if DeclarationStatus(from_status) not in PENDING_STATUSES:
                raise InvalidDeclarationStatusError(
                    declaration.id, from_status, sorted(s.value for s in PENDING_STATUSES),
                )
            declaration.status = DeclarationStatus.REJECTED.value
            declaration.rejected_by_id = actor.actor_id
            declaration.rejection_reason = reason_text
            self._session.flush()
            logger.info(
                "inventory_declaration_rejected",
                extra={"reference": declaration.reference, "from_status": from_status},
            )
            dto = declaration.to_dto()
        self._audit_declaration(declaration, "rejeter", actor, AuditOutcome.ACCEPTED, from_status)
        return dto

    def get_pending_declarations(self) -> list[InventoryDeclaration]:
        """Pending counts, highest risk first, then oldest first."""
        rows = self._session.execute(
            select(InventoryDeclarationModel).where(
                InventoryDeclarationModel.status.in_([s.value for s in PENDING_STATUSES])
            )
        ).scalars()
        declarations = [row.to_dto() for row in rows]
        return sorted(declarations, key=lambda d: (_RISK_RANK[d.risk_level], d.counted_at))

    # =========================================================================
    # Losses
    # =========================================================================

    def declare_loss(
        self,
        product_type: ProductType,
        product_id: UUID,
        quantity: Decimal,
        reason: LossReason | str,
        description: str,
        actor: ActorContext,
        lot_id: UUID | None = None,
        evidence_photos: Sequence[str] = (),
    ) -> LossRecord:
        """
        Declare a loss and draw it out of stock (ADMIN only).

        With ``lot_id`` the loss comes out of that lot; otherwise out of the
        product's lots in FIFO order, expired lots included.

        Raises:
            AdminOnlyError: actor is not ADMIN.
            InvalidInputError: unknown reason, description length, quantity
                above the maximum, product type mismatch.
            LotNotFoundError / LotProductMismatchError: bad lot.
            InsufficientStockError: not enough stock (in the lot).
        """
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(product_id)):
            with transaction_boundary(self._session, "stock.declare_loss", auto_commit=self._auto_commit):
                if actor.role is not Role.ADMIN:
                    raise AdminOnlyError("declare_loss", actor.role.value)
                try:
                    loss_reason = LossReason(reason)
                except ValueError:
                    raise InvalidInputError(
                        "reason", f"must be one of {', '.join(r.value for r in LossReason)}",
                    ) from None
                text = (description or "").strip()
                lo = self._config.loss_description_min_length
                hi = self._config.loss_description_max_length
                if not lo <= len(text) <= hi:
                    raise InvalidInputError("description", f"must be between {lo} and {hi} characters")
                if quantity <= 0:
                    raise NegativeQuantityError("quantity", quantity, strictly_positive=True)
                if quantity > self._config.max_loss_quantity:
                    raise InvalidInputError("quantity", f"must not exceed {self._config.max_loss_quantity}")

                product = self._get_product(product_id)
                if product.product_type != ProductType(product_type).value:
                    raise InvalidInputError(
                        "product_type", f"product {product.code} is {product.product_type}",
                    )
                validate_movement(ProductType(product.product_type), MovementOrigin.LOSS, MovementType.OUT)

                now = self._clock.now()
                prefix = daily_prefix(LOSS_PREFIX, now.date())
                reference = next_reference(
                    prefix, 3, latest_reference(self._session, LossDeclarationModel.reference, prefix),
                )

                if lot_id is not None:
                    lot = self._session.execute(
                        select(LotModel).where(LotModel.id == lot_id).with_for_update()
                    ).scalar_one_or_none()
                    if lot is None:
                        raise LotNotFoundError(lot_id)
                    if lot.product_id != product.id:
                        raise LotProductMismatchError(lot.lot_number, product.code)
                    if lot.quantity_remaining < quantity:
                        raise InsufficientStockError(product.code, quantity, lot.quantity_remaining)
                    before = lot.quantity_remaining
                    lot.quantity_remaining = before - quantity
                    if lot.quantity_remaining == 0:
                        lot.status = LotStatus.CONSUMED.value
                    movement = self._record_movement(
                        product, MovementType.OUT, MovementOrigin.LOSS, quantity, actor.actor_id,
                        lot_id=lot.id, reference=reference,
                        note=f"lot {lot.lot_number}: {before} -> {lot.quantity_remaining}",
                    )
                    movement_ids = [movement.id]
                else:
                    _, movement_ids, _ = self._draw_down(
                        product, quantity, actor.actor_id, MovementOrigin.LOSS, reference, as_of=None,
                    )

                loss = LossDeclarationModel(
                    id=uuid4(),
                    reference=reference,
                    product_type=product.product_type,
                    product_id=product.id,
                    lot_id=lot_id,
                    quantity=quantity,
                    reason=loss_reason.value,
                    description=text,
                    evidence_photos=list(evidence_photos),
                    declared_at=now,
                    created_at=now,
                    created_by_id=actor.actor_id,
                )
                self._session.add(loss)
                self._session.flush()

                logger.info(
                    "stock_loss_declared",
                    extra={
                        "reference": reference,
                        "product_code": product.code,
                        "quantity": str(quantity),
                        "loss_reason": loss_reason.value,
                        "movements": len(movement_ids),
                    },
                )
                return loss.to_dto(movement_ids=tuple(movement_ids))
