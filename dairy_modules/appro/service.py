"""
Procurement (appro) Module Service (``dairy_modules.appro.service``).

Responsibility
--------------
Drives material requests and purchase orders (BC) through their lifecycles:
request CRUD and validation, purchase-order generation per supplier,
sending with proof, confirmation, cancellation, and the reception
reconciler that credits stock and closes the originating request.

Architecture position
---------------------
**Modules layer** -- every status change is checked by the transition
tables in ``dairy_modules.appro.workflows``; reception planning and delay
assessment come from ``dairy_engines``; lots and movements are written
through a ``StockService`` composed into the same transaction.

Invariants enforced
-------------------
* No status is written unless ``assert_can_transition`` accepted it.
* Every refused transition is reported to the audit sink before raising;
  accepted ones are reported once the transaction committed.
* Cascades (request ``ORDERING -> ORDERED`` and ``ORDERED -> RECEIVED``)
  run through the request table with the SYSTEM role.
* Replaying an idempotency key returns the stored result and writes
  nothing; in particular a replayed reception never credits stock twice.
* The purchase order is selected ``FOR UPDATE`` during a reception.

Failure modes
-------------
* ``TransitionError`` subclasses from the guard.
* ``EntityNotFoundError`` subclasses for unknown ids.
* ``ProcurementError`` subclasses for request / purchase-order rules.
* ``DatabaseError`` wrapping any persistence failure (retryable).

Audit relevance
---------------
Structured log events: ``request_created``, ``purchase_orders_generated``,
``purchase_order_sent``, ``purchase_order_received``,
``purchase_order_cancelled`` and friends, plus one audit record per
accepted or refused transition.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_engines.delivery_delay import assess_delay, late_percentage
from dairy_engines.reception import OrderLineState, ReceivedQuantity, ReceptionOutcome, plan_reception
from dairy_kernel.domain.audit import AuditOutcome, AuditRecord, AuditSink, LoggingAuditSink
from dairy_kernel.domain.clock import Clock, SystemClock
from dairy_kernel.domain.roles import ActorContext, Role, require_public_actor
from dairy_kernel.domain.transitions import TransitionTable
from dairy_kernel.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    NegativeQuantityError,
    NotRequestOwnerError,
    ProductNotFoundError,
    ProductWithoutSupplierError,
    PurchaseOrderLineNotFoundError,
    PurchaseOrderNotFoundError,
    PurchaseOrdersAlreadyGeneratedError,
    RequestNotEditableError,
    RequestNotFoundError,
    RoleNotAuthorizedError,
    SendProofRequiredError,
    TransitionError,
)
from dairy_kernel.logging_config import LogContext, get_logger
from dairy_kernel.services.idempotency_service import IdempotencyStore
from dairy_kernel.services.transaction import transaction_boundary
from dairy_kernel.utils.references import (
    PURCHASE_ORDER_PREFIX,
    RECEPTION_PREFIX,
    REQUEST_PREFIX,
    daily_prefix,
    latest_reference,
    next_reference,
    yearly_prefix,
)
from dairy_modules.appro.config import ApproConfig
from dairy_modules.appro.models import (
    ACTIVE_PURCHASE_ORDER_STATUSES,
    CancelResult,
    ConfirmResult,
    DelayStats,
    GeneratedPurchaseOrder,
    GenerateResult,
    LatePurchaseOrder,
    MaterialRequest,
    PriceOverride,
    PurchaseOrder,
    PurchaseOrderStatus,
    ReceiveResult,
    ReceptionLineInput,
    RequestLineInput,
    RequestPriority,
    RequestStatus,
    SendResult,
    SendVia,
)
from dairy_modules.appro.orm import (
    PurchaseOrderLineModel,
    PurchaseOrderModel,
    ReceptionModel,
    RequestLineModel,
    RequestModel,
    SupplierModel,
)
from dairy_modules.appro.workflows import PURCHASE_ORDER_TRANSITIONS, REQUEST_TRANSITIONS
from dairy_modules.stock.models import MaterialCriticality, ProductType
from dairy_modules.stock.orm import ProductModel
from dairy_modules.stock.service import StockService

logger = get_logger("modules.appro.service")

_REQUESTERS = frozenset({Role.PRODUCTION, Role.ADMIN})

RECEIVE_OPERATION = "purchase_order.receive"
SEND_OPERATION = "purchase_order.send"
CANCEL_OPERATION = "purchase_order.cancel"


class ApproService:
    """
    Orchestrates requests and purchase orders.

    Contract
    --------
    Every public method takes an explicit ``ActorContext``.  The SYSTEM
    role is refused at every entry point; it is only used internally for
    cascades.

    Non-goals
    ---------
    * No e-mail delivery: ``send_purchase_order`` records how the order was
      sent, it does not send anything.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        config: ApproConfig | None = None,
        stock_service: StockService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_sink or LoggingAuditSink()
        self._config = config or ApproConfig.with_defaults()
        if stock_service is not None and stock_service.auto_commit:
            # lots and movements must land in the reception's own transaction
            raise ValueError("ApproService needs a StockService built with auto_commit=False")
        self._stock = stock_service or StockService(
            session, clock=self._clock, audit_sink=self._audit, auto_commit=False,
        )
        self._idempotency = IdempotencyStore(session)
        self._pending_audit: list[AuditRecord] = []

    # =========================================================================
    # Unit of work / guard
    # =========================================================================

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        """Transaction boundary; accepted transitions are audited after commit."""
        self._pending_audit.clear()
        with transaction_boundary(self._session, operation) as session:
            yield session
        pending, self._pending_audit = self._pending_audit, []
        for entry in pending:
            self._audit.record(entry)

    def _transition(
        self,
        table: TransitionTable,
        entity: RequestModel | PurchaseOrderModel,
        to_status: Enum,
        actor: ActorContext,
        justification: str | None = None,
        has_partial_received: bool = False,
        invalid_reason: str | None = None,
    ) -> None:
        """
        Move ``entity`` to ``to_status`` if the table allows it.

        The refused attempt is audited before the guard's error propagates.
        """
        from_status = type(to_status)(entity.status)
        try:
            if invalid_reason is not None and table.find_rule(from_status, to_status) is None:
                raise InvalidTransitionError(
                    entity_type=table.entity_type,
                    current_status=from_status.value,
                    requested_status=to_status.value,
                    allowed_transitions=[s.value for s in table.reachable_statuses(from_status)],
                    reason=invalid_reason,
                )
            rule = table.assert_can_transition(
                from_status,
                to_status,
                actor.role,
                justification=justification,
                has_partial_received=has_partial_received,
            )
        except TransitionError as exc:
            self._audit.record(
                AuditRecord(
                    entity_type=table.entity_type,
                    entity_id=str(entity.id),
                    action=f"{from_status.value}->{to_status.value}",
                    actor_id=actor.actor_id,
                    actor_role=actor.role.value,
                    occurred_at=self._clock.now(),
                    outcome=AuditOutcome.REJECTED,
                    from_status=from_status.value,
                    to_status=to_status.value,
                    error_code=exc.code,
                    metadata={"reference": entity.reference},
                )
            )
            logger.warning(
                "transition_rejected",
                extra={
                    "entity_type": table.entity_type,
                    "reference": entity.reference,
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                    "error_code": exc.code,
                },
            )
            raise

        entity.status = to_status.value
        self._pending_audit.append(
            AuditRecord(
                entity_type=table.entity_type,
                entity_id=str(entity.id),
                action=rule.action,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                occurred_at=self._clock.now(),
                outcome=AuditOutcome.ACCEPTED,
                from_status=from_status.value,
                to_status=to_status.value,
                metadata={"reference": entity.reference},
            )
        )

    # =========================================================================
    # Lookups
    # =========================================================================

    def _load_request(self, request_id: UUID, lock: bool = False) -> RequestModel:
        stmt = select(RequestModel).where(RequestModel.id == request_id)
        if lock:
            stmt = stmt.with_for_update()
        request = self._session.execute(stmt).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def _load_purchase_order(self, po_id: UUID, lock: bool = False) -> PurchaseOrderModel:
        stmt = select(PurchaseOrderModel).where(PurchaseOrderModel.id == po_id)
        if lock:
            stmt = stmt.with_for_update()
        po = self._session.execute(stmt).scalar_one_or_none()
        if po is None:
            raise PurchaseOrderNotFoundError(po_id)
        return po

    def _purchase_orders_of(self, request_id: UUID) -> list[PurchaseOrderModel]:
        return list(
            self._session.execute(
                select(PurchaseOrderModel)
                .where(PurchaseOrderModel.request_id == request_id)
                .order_by(PurchaseOrderModel.reference)
            ).scalars()
        )

    def get_request(self, request_id: UUID) -> MaterialRequest:
        return self._load_request(request_id).to_dto()

    def get_purchase_order(self, po_id: UUID) -> PurchaseOrder:
        return self._load_purchase_order(po_id).to_dto()

    def list_purchase_orders(self, request_id: UUID) -> list[PurchaseOrder]:
        return [po.to_dto() for po in self._purchase_orders_of(request_id)]

    def available_request_actions(self, request_id: UUID, actor: ActorContext) -> list[str]:
        request = self._load_request(request_id)
        return REQUEST_TRANSITIONS.available_actions(RequestStatus(request.status), actor.role)

    def available_purchase_order_actions(self, po_id: UUID, actor: ActorContext) -> list[str]:
        po = self._load_purchase_order(po_id)
        return PURCHASE_ORDER_TRANSITIONS.available_actions(
            PurchaseOrderStatus(po.status), actor.role, has_partial_received=po.has_partial_received,
        )

    # =========================================================================
    # Requests
    # =========================================================================

    def _check_requester(self, actor: ActorContext, operation: str) -> None:
        require_public_actor(actor, operation)
        if actor.role not in _REQUESTERS:
            raise RoleNotAuthorizedError(
                role=actor.role.value,
                required_roles=sorted(r.value for r in _REQUESTERS),
                operation=operation,
            )

    def _check_owner(self, request: RequestModel, actor: ActorContext) -> None:
        if actor.role is Role.PRODUCTION and request.created_by_id != actor.actor_id:
            raise NotRequestOwnerError(request.reference, str(actor.actor_id))

    def _build_lines(self, lines: Sequence[RequestLineInput], actor_id: UUID) -> list[RequestLineModel]:
        if not lines:
            raise InvalidInputError("lines", "at least one line is required")
        models = []
        for number, line in enumerate(lines, start=1):
            if line.quantity <= 0:
                raise NegativeQuantityError("quantity", line.quantity, strictly_positive=True)
            product = self._session.get(ProductModel, line.product_id)
            if product is None:
                raise ProductNotFoundError(line.product_id)
            if product.product_type != ProductType.MP.value:
                raise InvalidInputError("product_id", f"{product.code} is not a raw material")
            models.append(
                RequestLineModel(
                    line_number=number,
                    product_id=product.id,
                    quantity_requested=line.quantity,
                    note=line.note,
                    created_by_id=actor_id,
                )
            )
        return models

    def create_request(
        self,
        lines: Sequence[RequestLineInput],
        actor: ActorContext,
        priority: RequestPriority = RequestPriority.NORMAL,
        comment: str | None = None,
    ) -> MaterialRequest:
        """
        Create a DRAFT request numbered ``REQ-MP-YYYY-NNN``.

        Raises:
            RoleNotAuthorizedError: actor is neither PRODUCTION nor ADMIN.
            InvalidInputError: no lines, or a line names a finished product.
            NegativeQuantityError: a line quantity <= 0.
            ProductNotFoundError: unknown product.
        """
        with self._unit_of_work("appro.create_request"):
            self._check_requester(actor, "create_request")
            line_models = self._build_lines(lines, actor.actor_id)
            prefix = yearly_prefix(REQUEST_PREFIX, self._clock.today())
            request = RequestModel(
                id=uuid4(),
                reference=next_reference(
                    prefix,
                    self._config.request_reference_width,
                    latest_reference(self._session, RequestModel.reference, prefix),
                ),
                status=RequestStatus.DRAFT.value,
                priority=RequestPriority(priority).value,
                comment=comment,
                created_at=self._clock.now(),
                created_by_id=actor.actor_id,
                lines=line_models,
            )
            self._session.add(request)
            self._session.flush()
            logger.info(
                "request_created",
                extra={
                    "reference": request.reference,
                    "line_count": len(line_models),
                    "priority": request.priority,
                },
            )
            return request.to_dto()

    def update_request_lines(
        self,
        request_id: UUID,
        lines: Sequence[RequestLineInput],
        actor: ActorContext,
    ) -> MaterialRequest:
        """Replace the lines of a DRAFT request."""
        with self._unit_of_work("appro.update_request_lines"):
            self._check_requester(actor, "update_request_lines")
            request = self._load_request(request_id, lock=True)
            if RequestStatus(request.status) is not RequestStatus.DRAFT:
                raise RequestNotEditableError(request.reference, request.status)
            self._check_owner(request, actor)
            line_models = self._build_lines(lines, actor.actor_id)
            request.lines.clear()
            self._session.flush()
            request.lines.extend(line_models)
            self._session.flush()
            logger.info(
                "request_lines_updated",
                extra={"reference": request.reference, "line_count": len(line_models)},
            )
            return request.to_dto()

    def submit_request(self, request_id: UUID, actor: ActorContext) -> MaterialRequest:
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(request_id)):
            with self._unit_of_work("appro.submit_request"):
                require_public_actor(actor, "submit_request")
                request = self._load_request(request_id, lock=True)
                self._check_owner(request, actor)
                self._transition(REQUEST_TRANSITIONS, request, RequestStatus.SUBMITTED, actor)
                request.submitted_at = self._clock.now()
                self._session.flush()
                logger.info("request_submitted", extra={"reference": request.reference})
                return request.to_dto()

    def validate_request(
        self,
        request_id: UUID,
        actor: ActorContext,
        adjusted_quantities: Mapping[UUID, Decimal] | None = None,
    ) -> MaterialRequest:
        """
        Validate a SUBMITTED request.

        ``adjusted_quantities`` maps request line ids to the quantity to
        order; other lines keep their requested quantity.

        Raises:
            InvalidInputError: an adjusted line is not on the request.
            NegativeQuantityError: an adjusted quantity <= 0.
        """
        adjusted = dict(adjusted_quantities or {})
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(request_id)):
            with self._unit_of_work("appro.validate_request"):
                require_public_actor(actor, "validate_request")
                request = self._load_request(request_id, lock=True)
                line_ids = {line.id for line in request.lines}
                unknown = [str(line_id) for line_id in adjusted if line_id not in line_ids]
                if unknown:
                    raise InvalidInputError("adjusted_quantities", f"unknown request lines: {', '.join(unknown)}")
                for quantity in adjusted.values():
                    if quantity <= 0:
                        raise NegativeQuantityError("quantity_validated", quantity, strictly_positive=True)

                self._transition(REQUEST_TRANSITIONS, request, RequestStatus.VALIDATED, actor)
                for line in request.lines:
                    line.quantity_validated = adjusted.get(line.id, line.quantity_requested)
                request.validated_by_id = actor.actor_id
                request.validated_at = self._clock.now()
                self._session.flush()
                logger.info(
                    "request_validated",
                    extra={"reference": request.reference, "adjusted_lines": len(adjusted)},
                )
                return request.to_dto()

    def reject_request(self, request_id: UUID, reason: str, actor: ActorContext) -> MaterialRequest:
        with self._unit_of_work("appro.reject_request"):
            require_public_actor(actor, "reject_request")
            request = self._load_request(request_id, lock=True)
            self._transition(
                REQUEST_TRANSITIONS, request, RequestStatus.REJECTED, actor, justification=reason,
            )
            request.rejected_by_id = actor.actor_id
            request.rejection_reason = reason.strip()
            self._session.flush()
            logger.info("request_rejected", extra={"reference": request.reference})
            return request.to_dto()

    def cancel_validation(self, request_id: UUID, reason: str, actor: ActorContext) -> MaterialRequest:
        """Withdraw the validation of a request that has no purchase order yet (ADMIN)."""
        with self._unit_of_work("appro.cancel_validation"):
            require_public_actor(actor, "cancel_validation")
            request = self._load_request(request_id, lock=True)
            self._transition(
                REQUEST_TRANSITIONS, request, RequestStatus.REJECTED, actor, justification=reason,
            )
            request.rejected_by_id = actor.actor_id
            request.rejection_reason = reason.strip()
            self._session.flush()
            logger.info("request_validation_cancelled", extra={"reference": request.reference})
            return request.to_dto()

    # =========================================================================
    # Purchase orders
    # =========================================================================

    def generate_purchase_orders(
        self,
        request_id: UUID,
        actor: ActorContext,
        expected_delivery: date | None = None,
        delivery_address: str | None = None,
        price_overrides: Sequence[PriceOverride] = (),
    ) -> GenerateResult:
        """
        Split a VALIDATED request into one DRAFT purchase order per supplier.

        Lines are routed to each product's main supplier.  Unit price is the
        override for the product, else its last purchase price, else the
        configured default.

        Raises:
            RequestNotFoundError: unknown request.
            PurchaseOrdersAlreadyGeneratedError: the request already has orders.
            InvalidTransitionError: request is not VALIDATED.
            ProductWithoutSupplierError: a material has no main supplier.
        """
        prices = {override.product_id: override.unit_price for override in price_overrides}
        with LogContext.bind(actor_id=str(actor.actor_id), entity_id=str(request_id)):
            with self._unit_of_work("appro.generate_purchase_orders"):
                require_public_actor(actor, "generate_purchase_orders")
                request = self._load_request(request_id, lock=True)
                existing = self._purchase_orders_of(request.id)
                if existing:
                    raise PurchaseOrdersAlreadyGeneratedError(
                        request.reference, [po.reference for po in existing],
                    )
                self._transition(
                    REQUEST_TRANSITIONS, request, RequestStatus.ORDERING, actor,
                    invalid_reason=(
                        f"Request {request.reference} must be validated before generating "
                        f"purchase orders (status {request.status})"
                    ),
                )

                by_supplier: dict[UUID, list[tuple[RequestLineModel, ProductModel]]] = {}
                for line in request.lines:
                    product = self._session.get(ProductModel, line.product_id)
                    if product.main_supplier_id is None:
                        raise ProductWithoutSupplierError(product.code)
                    by_supplier.setdefault(product.main_supplier_id, []).append((line, product))

                now = self._clock.now()
                prefix = yearly_prefix(PURCHASE_ORDER_PREFIX, self._clock.today())
                last = latest_reference(self._session, PurchaseOrderModel.reference, prefix)
                generated = []
                for supplier_id, entries in by_supplier.items():
                    reference = next_reference(prefix, self._config.purchase_order_reference_width, last)
                    last = reference
                    po_lines = []
                    for number, (line, product) in enumerate(entries, start=1):
                        unit_price = prices.get(product.id)
                        if unit_price is None:
                            unit_price = product.last_price
                        if unit_price is None:
                            unit_price = self._config.default_unit_price
                        quantity = line.quantity_validated
                        if quantity is None:
                            quantity = line.quantity_requested
                        po_lines.append(
                            PurchaseOrderLineModel(
                                line_number=number,
                                product_id=product.id,
                                request_line_id=line.id,
                                quantity_ordered=quantity,
                                quantity_received=Decimal("0"),
                                unit_price=unit_price,
                                created_by_id=actor.actor_id,
                            )
                        )
                    total = sum((pl.quantity_ordered * pl.unit_price for pl in po_lines), Decimal("0"))
                    po = PurchaseOrderModel(
                        id=uuid4(),
                        reference=reference,
                        request_id=request.id,
                        supplier_id=supplier_id,
                        status=PurchaseOrderStatus.DRAFT.value,
                        total_ht=total,
                        expected_delivery=expected_delivery,
                        delivery_address=delivery_address,
                        created_at=now,
                        created_by_id=actor.actor_id,
                        lines=po_lines,
                    )
                    self._session.add(po)
                    generated.append(
                        GeneratedPurchaseOrder(
                            id=po.id,
                            reference=reference,
                            supplier_id=supplier_id,
                            total_ht=total,
                            items_count=len(po_lines),
                        )
                    )
                self._session.flush()

                logger.info(
                    "purchase_orders_generated",
                    extra={
                        "reference": request.reference,
                        "purchase_order_count": len(generated),
                        "purchase_orders": [g.reference for g in generated],
                    },
                )
                return GenerateResult(count=len(generated), purchase_orders=tuple(generated))

    def send_purchase_order(
        self,
        po_id: UUID,
        actor: ActorContext,
        send_via: SendVia,
        supplier_email: str | None = None,
        proof_note: str | None = None,
        idempotency_key: str | None = None,
    ) -> SendResult:
        """
        Record that a DRAFT purchase order was sent to its supplier.

        EMAIL needs an address (argument, else the supplier's); MANUAL needs
        a proof note.  The first order of a request to be sent moves the
        request ``ORDERING -> ORDERED``.

        Raises:
            SendProofRequiredError: missing e-mail or proof note too short.
        """
        send_via = SendVia(send_via)
        with LogContext.bind(
            actor_id=str(actor.actor_id), entity_id=str(po_id), idempotency_key=idempotency_key,
        ):
            with self._unit_of_work("appro.send_purchase_order"):
                require_public_actor(actor, "send_purchase_order")
                stored = self._idempotency.lookup(SEND_OPERATION, idempotency_key, po_id)
                if stored is not None:
                    return SendResult.from_dict(stored)

                po = self._load_purchase_order(po_id, lock=True)
                self._transition(PURCHASE_ORDER_TRANSITIONS, po, PurchaseOrderStatus.SENT, actor)

                if send_via is SendVia.EMAIL:
                    email = supplier_email or self._session.get(SupplierModel, po.supplier_id).email
                    if not email:
                        raise SendProofRequiredError(send_via.value, "No e-mail address for the supplier")
                    po.sent_to_email = email
                else:
                    note = (proof_note or "").strip()
                    if len(note) < self._config.min_proof_note_length:
                        raise SendProofRequiredError(
                            send_via.value,
                            f"A proof note of at least {self._config.min_proof_note_length} "
                            "characters is required",
                        )
                    po.send_proof_note = note

                now = self._clock.now()
                po.sent_at = now
                po.sent_via = send_via.value
                po.sent_by_id = actor.actor_id

                request = self._load_request(po.request_id, lock=True)
                request_ordered = False
                if RequestStatus(request.status) is RequestStatus.ORDERING:
                    self._transition(
                        REQUEST_TRANSITIONS, request, RequestStatus.ORDERED,
                        ActorContext.system(actor.actor_id),
                    )
                    request_ordered = True

                result = SendResult(
                    new_status=PurchaseOrderStatus.SENT,
                    sent_at=now,
                    send_via=send_via,
                    request_ordered=request_ordered,
                )
                self._idempotency.save(SEND_OPERATION, idempotency_key, po.id, result.to_dict(), now)
                logger.info(
                    "purchase_order_sent",
                    extra={
                        "reference": po.reference,
                        "send_via": send_via.value,
                        "request_ordered": request_ordered,
                    },
                )
                return result

    def confirm_purchase_order(self, po_id: UUID, actor: ActorContext) -> ConfirmResult:
        with self._unit_of_work("appro.confirm_purchase_order"):
            require_public_actor(actor, "confirm_purchase_order")
            po = self._load_purchase_order(po_id, lock=True)
            self._transition(PURCHASE_ORDER_TRANSITIONS, po, PurchaseOrderStatus.CONFIRMED, actor)
            now = self._clock.now()
            po.confirmed_at = now
            po.confirmed_by_id = actor.actor_id
            self._session.flush()
            logger.info("purchase_order_confirmed", extra={"reference": po.reference})
            return ConfirmResult(new_status=PurchaseOrderStatus.CONFIRMED, confirmed_at=now)

    def cancel_purchase_order(
        self,
        po_id: UUID,
        reason: str,
        actor: ActorContext,
        idempotency_key: str | None = None,
    ) -> CancelResult:
        """
        Cancel a purchase order (ADMIN).

        Refused once any quantity was received against it.

        Raises:
            JustificationRequiredError: reason shorter than 10 characters.
            BlockedByPartialReceptionError: goods already received.
        """
        with LogContext.bind(
            actor_id=str(actor.actor_id), entity_id=str(po_id), idempotency_key=idempotency_key,
        ):
            with self._unit_of_work("appro.cancel_purchase_order"):
                require_public_actor(actor, "cancel_purchase_order")
                stored = self._idempotency.lookup(CANCEL_OPERATION, idempotency_key, po_id)
                if stored is not None:
                    return CancelResult.from_dict(stored)

                po = self._load_purchase_order(po_id, lock=True)
                self._transition(
                    PURCHASE_ORDER_TRANSITIONS, po, PurchaseOrderStatus.CANCELLED, actor,
                    justification=reason,
                    has_partial_received=po.has_partial_received,
                )
                now = self._clock.now()
                po.cancelled_at = now
                po.cancelled_by_id = actor.actor_id
                po.cancel_reason = reason.strip()
                self._session.flush()

                demand_closed = self._close_request_if_received(po.request_id, actor)
                result = CancelResult(new_status=PurchaseOrderStatus.CANCELLED, cancelled_at=now)
                self._idempotency.save(CANCEL_OPERATION, idempotency_key, po.id, result.to_dict(), now)
                logger.info(
                    "purchase_order_cancelled",
                    extra={"reference": po.reference, "demand_closed": demand_closed},
                )
                return result

    # =========================================================================
    # Reception reconciler
    # =========================================================================

    def _close_request_if_received(self, request_id: UUID, actor: ActorContext) -> bool:
        """Cascade ``ORDERED -> RECEIVED`` once every live order of the request is received."""
        request = self._load_request(request_id, lock=True)
        if RequestStatus(request.status) is not RequestStatus.ORDERED:
            return False
        live = [
            po for po in self._purchase_orders_of(request.id)
            if po.status != PurchaseOrderStatus.CANCELLED.value
        ]
        if not live or any(po.status != PurchaseOrderStatus.RECEIVED.value for po in live):
            return False
        self._transition(
            REQUEST_TRANSITIONS, request, RequestStatus.RECEIVED, ActorContext.system(actor.actor_id),
        )
        logger.info("request_received", extra={"reference": request.reference})
        return True

    def receive_purchase_order(
        self,
        po_id: UUID,
        lines: Sequence[ReceptionLineInput],
        actor: ActorContext,
        bl_number: str | None = None,
        reception_date: date | None = None,
        idempotency_key: str | None = None,
    ) -> ReceiveResult:
        """
        Record a delivery against a purchase order and credit stock.

        The whole reception is one transaction: lots, movements, line
        quantities, order status, the reception record, the request cascade
        and the idempotency record land together or not at all.

        Raises:
            InvalidInputError: no lines, or nothing received.
            NegativeQuantityError: a received quantity < 0.
            PurchaseOrderNotFoundError / PurchaseOrderLineNotFoundError.
            InvalidTransitionError: order is not SENT, CONFIRMED or PARTIAL.
            LotExpiredError: a lot expires before the reception date.
        """
        with LogContext.bind(
            actor_id=str(actor.actor_id), entity_id=str(po_id), idempotency_key=idempotency_key,
        ):
            with self._unit_of_work("appro.receive_purchase_order"):
                require_public_actor(actor, "receive_purchase_order")
                stored = self._idempotency.lookup(RECEIVE_OPERATION, idempotency_key, po_id)
                if stored is not None:
                    return ReceiveResult.from_dict(stored)

                if not lines:
                    raise InvalidInputError("lines", "at least one reception line is required")
                for line in lines:
                    if line.quantity_received < 0:
                        raise NegativeQuantityError("quantity_received", line.quantity_received)
                if sum((line.quantity_received for line in lines), Decimal("0")) == 0:
                    raise InvalidInputError("lines", "nothing was received")

                po = self._load_purchase_order(po_id, lock=True)
                po_lines = {line.id: line for line in po.lines}
                for line in lines:
                    if line.item_id not in po_lines:
                        raise PurchaseOrderLineNotFoundError(line.item_id)

                today = self._clock.today()
                received_on = reception_date or today
                prefix = daily_prefix(RECEPTION_PREFIX, today)
                reception_reference = next_reference(
                    prefix,
                    self._config.reception_reference_width,
                    latest_reference(self._session, ReceptionModel.reference, prefix),
                )

                plan = plan_reception(
                    [
                        OrderLineState(
                            line_id=pl.id,
                            product_id=pl.product_id,
                            quantity_ordered=pl.quantity_ordered,
                            quantity_received=pl.quantity_received,
                        )
                        for pl in po.lines
                    ],
                    [ReceivedQuantity(line_id=line.item_id, quantity=line.quantity_received) for line in lines],
                )
                new_status = (
                    PurchaseOrderStatus.RECEIVED
                    if plan.outcome is ReceptionOutcome.COMPLETE
                    else PurchaseOrderStatus.PARTIAL
                )
                self._transition(PURCHASE_ORDER_TRANSITIONS, po, new_status, actor)

                movements = 0
                for line in lines:
                    if line.quantity_received == 0:
                        continue
                    self._stock.receive_lot(
                        po_lines[line.item_id].product_id,
                        line.quantity_received,
                        actor,
                        lot_number=line.lot_number,
                        expiry_date=line.expiry_date,
                        supplier_id=po.supplier_id,
                        purchase_order_id=po.id,
                        reference=po.reference,
                        reception_reference=reception_reference,
                        reception_date=received_on,
                    )
                    movements += 1
                for line_plan in plan.receiving_lines():
                    po_lines[line_plan.line_id].quantity_received = line_plan.cumulative

                now = self._clock.now()
                if new_status is PurchaseOrderStatus.RECEIVED:
                    po.received_at = now
                self._session.add(
                    ReceptionModel(
                        reference=reception_reference,
                        purchase_order_id=po.id,
                        bl_number=bl_number,
                        reception_date=received_on,
                        status_after=new_status.value,
                        line_count=len(lines),
                        movements_created=movements,
                        created_at=now,
                        created_by_id=actor.actor_id,
                    )
                )
                self._session.flush()

                demand_closed = False
                if new_status is PurchaseOrderStatus.RECEIVED:
                    demand_closed = self._close_request_if_received(po.request_id, actor)

                result = ReceiveResult(
                    new_status=new_status,
                    reception_reference=reception_reference,
                    movements_created=movements,
                    demand_closed=demand_closed,
                )
                self._idempotency.save(RECEIVE_OPERATION, idempotency_key, po.id, result.to_dict(), now)
                logger.info(
                    "purchase_order_received",
                    extra={
                        "reference": po.reference,
                        "reception_reference": reception_reference,
                        "new_status": new_status.value,
                        "movements_created": movements,
                        "demand_closed": demand_closed,
                    },
                )
                return result

    # =========================================================================
    # Delivery delays
    # =========================================================================

    def _active_purchase_orders(self) -> list[PurchaseOrderModel]:
        return list(
            self._session.execute(
                select(PurchaseOrderModel)
                .where(PurchaseOrderModel.status.in_([s.value for s in ACTIVE_PURCHASE_ORDER_STATUSES]))
                .order_by(PurchaseOrderModel.reference)
            ).scalars()
        )

    def _has_critical_material(self, po: PurchaseOrderModel) -> bool:
        product_ids = [line.product_id for line in po.lines]
        if not product_ids:
            return False
        return self._session.execute(
            select(ProductModel.id).where(
                ProductModel.id.in_(product_ids),
                ProductModel.criticality == MaterialCriticality.HIGH.value,
            )
        ).first() is not None

    def get_late_purchase_orders(self, critical_threshold_days: int | None = None) -> list[LatePurchaseOrder]:
        """Active orders past their expected delivery, latest first."""
        threshold = (
            self._config.critical_delay_days if critical_threshold_days is None else critical_threshold_days
        )
        today = self._clock.today()
        late = []
        for po in self._active_purchase_orders():
            if po.expected_delivery is None:
                continue
            critical_material = self._has_critical_material(po)
            assessment = assess_delay(po.expected_delivery, today, threshold, critical_material)
            if not assessment.is_late:
                continue
            late.append(
                LatePurchaseOrder(
                    purchase_order_id=po.id,
                    reference=po.reference,
                    supplier_id=po.supplier_id,
                    status=PurchaseOrderStatus(po.status),
                    expected_delivery=po.expected_delivery,
                    days_late=assessment.days_late,
                    is_critical=assessment.is_critical,
                    has_critical_material=critical_material,
                    impact=assessment.impact,
                )
            )
        late.sort(key=lambda item: (-item.days_late, item.reference))
        return late

    def get_delay_stats(self) -> DelayStats:
        total_active = len(self._active_purchase_orders())
        late = self.get_late_purchase_orders()
        stats = DelayStats(
            total_active=total_active,
            total_late=len(late),
            critical_late=sum(1 for item in late if item.is_critical),
            late_percentage=late_percentage(total_active, len(late)),
        )
        if stats.critical_late:
            logger.warning(
                "purchase_orders_critically_late",
                extra={"critical_late": stats.critical_late, "total_late": stats.total_late},
            )
        return stats
