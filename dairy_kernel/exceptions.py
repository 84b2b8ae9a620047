"""
Typed Exception Hierarchy for the Dairy ERP core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Operators on the shop floor and in purchasing must understand why an action
was refused and what to do next.  Parsing message strings for that is fragile,
so every failure is:
  1. a TYPED exception class (catch by type, not message)
  2. carrying a machine-readable CODE and a CATEGORY
  3. carrying structured DATA (current status, allowed statuses, required
     roles, quantities) plus a user message and a suggested user action

Example - handling a refused purchase-order cancellation:
    try:
        service.cancel_purchase_order(po_id, reason, actor)
    except BlockedByPartialReceptionError as e:
        api_response(code=e.code, message=e.user_message, action=e.user_action)

===============================================================================
CATEGORIES
===============================================================================

    USER_ERROR     caller-fixable input problem, surfaced with the field
    BUSINESS_RULE  the system correctly refused an action (never retried)
    SYSTEM_ERROR   infrastructure failure from the persistence collaborator
                   (the caller may retry; ``retryable`` is True)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    DairyErpError (base)
    |
    +-- InputError                          USER_ERROR
    |   +-- InvalidInputError
    |   +-- NegativeQuantityError
    |   +-- ThresholdInvalidError
    |   +-- IdempotencyConflictError
    |
    +-- TransitionError                     BUSINESS_RULE
    |   +-- InvalidTransitionError
    |   +-- RoleNotAuthorizedError
    |   +-- JustificationRequiredError
    |   +-- BlockedByPartialReceptionError
    |
    +-- EntityNotFoundError                 BUSINESS_RULE
    |   +-- RequestNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- PurchaseOrderLineNotFoundError
    |   +-- ProductNotFoundError
    |   +-- SupplierNotFoundError
    |   +-- LotNotFoundError
    |   +-- DeclarationNotFoundError
    |
    +-- ProcurementError                    BUSINESS_RULE
    |   +-- PurchaseOrdersAlreadyGeneratedError
    |   +-- ProductWithoutSupplierError
    |   +-- RequestNotEditableError
    |   +-- NotRequestOwnerError
    |   +-- SendProofRequiredError
    |
    +-- StockError                          BUSINESS_RULE
    |   +-- InsufficientStockError
    |   +-- LotExpiredError
    |   +-- LotProductMismatchError
    |   +-- InvalidMovementCombinationError
    |   +-- ImmutabilityViolationError
    |
    +-- InventoryControlError               BUSINESS_RULE
    |   +-- AdminOnlyError
    |   +-- SelfValidationError
    |   +-- SameValidatorError
    |   +-- InventoryCooldownError
    |   +-- InvalidDeclarationStatusError
    |
    +-- InfrastructureError                 SYSTEM_ERROR
        +-- DatabaseError
        +-- OperationTimeoutError
        +-- ServiceUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                              | When Raised
-----------|-----------------------------------|----------------------------------------
Input      | INVALID_INPUT                     | Malformed or out-of-range argument
           | NEGATIVE_QUANTITY                 | Quantity below zero (or not > 0)
           | THRESHOLD_INVALID                 | Upper threshold <= lower threshold
           | IDEMPOTENCY_KEY_REUSED            | Key replayed for another entity
-----------|-----------------------------------|----------------------------------------
Transition | INVALID_TRANSITION                | No rule (from, to) in the table
           | ROLE_NOT_AUTHORIZED               | Role outside the rule's roles
           | MOTIF_REQUIRED                    | Justification < 10 trimmed chars
           | CANNOT_CANCEL_PARTIAL             | Cancel after a partial reception
-----------|-----------------------------------|----------------------------------------
Not found  | REQUEST_NOT_FOUND, PURCHASE_ORDER_NOT_FOUND, PURCHASE_ORDER_LINE_NOT_FOUND,
           | PRODUCT_NOT_FOUND, SUPPLIER_NOT_FOUND, LOT_NOT_FOUND, DECLARATION_NOT_FOUND
-----------|-----------------------------------|----------------------------------------
Procurement| PURCHASE_ORDERS_ALREADY_GENERATED | Request already fanned out into BCs
           | PRODUCT_WITHOUT_SUPPLIER          | No main supplier to route a line to
           | REQUEST_NOT_EDITABLE              | Request edited outside DRAFT
           | NOT_REQUEST_OWNER                 | PRODUCTION editing another's request
           | SEND_PROOF_REQUIRED               | Missing e-mail / proof note on send
-----------|-----------------------------------|----------------------------------------
Stock      | INSUFFICIENT_STOCK                | Requested > available
           | LOT_EXPIRED                       | Lot received or used past expiry
           | LOT_PRODUCT_MISMATCH              | Lot belongs to another product
           | INVALID_MOVEMENT_COMBINATION      | Origin not allowed for product type
           | IMMUTABILITY_VIOLATION            | Update or delete of a stock movement
-----------|-----------------------------------|----------------------------------------
Inventory  | ADMIN_ONLY                        | Operation reserved to ADMIN
           | SELF_VALIDATION_FORBIDDEN         | Validator is the counter
           | SAME_VALIDATOR_FORBIDDEN          | Second validator is the first one
           | INVENTORY_COOLDOWN                | New count within the cooldown window
           | INVALID_STATUS                    | Declaration not pending
-----------|-----------------------------------|----------------------------------------
System     | DATABASE_ERROR, TIMEOUT, SERVICE_UNAVAILABLE (retryable)

===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Severity family used by the presentation layer."""
    USER_ERROR = "USER_ERROR"
    BUSINESS_RULE = "BUSINESS_RULE"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class DairyErpError(Exception):
    """
    Base exception for all dairy ERP core errors.

    All subclasses define a ``code`` and a ``category`` class attribute.
    Instances carry a user-facing message, a suggested action, the
    offending field (if any) and a context dict with the structured data
    needed to correct the problem.
    """

    code: str = "DAIRY_ERP_ERROR"
    category: ErrorCategory = ErrorCategory.SYSTEM_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        user_message: str | None = None,
        user_action: str | None = None,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.user_message = user_message or message
        self.user_action = user_action
        self.field = field
        self.context = dict(context or {})
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Serializable representation for API layers and audit sinks."""
        payload: dict[str, Any] = {
            "code": self.code,
            "category": self.category.value,
            "message": str(self),
            "user_message": self.user_message,
        }
        if self.user_action:
            payload["user_action"] = self.user_action
        if self.field:
            payload["field"] = self.field
        if self.context:
            payload["context"] = self.context
        return payload


# Input errors


class InputError(DairyErpError):
    """Base exception for caller-fixable input problems."""

    code: str = "INPUT_ERROR"
    category = ErrorCategory.USER_ERROR


class InvalidInputError(InputError):
    """Argument is malformed or out of its allowed range."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        self.reason = reason
        super().__init__(
            f"Invalid value for {field}: {reason}",
            user_message=reason,
            user_action=f"Correct the '{field}' field and retry.",
            field=field,
            context={"reason": reason},
        )


class NegativeQuantityError(InputError):
    """Quantity is negative (or zero where a strictly positive value is required)."""

    code: str = "NEGATIVE_QUANTITY"

    def __init__(self, field: str, value: Any, strictly_positive: bool = False):
        self.value = value
        self.strictly_positive = strictly_positive
        expectation = "strictly positive" if strictly_positive else "zero or positive"
        super().__init__(
            f"{field} must be {expectation}, got {value}",
            user_message=f"The quantity must be {expectation}.",
            user_action="Enter a valid quantity.",
            field=field,
            context={"value": str(value)},
        )


class ThresholdInvalidError(InputError):
    """
    Threshold pair out of order: the upper threshold must be strictly higher.

    Raised for inventory tolerances (single validation over auto-approve)
    and for product reorder levels (order threshold over safety threshold).
    """

    code: str = "THRESHOLD_INVALID"

    def __init__(
        self,
        threshold_category: str,
        lower_field: str,
        lower: Any,
        upper_field: str,
        upper: Any,
    ):
        self.threshold_category = threshold_category
        self.lower_field = lower_field
        self.lower = lower
        self.upper_field = upper_field
        self.upper = upper
        super().__init__(
            f"{threshold_category}: {upper_field} ({upper}) must be > {lower_field} ({lower})",
            user_message=f"{upper_field} must be higher than {lower_field}.",
            user_action=f"Raise {upper_field} above {lower} or lower {lower_field}.",
            field=upper_field,
            context={
                "category": threshold_category,
                lower_field: str(lower),
                upper_field: str(upper),
            },
        )


class IdempotencyConflictError(InputError):
    """An idempotency key was replayed against a different entity."""

    code: str = "IDEMPOTENCY_KEY_REUSED"

    def __init__(self, operation: str, key: str, stored_entity_id: str, entity_id: str):
        self.operation = operation
        self.key = key
        self.stored_entity_id = stored_entity_id
        self.entity_id = entity_id
        super().__init__(
            f"Idempotency key {key} for {operation} already used on {stored_entity_id}",
            user_message="This request identifier was already used for another document.",
            user_action="Generate a new idempotency key.",
            field="idempotency_key",
            context={"operation": operation, "stored_entity_id": stored_entity_id},
        )


# Transition errors


class TransitionError(DairyErpError):
    """Base exception for refused status transitions."""

    code: str = "TRANSITION_ERROR"
    category = ErrorCategory.BUSINESS_RULE


class InvalidTransitionError(TransitionError):
    """No rule allows the requested (from, to) pair."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        current_status: str,
        requested_status: str,
        allowed_transitions: list[str],
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = list(allowed_transitions)
        allowed = ", ".join(self.allowed_transitions) or "none"
        super().__init__(
            reason or f"Forbidden {entity_type} transition: {current_status} -> {requested_status}",
            user_message=(
                f"This {entity_type} is {current_status} and cannot move to {requested_status}."
            ),
            user_action=f"Reachable statuses from {current_status}: {allowed}.",
            context={
                "current_status": current_status,
                "requested_status": requested_status,
                "allowed_transitions": self.allowed_transitions,
            },
        )


class RoleNotAuthorizedError(TransitionError):
    """
    Acting role is not in the rule's role set.

    ``required_roles`` lists the roles declared on the rule.  ADMIN is
    implicitly allowed on every rule and is reported through
    ``admin_override`` rather than mixed into the declared set.
    """

    code: str = "ROLE_NOT_AUTHORIZED"

    def __init__(
        self,
        role: str,
        required_roles: list[str],
        operation: str | None = None,
        admin_override: bool = True,
    ):
        self.role = role
        self.required_roles = list(required_roles)
        self.operation = operation
        self.admin_override = admin_override
        roles = ", ".join(self.required_roles)
        suffix = " (ADMIN is always allowed)" if admin_override else ""
        super().__init__(
            f"Role {role} not authorized{f' for {operation}' if operation else ''}; "
            f"required: {roles}{suffix}",
            user_message=f"Your role ({role}) cannot perform this action.",
            user_action=f"Ask a user with one of these roles: {roles}{suffix}.",
            context={
                "role": role,
                "required_roles": self.required_roles,
                "admin_override": admin_override,
            },
        )


class JustificationRequiredError(TransitionError):
    """Rule requires a justification of a minimum trimmed length."""

    code: str = "MOTIF_REQUIRED"

    def __init__(self, min_length: int, provided_length: int):
        self.min_length = min_length
        self.provided_length = provided_length
        super().__init__(
            f"Justification required (minimum {min_length} characters, got {provided_length})",
            user_message=f"A reason of at least {min_length} characters is required.",
            user_action="Explain the reason for this action.",
            field="reason",
            context={"min_length": min_length, "provided_length": provided_length},
        )


class BlockedByPartialReceptionError(TransitionError):
    """Cancellation refused because goods were already partially received."""

    code: str = "CANNOT_CANCEL_PARTIAL"

    def __init__(self, current_status: str, requested_status: str):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot move {current_status} -> {requested_status}: partial reception recorded",
            user_message="This order cannot be cancelled: goods were already partially received.",
            user_action="Receive the remaining quantities or contact the supplier.",
            context={"current_status": current_status, "requested_status": requested_status},
        )


# Not-found errors


class EntityNotFoundError(DairyErpError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    category = ErrorCategory.BUSINESS_RULE
    entity_label: str = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = str(entity_id)
        super().__init__(
            f"{self.entity_label} not found: {entity_id}",
            user_message=f"{self.entity_label} {entity_id} does not exist.",
            user_action="Check the identifier or refresh the list.",
            context={"entity_id": self.entity_id},
        )


class RequestNotFoundError(EntityNotFoundError):
    code: str = "REQUEST_NOT_FOUND"
    entity_label = "Request"


class PurchaseOrderNotFoundError(EntityNotFoundError):
    code: str = "PURCHASE_ORDER_NOT_FOUND"
    entity_label = "Purchase order"


class PurchaseOrderLineNotFoundError(EntityNotFoundError):
    code: str = "PURCHASE_ORDER_LINE_NOT_FOUND"
    entity_label = "Purchase order line"


class ProductNotFoundError(EntityNotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_label = "Product"


class SupplierNotFoundError(EntityNotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"
    entity_label = "Supplier"


class LotNotFoundError(EntityNotFoundError):
    code: str = "LOT_NOT_FOUND"
    entity_label = "Lot"


class DeclarationNotFoundError(EntityNotFoundError):
    code: str = "DECLARATION_NOT_FOUND"
    entity_label = "Inventory declaration"


# Procurement errors


class ProcurementError(DairyErpError):
    """Base exception for request / purchase-order business rules."""

    code: str = "PROCUREMENT_ERROR"
    category = ErrorCategory.BUSINESS_RULE


class PurchaseOrdersAlreadyGeneratedError(ProcurementError):
    """Purchase orders were already generated from this request."""

    code: str = "PURCHASE_ORDERS_ALREADY_GENERATED"

    def __init__(self, request_reference: str, existing_references: list[str]):
        self.request_reference = request_reference
        self.existing_references = list(existing_references)
        super().__init__(
            f"Purchase orders have already been generated for {request_reference}: "
            f"{', '.join(self.existing_references)}",
            user_message="Purchase orders already exist for this request.",
            user_action="Open the existing purchase orders instead.",
            context={"existing_references": self.existing_references},
        )


class ProductWithoutSupplierError(ProcurementError):
    """A requested material has no main supplier to route its line to."""

    code: str = "PRODUCT_WITHOUT_SUPPLIER"

    def __init__(self, product_code: str):
        self.product_code = product_code
        super().__init__(
            f"Product {product_code} has no main supplier",
            user_message=f"Material {product_code} has no main supplier.",
            user_action="Assign a main supplier to the material, then retry.",
            context={"product_code": product_code},
        )


class RequestNotEditableError(ProcurementError):
    """Request lines may only change while the request is a draft."""

    code: str = "REQUEST_NOT_EDITABLE"

    def __init__(self, reference: str, status: str):
        self.reference = reference
        self.status = status
        super().__init__(
            f"Request {reference} is {status}; only DRAFT requests can be modified",
            user_message="Only draft requests can be modified.",
            user_action="Create a new request instead.",
            context={"reference": reference, "status": status},
        )


class NotRequestOwnerError(ProcurementError):
    """PRODUCTION users may only act on their own requests."""

    code: str = "NOT_REQUEST_OWNER"

    def __init__(self, reference: str, actor_id: str):
        self.reference = reference
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} does not own request {reference}",
            user_message="You can only modify your own requests.",
            context={"reference": reference},
        )


class SendProofRequiredError(ProcurementError):
    """Sending a purchase order needs a target e-mail or a manual proof note."""

    code: str = "SEND_PROOF_REQUIRED"

    def __init__(self, send_via: str, reason: str):
        self.send_via = send_via
        self.reason = reason
        super().__init__(
            f"Cannot send via {send_via}: {reason}",
            user_message=reason,
            user_action="Provide the supplier e-mail or a proof note describing how the order was sent.",
            field="supplier_email" if send_via == "EMAIL" else "proof_note",
            context={"send_via": send_via},
        )


# Stock errors


class StockError(DairyErpError):
    """Base exception for stock ledger rules."""

    code: str = "STOCK_ERROR"
    category = ErrorCategory.BUSINESS_RULE


class InsufficientStockError(StockError):
    """Requested quantity exceeds the available quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_code: str, required: Any, available: Any):
        self.product_code = product_code
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_code}: required {required}, available {available}",
            user_message=f"Not enough stock of {product_code} ({available} available, {required} needed).",
            user_action="Reduce the quantity or wait for a reception.",
            field="quantity",
            context={
                "product_code": product_code,
                "required": str(required),
                "available": str(available),
            },
        )


class LotExpiredError(StockError):
    """Lot is past its expiry date for the requested operation."""

    code: str = "LOT_EXPIRED"

    def __init__(self, lot_number: str, expiry_date: Any):
        self.lot_number = lot_number
        self.expiry_date = expiry_date
        super().__init__(
            f"Lot {lot_number} expired on {expiry_date}",
            user_message=f"Lot {lot_number} is expired.",
            user_action="Use another lot or declare the lot as a loss.",
            field="expiry_date",
            context={"lot_number": lot_number, "expiry_date": str(expiry_date)},
        )


class LotProductMismatchError(StockError):
    """Lot does not belong to the product named in the operation."""

    code: str = "LOT_PRODUCT_MISMATCH"

    def __init__(self, lot_number: str, product_code: str):
        self.lot_number = lot_number
        self.product_code = product_code
        super().__init__(
            f"Lot {lot_number} does not belong to product {product_code}",
            user_message="The selected lot belongs to another product.",
            field="lot_id",
            context={"lot_number": lot_number, "product_code": product_code},
        )


class InvalidMovementCombinationError(StockError):
    """Product type / origin / movement type combination is not allowed."""

    code: str = "INVALID_MOVEMENT_COMBINATION"

    def __init__(self, product_type: str, origin: str, movement_type: str):
        self.product_type = product_type
        self.origin = origin
        self.movement_type = movement_type
        super().__init__(
            f"Movement {movement_type}/{origin} not allowed for product type {product_type}",
            user_message=f"A {origin} movement is not allowed for {product_type} products.",
            context={
                "product_type": product_type,
                "origin": origin,
                "movement_type": movement_type,
            },
        )


class ImmutabilityViolationError(StockError):
    """Attempted to modify or delete an append-only ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}",
            user_message="Stock movements cannot be changed; record a correcting movement instead.",
            context={"entity_type": entity_type, "entity_id": entity_id},
        )


# Inventory control errors


class InventoryControlError(DairyErpError):
    """Base exception for inventory count anti-fraud rules."""

    code: str = "INVENTORY_CONTROL_ERROR"
    category = ErrorCategory.BUSINESS_RULE


class AdminOnlyError(InventoryControlError):
    """Operation reserved to the ADMIN role."""

    code: str = "ADMIN_ONLY"

    def __init__(self, operation: str, role: str):
        self.operation = operation
        self.role = role
        super().__init__(
            f"Only ADMIN may {operation} (role: {role})",
            user_message="This action is reserved to administrators.",
            context={"operation": operation, "role": role},
        )


class SelfValidationError(InventoryControlError):
    """The counter may never validate their own count."""

    code: str = "SELF_VALIDATION_FORBIDDEN"

    def __init__(self, declaration_id: Any, actor_id: Any):
        self.declaration_id = str(declaration_id)
        self.actor_id = str(actor_id)
        super().__init__(
            f"Actor {actor_id} counted declaration {declaration_id} and cannot validate it",
            user_message="The person who counted cannot validate the count.",
            user_action="Ask another administrator to validate.",
            context={"declaration_id": self.declaration_id},
        )


class SameValidatorError(InventoryControlError):
    """The second validator must differ from the first one."""

    code: str = "SAME_VALIDATOR_FORBIDDEN"

    def __init__(self, declaration_id: Any, actor_id: Any):
        self.declaration_id = str(declaration_id)
        self.actor_id = str(actor_id)
        super().__init__(
            f"Actor {actor_id} already validated declaration {declaration_id}",
            user_message="The second validation must be done by a different administrator.",
            user_action="Ask another administrator to validate.",
            context={"declaration_id": self.declaration_id},
        )


class InventoryCooldownError(InventoryControlError):
    """A new count for the same scope was declared within the cooldown window."""

    code: str = "INVENTORY_COOLDOWN"

    def __init__(self, product_code: str, last_declared_at: Any, cooldown_hours: int):
        self.product_code = product_code
        self.last_declared_at = last_declared_at
        self.cooldown_hours = cooldown_hours
        super().__init__(
            f"Inventory of {product_code} already declared less than {cooldown_hours}h ago "
            f"(at {last_declared_at})",
            user_message=f"An inventory was already declared less than {cooldown_hours} hours ago.",
            user_action="Wait for the cooldown to end before counting again.",
            context={
                "product_code": product_code,
                "last_declared_at": str(last_declared_at),
                "cooldown_hours": cooldown_hours,
            },
        )


class InvalidDeclarationStatusError(InventoryControlError):
    """Declaration is not in a status that accepts the requested action."""

    code: str = "INVALID_STATUS"

    def __init__(self, declaration_id: Any, current_status: str, expected: list[str]):
        self.declaration_id = str(declaration_id)
        self.current_status = current_status
        self.expected = list(expected)
        super().__init__(
            f"Declaration {declaration_id} is {current_status}; expected one of {', '.join(expected)}",
            user_message=f"This declaration is already {current_status}.",
            context={"current_status": current_status, "expected": self.expected},
        )


# Infrastructure errors


class InfrastructureError(DairyErpError):
    """Base exception for failures of the persistence collaborator."""

    code: str = "SYSTEM_ERROR"
    category = ErrorCategory.SYSTEM_ERROR
    retryable = True

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"{self.code} during {operation}" + (f": {detail}" if detail else ""),
            user_message="A technical error occurred.",
            user_action="Retry in a few moments. If the problem persists, contact support.",
            context={"operation": operation},
        )


class DatabaseError(InfrastructureError):
    code: str = "DATABASE_ERROR"


class OperationTimeoutError(InfrastructureError):
    code: str = "TIMEOUT"


class ServiceUnavailableError(InfrastructureError):
    code: str = "SERVICE_UNAVAILABLE"
