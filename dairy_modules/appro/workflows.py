"""
Procurement (appro) Workflows.

Transition rule tables for material requests and purchase orders.  Every
status change in ``ApproService`` goes through
``TransitionTable.assert_can_transition`` on one of these tables.
"""

from dairy_kernel.domain.roles import Role
from dairy_kernel.domain.transitions import (
    PARTIAL_RECEPTION_RECORDED,
    TransitionRule,
    TransitionTable,
)
from dairy_kernel.logging_config import get_logger
from dairy_modules.appro.models import PurchaseOrderStatus, RequestStatus

logger = get_logger("modules.appro.workflows")

_PRODUCTION = frozenset({Role.PRODUCTION, Role.ADMIN})
_APPRO = frozenset({Role.APPRO, Role.ADMIN})
_ADMIN = frozenset({Role.ADMIN})
_SYSTEM = frozenset({Role.SYSTEM})


# -----------------------------------------------------------------------------
# Request Workflow
# -----------------------------------------------------------------------------

R = RequestStatus

REQUEST_TRANSITIONS = TransitionTable(
    entity_type="request",
    description="Raw-material request lifecycle",
    initial_state=R.DRAFT,
    states=tuple(RequestStatus),
    rules=(
        TransitionRule(R.DRAFT, R.SUBMITTED, _PRODUCTION, action="soumettre"),
        TransitionRule(R.SUBMITTED, R.VALIDATED, _APPRO, action="valider"),
        TransitionRule(R.SUBMITTED, R.REJECTED, _APPRO, action="rejeter", requires_justification=True),
        TransitionRule(R.VALIDATED, R.ORDERING, _APPRO, action="genererBc", irreversible=True),
        TransitionRule(
            R.VALIDATED, R.REJECTED, _ADMIN,
            action="annulerValidation", requires_justification=True,
        ),
        TransitionRule(R.ORDERING, R.ORDERED, _SYSTEM, action="bcEnvoye", irreversible=True),
        TransitionRule(R.ORDERED, R.RECEIVED, _SYSTEM, action="bcReceptionne", irreversible=True),
    ),
    terminal_states=frozenset({R.RECEIVED}),
    irreversible_states=frozenset({R.ORDERING, R.ORDERED, R.RECEIVED}),
)

logger.info(
    "appro_request_workflow_registered",
    extra={
        "workflow_name": REQUEST_TRANSITIONS.entity_type,
        "state_count": len(REQUEST_TRANSITIONS.states),
        "transition_count": len(REQUEST_TRANSITIONS.rules),
        "initial_state": REQUEST_TRANSITIONS.initial_state.value,
    },
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

P = PurchaseOrderStatus

PURCHASE_ORDER_TRANSITIONS = TransitionTable(
    entity_type="purchase_order",
    description="Purchase order (BC) lifecycle",
    initial_state=P.DRAFT,
    states=tuple(PurchaseOrderStatus),
    rules=(
        TransitionRule(P.DRAFT, P.SENT, _APPRO, action="envoyer", irreversible=True),
        TransitionRule(P.DRAFT, P.CANCELLED, _ADMIN, action="annuler", requires_justification=True),
        TransitionRule(P.SENT, P.CONFIRMED, _APPRO, action="confirmer"),
        TransitionRule(P.SENT, P.PARTIAL, _APPRO, action="receptionner"),
        TransitionRule(P.SENT, P.RECEIVED, _APPRO, action="receptionner", irreversible=True),
        TransitionRule(
            P.SENT, P.CANCELLED, _ADMIN, action="annuler",
            requires_justification=True, blocking_predicate=PARTIAL_RECEPTION_RECORDED,
        ),
        TransitionRule(P.CONFIRMED, P.PARTIAL, _APPRO, action="receptionner"),
        TransitionRule(P.CONFIRMED, P.RECEIVED, _APPRO, action="receptionner", irreversible=True),
        TransitionRule(
            P.CONFIRMED, P.CANCELLED, _ADMIN, action="annuler",
            requires_justification=True, blocking_predicate=PARTIAL_RECEPTION_RECORDED,
        ),
        TransitionRule(P.PARTIAL, P.PARTIAL, _APPRO, action="receptionner"),
        TransitionRule(P.PARTIAL, P.RECEIVED, _APPRO, action="receptionner", irreversible=True),
    ),
    terminal_states=frozenset({P.RECEIVED, P.CANCELLED}),
    irreversible_states=frozenset({P.SENT, P.CONFIRMED, P.PARTIAL, P.RECEIVED, P.CANCELLED}),
)

logger.info(
    "appro_purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_TRANSITIONS.entity_type,
        "state_count": len(PURCHASE_ORDER_TRANSITIONS.states),
        "transition_count": len(PURCHASE_ORDER_TRANSITIONS.rules),
        "initial_state": PURCHASE_ORDER_TRANSITIONS.initial_state.value,
    },
)

del R, P
