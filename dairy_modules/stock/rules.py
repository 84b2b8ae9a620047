"""
Stock movement rules.

Which movement direction each origin produces per product type, and which
roles may originate it.  Raw materials (MP) are bought and consumed by
production; finished products (PF) are produced and sold.  ADJUSTMENT goes
either way.
"""

from dairy_kernel.domain.roles import Role
from dairy_kernel.exceptions import InvalidMovementCombinationError, RoleNotAuthorizedError
from dairy_kernel.logging_config import get_logger
from dairy_modules.stock.models import MovementOrigin, MovementType, ProductType

logger = get_logger("modules.stock.rules")

_BOTH = frozenset({MovementType.IN, MovementType.OUT})
_IN = frozenset({MovementType.IN})
_OUT = frozenset({MovementType.OUT})

VALID_COMBINATIONS: dict[ProductType, dict[MovementOrigin, frozenset[MovementType]]] = {
    ProductType.MP: {
        MovementOrigin.RECEPTION: _IN,
        MovementOrigin.PRODUCTION_OUT: _OUT,
        MovementOrigin.PRODUCTION_CANCEL: _IN,
        MovementOrigin.ADJUSTMENT: _BOTH,
        MovementOrigin.LOSS: _OUT,
    },
    ProductType.PF: {
        MovementOrigin.PRODUCTION_IN: _IN,
        MovementOrigin.SALE: _OUT,
        MovementOrigin.ADJUSTMENT: _BOTH,
        MovementOrigin.CUSTOMER_RETURN: _IN,
        MovementOrigin.LOSS: _OUT,
    },
}

ORIGIN_ROLES: dict[MovementOrigin, frozenset[Role]] = {
    # SYSTEM covers receptions booked by the purchase-order reconciler.
    MovementOrigin.RECEPTION: frozenset({Role.ADMIN, Role.APPRO, Role.SYSTEM}),
    MovementOrigin.PRODUCTION_IN: frozenset({Role.ADMIN, Role.PRODUCTION}),
    MovementOrigin.PRODUCTION_OUT: frozenset({Role.ADMIN, Role.PRODUCTION}),
    MovementOrigin.PRODUCTION_CANCEL: frozenset({Role.ADMIN, Role.PRODUCTION}),
    MovementOrigin.SALE: frozenset({Role.ADMIN}),
    MovementOrigin.CUSTOMER_RETURN: frozenset({Role.ADMIN}),
    MovementOrigin.ADJUSTMENT: frozenset({Role.ADMIN}),
    MovementOrigin.LOSS: frozenset({Role.ADMIN}),
}

logger.info(
    "stock_movement_rules_registered",
    extra={
        "combination_count": sum(len(v) for v in VALID_COMBINATIONS.values()),
        "origin_count": len(ORIGIN_ROLES),
    },
)


def allowed_movement_types(product_type: ProductType, origin: MovementOrigin) -> frozenset[MovementType]:
    return VALID_COMBINATIONS[product_type].get(origin, frozenset())


def validate_movement(
    product_type: ProductType,
    origin: MovementOrigin,
    movement_type: MovementType,
) -> None:
    """
    Raises:
        InvalidMovementCombinationError: the origin does not exist for the
            product type, or produces the other direction.
    """
    if movement_type not in allowed_movement_types(product_type, origin):
        raise InvalidMovementCombinationError(
            product_type=product_type.value,
            origin=origin.value,
            movement_type=movement_type.value,
        )


def check_origin_role(origin: MovementOrigin, role: Role) -> None:
    """
    Raises:
        RoleNotAuthorizedError: role may not originate this movement.
    """
    allowed = ORIGIN_ROLES[origin]
    if role not in allowed:
        raise RoleNotAuthorizedError(
            role=role.value,
            required_roles=sorted(r.value for r in allowed),
            operation=f"stock_movement_{origin.value.lower()}",
            admin_override=False,
        )
