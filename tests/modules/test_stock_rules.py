"""Tests for the movement direction / origin role matrix (dairy_modules.stock.rules)."""

import pytest

from dairy_kernel.domain.roles import Role
from dairy_kernel.exceptions import InvalidMovementCombinationError, RoleNotAuthorizedError
from dairy_modules.stock.models import MovementOrigin, MovementType, ProductType
from dairy_modules.stock.rules import (
    ORIGIN_ROLES,
    allowed_movement_types,
    check_origin_role,
    validate_movement,
)

IN, OUT = MovementType.IN, MovementType.OUT


class TestValidCombinations:

    @pytest.mark.parametrize(
        "product_type,origin,movement_type",
        [
            (ProductType.MP, MovementOrigin.RECEPTION, IN),
            (ProductType.MP, MovementOrigin.PRODUCTION_OUT, OUT),
            (ProductType.MP, MovementOrigin.PRODUCTION_CANCEL, IN),
            (ProductType.MP, MovementOrigin.ADJUSTMENT, IN),
            (ProductType.MP, MovementOrigin.ADJUSTMENT, OUT),
            (ProductType.MP, MovementOrigin.LOSS, OUT),
            (ProductType.PF, MovementOrigin.PRODUCTION_IN, IN),
            (ProductType.PF, MovementOrigin.SALE, OUT),
            (ProductType.PF, MovementOrigin.CUSTOMER_RETURN, IN),
            (ProductType.PF, MovementOrigin.ADJUSTMENT, OUT),
            (ProductType.PF, MovementOrigin.LOSS, OUT),
        ],
    )
    def test_allowed(self, product_type, origin, movement_type):
        validate_movement(product_type, origin, movement_type)

    @pytest.mark.parametrize(
        "product_type,origin,movement_type",
        [
            (ProductType.MP, MovementOrigin.RECEPTION, OUT),
            (ProductType.MP, MovementOrigin.SALE, OUT),
            (ProductType.MP, MovementOrigin.PRODUCTION_IN, IN),
            (ProductType.MP, MovementOrigin.LOSS, IN),
            (ProductType.PF, MovementOrigin.RECEPTION, IN),
            (ProductType.PF, MovementOrigin.PRODUCTION_OUT, OUT),
            (ProductType.PF, MovementOrigin.SALE, IN),
        ],
    )
    def test_refused(self, product_type, origin, movement_type):
        with pytest.raises(InvalidMovementCombinationError) as exc_info:
            validate_movement(product_type, origin, movement_type)
        assert exc_info.value.origin == origin.value
        assert exc_info.value.movement_type == movement_type.value

    def test_unknown_origin_has_no_direction(self):
        assert allowed_movement_types(ProductType.PF, MovementOrigin.RECEPTION) == frozenset()


class TestOriginRoles:

    def test_every_origin_has_roles(self):
        assert set(ORIGIN_ROLES) == set(MovementOrigin)

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.APPRO, Role.SYSTEM])
    def test_reception_roles(self, role):
        check_origin_role(MovementOrigin.RECEPTION, role)

    def test_production_cannot_receive(self):
        with pytest.raises(RoleNotAuthorizedError) as exc_info:
            check_origin_role(MovementOrigin.RECEPTION, Role.PRODUCTION)
        assert exc_info.value.required_roles == ["ADMIN", "APPRO", "SYSTEM"]
        assert exc_info.value.admin_override is False

    @pytest.mark.parametrize(
        "origin",
        [MovementOrigin.SALE, MovementOrigin.ADJUSTMENT, MovementOrigin.LOSS, MovementOrigin.CUSTOMER_RETURN],
    )
    def test_admin_only_origins(self, origin):
        check_origin_role(origin, Role.ADMIN)
        for role in (Role.APPRO, Role.PRODUCTION):
            with pytest.raises(RoleNotAuthorizedError):
                check_origin_role(origin, role)
