"""
Shared fixtures for module tests.

Provides the seeded catalogue (suppliers and products) the services need
to satisfy FK constraints, and wired service instances.

All IDs are deterministic so tests can import and use them directly.
Every catalogue fixture is opt-in; services are composed exactly the way
production code composes them.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from dairy_modules.appro.models import RequestLineInput, SendVia
from dairy_modules.appro.orm import SupplierModel
from dairy_modules.appro.service import ApproService
from dairy_modules.stock.orm import ProductModel
from dairy_modules.stock.service import StockService


# ---------------------------------------------------------------------------
# Deterministic catalogue IDs
# ---------------------------------------------------------------------------

SUPPLIER_MILK_ID = UUID("00000000-0000-4000-a000-000000000001")
SUPPLIER_DRY_ID = UUID("00000000-0000-4000-a000-000000000002")

MILK_ID = UUID("00000000-0000-4000-a000-000000000101")
SUGAR_ID = UUID("00000000-0000-4000-a000-000000000102")
CULTURES_ID = UUID("00000000-0000-4000-a000-000000000103")
CREAM_ID = UUID("00000000-0000-4000-a000-000000000104")
YOGURT_ID = UUID("00000000-0000-4000-a000-000000000201")

CATALOGUE_OWNER_ID = UUID("00000000-0000-4000-b000-000000000001")


@pytest.fixture
def catalogue(session):
    """
    Two suppliers and five products.

    MILK    MP, perishable, HIGH criticality, supplier MILK (has e-mail), last price 0.45
    CREAM   MP, perishable, supplier MILK, no last price
    SUGAR   MP, non-perishable, supplier DRY (no e-mail), last price 1.20
    CULT    MP, no main supplier
    YAOURT  PF, perishable
    """
    session.add_all([
        SupplierModel(
            id=SUPPLIER_MILK_ID, code="FRN-LAIT", name="Laiterie du Val",
            email="commandes@laiterie-val.example", created_by_id=CATALOGUE_OWNER_ID,
        ),
        SupplierModel(
            id=SUPPLIER_DRY_ID, code="FRN-SEC", name="Sucres & Co",
            email=None, created_by_id=CATALOGUE_OWNER_ID,
        ),
    ])
    session.flush()
    session.add_all([
        ProductModel(
            id=MILK_ID, code="MP-LAIT", name="Lait cru", product_type="MP", unit="L",
            is_perishable=True, unit_cost=Decimal("0.45"), last_price=Decimal("0.45"),
            main_supplier_id=SUPPLIER_MILK_ID, criticality="HIGH", created_by_id=CATALOGUE_OWNER_ID,
        ),
        ProductModel(
            id=CREAM_ID, code="MP-CREME", name="Creme", product_type="MP", unit="L",
            is_perishable=True, unit_cost=Decimal("3.10"), last_price=None,
            main_supplier_id=SUPPLIER_MILK_ID, criticality="MEDIUM", created_by_id=CATALOGUE_OWNER_ID,
        ),
        ProductModel(
            id=SUGAR_ID, code="MP-SUCRE", name="Sucre", product_type="MP", unit="KG",
            is_perishable=False, unit_cost=Decimal("1.20"), last_price=Decimal("1.20"),
            main_supplier_id=SUPPLIER_DRY_ID, criticality="LOW", created_by_id=CATALOGUE_OWNER_ID,
        ),
        ProductModel(
            id=CULTURES_ID, code="MP-CULT", name="Ferments", product_type="MP", unit="KG",
            is_perishable=True, unit_cost=Decimal("40"), main_supplier_id=None,
            created_by_id=CATALOGUE_OWNER_ID,
        ),
        ProductModel(
            id=YOGURT_ID, code="PF-YAOURT", name="Yaourt nature", product_type="PF", unit="U",
            is_perishable=True, unit_cost=Decimal("2"), created_by_id=CATALOGUE_OWNER_ID,
        ),
    ])
    session.commit()


@pytest.fixture
def stock_service(session, deterministic_clock, audit_sink):
    return StockService(session, clock=deterministic_clock, audit_sink=audit_sink)


@pytest.fixture
def appro_service(session, deterministic_clock, audit_sink):
    return ApproService(session, clock=deterministic_clock, audit_sink=audit_sink)


# ---------------------------------------------------------------------------
# Procurement scenario fixtures
# ---------------------------------------------------------------------------

EXPECTED_DELIVERY = date(2025, 1, 20)
PROOF_NOTE = "Order dictated by phone to the supplier desk"


@pytest.fixture
def request_lines():
    """MILK 100 L and CREAM 20 L (supplier MILK), SUGAR 50 kg (supplier DRY)."""
    return [
        RequestLineInput(product_id=MILK_ID, quantity=Decimal("100")),
        RequestLineInput(product_id=SUGAR_ID, quantity=Decimal("50")),
        RequestLineInput(product_id=CREAM_ID, quantity=Decimal("20")),
    ]


@pytest.fixture
def validated_request(catalogue, appro_service, request_lines, production_user, appro_user):
    request = appro_service.create_request(request_lines, production_user)
    appro_service.submit_request(request.id, production_user)
    return appro_service.validate_request(request.id, appro_user)


@pytest.fixture
def generated_orders(appro_service, validated_request, appro_user):
    """
    The two DRAFT purchase orders of ``validated_request``, keyed by supplier.

    BC-2025-00001 goes to supplier MILK (MILK, CREAM), BC-2025-00002 to
    supplier DRY (SUGAR).
    """
    appro_service.generate_purchase_orders(
        validated_request.id, appro_user, expected_delivery=EXPECTED_DELIVERY,
    )
    orders = appro_service.list_purchase_orders(validated_request.id)
    return {po.supplier_id: po for po in orders}


@pytest.fixture
def sent_orders(appro_service, generated_orders, appro_user):
    """Both purchase orders SENT: MILK by e-mail, DRY manually."""
    appro_service.send_purchase_order(generated_orders[SUPPLIER_MILK_ID].id, appro_user, SendVia.EMAIL)
    appro_service.send_purchase_order(
        generated_orders[SUPPLIER_DRY_ID].id, appro_user, SendVia.MANUAL, proof_note=PROOF_NOTE,
    )
    return {
        supplier_id: appro_service.get_purchase_order(po.id)
        for supplier_id, po in generated_orders.items()
    }


def line_for(purchase_order, product_id):
    """The line of ``purchase_order`` ordering ``product_id``."""
    return next(line for line in purchase_order.lines if line.product_id == product_id)
