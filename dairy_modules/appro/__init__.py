"""
Procurement Module (``dairy_modules.appro``).

Responsibility
--------------
Material requests from draft to reception: validation, purchase-order
generation per supplier, sending with proof, confirmation, cancellation,
reception reconciliation into stock, and delivery delay tracking.

Architecture position
---------------------
**Modules layer** -- models, transition tables, config schema, ORM and the
``ApproService`` facade.  Reception planning and delay tiering come from
``dairy_engines``; lots and movements are written through ``StockService``.

Invariants enforced
-------------------
* Every status change goes through ``dairy_kernel.domain.transitions``.
* A purchase order with a partial reception is never cancelled.
* Transaction boundary owned by ``ApproService``.
"""

from dairy_modules.appro.config import ApproConfig
from dairy_modules.appro.models import (
    MaterialRequest,
    PurchaseOrder,
    PurchaseOrderStatus,
    RequestPriority,
    RequestStatus,
    SendVia,
    Supplier,
)
from dairy_modules.appro.workflows import PURCHASE_ORDER_TRANSITIONS, REQUEST_TRANSITIONS

__all__ = [
    "ApproConfig",
    "MaterialRequest",
    "PURCHASE_ORDER_TRANSITIONS",
    "PurchaseOrder",
    "PurchaseOrderStatus",
    "REQUEST_TRANSITIONS",
    "RequestPriority",
    "RequestStatus",
    "SendVia",
    "Supplier",
]
