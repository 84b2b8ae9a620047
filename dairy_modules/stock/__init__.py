"""
Stock Module (``dairy_modules.stock``).

Responsibility
--------------
The stock ledger: lots credited by receptions, FIFO draw-downs, inventory
counts with risk-tiered validation, and declared losses.

Architecture position
---------------------
**Modules layer** -- models, movement rules, config schema, ORM and the
``StockService`` facade.  FIFO planning and count tiering come from
``dairy_engines``.

Invariants enforced
-------------------
* Movements are append-only; the signed movement sum of a product equals
  the sum of its lots' remaining quantities.
* Transaction boundary owned by ``StockService``.
"""

from dairy_modules.stock.config import StockConfig
from dairy_modules.stock.models import (
    InventoryDeclaration,
    Lot,
    LossRecord,
    MovementOrigin,
    MovementType,
    Product,
    ProductType,
    StockMovement,
)
from dairy_modules.stock.rules import ORIGIN_ROLES, VALID_COMBINATIONS

__all__ = [
    "InventoryDeclaration",
    "Lot",
    "LossRecord",
    "MovementOrigin",
    "MovementType",
    "ORIGIN_ROLES",
    "Product",
    "ProductType",
    "StockConfig",
    "StockMovement",
    "VALID_COMBINATIONS",
]
