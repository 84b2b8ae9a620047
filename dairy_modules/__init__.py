"""
Dairy ERP Modules.

Thin orchestration layers over the kernel and the engines.
Each module contains:
- Domain models (the nouns)
- Workflows (transition tables)
- Configuration schemas
- ORM models and a service that owns the transaction boundary

Modules:
- Appro: Material requests, purchase orders, sending, receiving, delays
- Stock: Lots, FIFO consumption, inventory counts, losses

Decisions live in the engines; the modules persist and sequence them.
"""

from dairy_modules import appro, stock

__all__ = [
    "appro",
    "stock",
]
