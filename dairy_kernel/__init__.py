"""
Dairy ERP Kernel

Shared foundations of the order/request lifecycle core:
- Structured logging and typed, categorized exceptions
- Roles, explicit actor context and an injectable clock
- Declarative transition tables with a single pure guard
- SQLAlchemy base/engine and an idempotency store
"""

__version__ = "0.1.0"
