"""
Module ORM Registry (``dairy_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before tables are created, and provide
``create_all_tables()``, the one entry point that builds the full schema.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``dairy_modules``
packages and from ``dairy_kernel`` (allowed: modules -> kernel).  MUST NOT
be imported by ``dairy_kernel``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``dairy_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import dairy_kernel.models  # noqa: F401
    # fmt: off
    import dairy_modules.stock.orm  # noqa: F401
    import dairy_modules.appro.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Register every ORM model, then create all tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from dairy_kernel.db.engine import create_tables
    from dairy_modules.stock.immutability import register_immutability_listeners

    import_all_orm_models()
    create_tables()
    register_immutability_listeners()
