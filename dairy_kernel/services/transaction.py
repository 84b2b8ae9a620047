"""
Transaction boundary for module services
(``dairy_kernel.services.transaction``).

Responsibility
--------------
Every public service method owns its transaction: commit on success,
rollback on any exception and re-raise.  Persistence failures
(``SQLAlchemyError``) are wrapped into the retryable ``DatabaseError`` so
callers see one typed error family.

A service composed into another one's transaction (``auto_commit=False``)
only flushes; the owning service commits or rolls back.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dairy_kernel.exceptions import DairyErpError, DatabaseError
from dairy_kernel.logging_config import get_logger

logger = get_logger("services.transaction")


@contextmanager
def transaction_boundary(
    session: Session,
    operation: str,
    *,
    auto_commit: bool = True,
) -> Iterator[Session]:
    """
    Run the enclosed block as one unit of work.

    Raises:
        DatabaseError: wrapping any SQLAlchemyError.
        DairyErpError: business errors propagate unchanged.
    """
    try:
        yield session
        if auto_commit:
            session.commit()
        else:
            session.flush()
    except SQLAlchemyError as exc:
        if auto_commit:
            session.rollback()
        logger.error(
            "transaction_rolled_back",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        raise DatabaseError(operation, str(exc)) from exc
    except DairyErpError as exc:
        if auto_commit:
            session.rollback()
        logger.info(
            "transaction_rolled_back",
            extra={"operation": operation, "error_code": exc.code},
        )
        raise
    except Exception:
        if auto_commit:
            session.rollback()
        logger.exception("transaction_rolled_back", extra={"operation": operation})
        raise
