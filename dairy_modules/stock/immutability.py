"""
ORM-level append-only enforcement for the stock ledger.

Stock movements are the audit trail of every quantity that entered or left
a lot.  A wrong movement is corrected by a new compensating movement, never
by editing or deleting the old one.  SQLAlchemy fires ``before_update`` /
``before_delete`` before the SQL reaches the database; the listeners below
raise ``ImmutabilityViolationError`` there, so the flush is aborted.

Protected entities:

    Entity              | When immutable        | Note
    --------------------|-----------------------|----------------------------
    StockMovementModel  | ALWAYS                | Ledger entries
    LossDeclarationModel| ALWAYS                | Declared losses are evidence
"""

from sqlalchemy import event

from dairy_kernel.exceptions import ImmutabilityViolationError
from dairy_kernel.logging_config import get_logger
from dairy_modules.stock.orm import LossDeclarationModel, StockMovementModel

logger = get_logger("modules.stock.immutability")


def _blocked(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "blocked_entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_movement_update(mapper, connection, target):
    _blocked("StockMovement", target, "UPDATE", "Stock movements are append-only")


def _check_movement_delete(mapper, connection, target):
    _blocked("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


def _check_loss_update(mapper, connection, target):
    _blocked("LossDeclaration", target, "UPDATE", "Loss declarations cannot be modified")


def _check_loss_delete(mapper, connection, target):
    _blocked("LossDeclaration", target, "DELETE", "Loss declarations cannot be deleted")


_LISTENERS = (
    (StockMovementModel, "before_update", _check_movement_update),
    (StockMovementModel, "before_delete", _check_movement_delete),
    (LossDeclarationModel, "before_update", _check_loss_update),
    (LossDeclarationModel, "before_delete", _check_loss_delete),
)


def register_immutability_listeners() -> None:
    """Install the append-only listeners. Repeated calls are harmless."""
    for target, event_name, listener in _LISTENERS:
        if not event.contains(target, event_name, listener):
            event.listen(target, event_name, listener)


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only use this in tests that must write a broken ledger to
    verify detection.
    """
    for target, event_name, listener in _LISTENERS:
        if event.contains(target, event_name, listener):
            event.remove(target, event_name, listener)
