"""
Idempotency store (``dairy_kernel.services.idempotency_service``).

Responsibility
--------------
Remembers the result of an idempotent operation under the caller-supplied
idempotency key, so that a replay returns the stored result without
re-running any mutation (no double credit of stock on a replayed
reception).

Architecture
------------
Layer: **Kernel services** -- shares the caller's session; it never commits.
The record is written in the same transaction as the operation it protects,
so either both land or neither does.

Failure Modes
-------------
- ``IdempotencyConflictError`` when a key is replayed for another entity.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_kernel.exceptions import IdempotencyConflictError
from dairy_kernel.logging_config import get_logger
from dairy_kernel.models.idempotency import IdempotencyRecordModel

logger = get_logger("services.idempotency")


class IdempotencyStore:
    """Session-bound lookup/save of idempotent operation results."""

    def __init__(self, session: Session):
        self._session = session

    def lookup(self, operation: str, key: str | None, entity_id: Any) -> dict[str, Any] | None:
        """Stored result for ``(operation, key)``, or None when the key is new."""
        if not key:
            return None
        record = self._session.execute(
            select(IdempotencyRecordModel).where(
                IdempotencyRecordModel.operation == operation,
                IdempotencyRecordModel.idempotency_key == key,
            )
        ).scalar_one_or_none()
        if record is None:
            return None
        if record.entity_id != str(entity_id):
            raise IdempotencyConflictError(
                operation=operation,
                key=key,
                stored_entity_id=record.entity_id,
                entity_id=str(entity_id),
            )
        logger.info(
            "idempotent_replay_detected",
            extra={"operation": operation, "idempotency_key": key, "replayed_entity_id": record.entity_id},
        )
        return dict(record.result)

    def save(
        self,
        operation: str,
        key: str | None,
        entity_id: Any,
        result: dict[str, Any],
        recorded_at: datetime,
    ) -> None:
        """Store ``result`` under ``(operation, key)``; no-op without a key."""
        if not key:
            return
        self._session.add(
            IdempotencyRecordModel(
                operation=operation,
                idempotency_key=key,
                entity_id=str(entity_id),
                result=result,
                recorded_at=recorded_at,
            )
        )
        self._session.flush()
