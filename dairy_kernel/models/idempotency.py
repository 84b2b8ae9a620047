"""
Module: dairy_kernel.models.idempotency
Responsibility: Stored results of idempotent operations (send, cancel,
    receive), keyed by ``(operation, key)``.

Invariants enforced:
    - ``(operation, idempotency_key)`` is unique: a replay finds exactly one
      stored result.
    - ``result`` is the JSON form of the operation's result and is never
      updated after insert.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dairy_kernel.db.base import Base


class IdempotencyRecordModel(Base):
    """One completed idempotent operation."""

    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint("operation", "idempotency_key", name="uq_idempotency_operation_key"),
    )

    operation: Mapped[str] = mapped_column(String(100))
    idempotency_key: Mapped[str] = mapped_column(String(200))
    entity_id: Mapped[str] = mapped_column(String(36))
    result: Mapped[dict[str, Any]] = mapped_column(JSON)
    recorded_at: Mapped[datetime] = mapped_column()

    def __repr__(self) -> str:
        return f"<IdempotencyRecordModel {self.operation}:{self.idempotency_key}>"
