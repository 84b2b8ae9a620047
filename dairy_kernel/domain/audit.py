"""
Audit sink for status transitions and refused attempts.

Every successful transition and every rejected attempt is reported as an
``AuditRecord``.  Where records end up is the caller's choice: the default
``LoggingAuditSink`` writes structured log lines, ``InMemoryAuditSink`` keeps
them for inspection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from dairy_kernel.logging_config import get_logger

logger = get_logger("domain.audit")


class AuditOutcome(Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class AuditRecord:
    """One audited action against an entity."""
    entity_type: str
    entity_id: str
    action: str
    actor_id: UUID
    actor_role: str
    occurred_at: datetime
    outcome: AuditOutcome
    from_status: str | None = None
    to_status: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def record(self, entry: AuditRecord) -> None: ...


class LoggingAuditSink:
    """Writes each audit record as a structured log line."""

    def record(self, entry: AuditRecord) -> None:
        extra = {
            "entity_type": entry.entity_type,
            "audited_entity_id": entry.entity_id,
            "action": entry.action,
            "audited_actor_id": str(entry.actor_id),
            "audited_actor_role": entry.actor_role,
            "from_status": entry.from_status,
            "to_status": entry.to_status,
            "occurred_at": entry.occurred_at.isoformat(),
            "metadata": entry.metadata,
        }
        if entry.outcome is AuditOutcome.ACCEPTED:
            logger.info("audit_transition_accepted", extra=extra)
        else:
            logger.warning(
                "audit_transition_rejected",
                extra={**extra, "error_code": entry.error_code},
            )


class InMemoryAuditSink:
    """Keeps audit records in memory, in arrival order."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def record(self, entry: AuditRecord) -> None:
        self.records.append(entry)

    def rejected(self) -> list[AuditRecord]:
        return [r for r in self.records if r.outcome is AuditOutcome.REJECTED]

    def accepted(self) -> list[AuditRecord]:
        return [r for r in self.records if r.outcome is AuditOutcome.ACCEPTED]
