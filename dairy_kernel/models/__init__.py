"""Kernel-owned ORM models."""

from dairy_kernel.models.idempotency import IdempotencyRecordModel

__all__ = ["IdempotencyRecordModel"]
