"""
Actor roles and the explicit actor context.

The acting role is always passed in by the caller (resolved by the excluded
authentication layer) instead of being read from ambient state, which keeps
the transition guard a pure function of its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from dairy_kernel.exceptions import RoleNotAuthorizedError


class Role(Enum):
    """Roles recognised by the order/request lifecycle."""
    ADMIN = "ADMIN"
    APPRO = "APPRO"
    PRODUCTION = "PRODUCTION"
    SYSTEM = "SYSTEM"  # synthetic, used only by internal cascades


@dataclass(frozen=True)
class ActorContext:
    """Who is acting, and in which role."""
    actor_id: UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @classmethod
    def system(cls, actor_id: UUID) -> ActorContext:
        """Synthetic SYSTEM actor for cascades triggered by ``actor_id``."""
        return cls(actor_id=actor_id, role=Role.SYSTEM)


PUBLIC_ROLES = frozenset({Role.ADMIN, Role.APPRO, Role.PRODUCTION})


def require_public_actor(actor: ActorContext, operation: str) -> None:
    """
    Reject the synthetic SYSTEM role at public entry points.

    Raises:
        RoleNotAuthorizedError: ``actor`` carries SYSTEM.
    """
    if actor.role not in PUBLIC_ROLES:
        raise RoleNotAuthorizedError(
            role=actor.role.value,
            required_roles=sorted(r.value for r in PUBLIC_ROLES),
            operation=operation,
            admin_override=False,
        )
