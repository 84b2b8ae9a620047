"""
Transition rule tables and the transition guard
(``dairy_kernel.domain.transitions``).

Responsibility
--------------
Pure value objects describing the legal status transitions of a lifecycle
(one ``TransitionTable`` per entity type) and the single guard function
through which every status mutation must pass.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/`` or outer layers.  The concrete tables live with their
module (``dairy_modules.appro.workflows``).

Invariants enforced
-------------------
* Rules reference only states declared on the table; terminal and
  irreversible states are subsets of the declared states.
* ``(from, to)`` pairs are unique within a table.
* ADMIN passes the role check of every rule.
* A justification is valid only when ``len(text.strip()) >= 10``.
* ``assert_can_transition`` has no side effects: persisting the new status
  and reporting to the audit sink is the caller's job.

Failure modes
-------------
Checked in this order, each raising a typed ``TransitionError``:

1. ``InvalidTransitionError``          -- no rule for ``(from, to)``
2. ``RoleNotAuthorizedError``          -- role outside the rule's roles
3. ``JustificationRequiredError``      -- missing / too short justification
4. ``BlockedByPartialReceptionError``  -- blocking predicate holds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from dairy_kernel.domain.roles import Role
from dairy_kernel.exceptions import (
    BlockedByPartialReceptionError,
    InvalidTransitionError,
    JustificationRequiredError,
    RoleNotAuthorizedError,
)

MIN_JUSTIFICATION_LENGTH = 10


@dataclass(frozen=True)
class TransitionContext:
    """Caller-supplied facts a rule may depend on."""
    justification: str | None = None
    has_partial_received: bool = False


@dataclass(frozen=True)
class BlockingPredicate:
    """A named condition that, when true, blocks an otherwise legal transition."""
    name: str
    description: str
    evaluate: Callable[[TransitionContext], bool] = field(compare=False, repr=False)


PARTIAL_RECEPTION_RECORDED = BlockingPredicate(
    name="partial_reception_recorded",
    description="Goods were already partially received against the order",
    evaluate=lambda ctx: ctx.has_partial_received,
)


@dataclass(frozen=True)
class TransitionRule:
    """One row of a transition table."""
    from_state: Enum
    to_state: Enum
    allowed_roles: frozenset[Role]
    action: str
    irreversible: bool = False
    requires_justification: bool = False
    blocking_predicate: BlockingPredicate | None = None

    def permits(self, role: Role) -> bool:
        return role is Role.ADMIN or role in self.allowed_roles

    def is_blocked(self, context: TransitionContext) -> bool:
        return self.blocking_predicate is not None and self.blocking_predicate.evaluate(context)


def justification_length(justification: str | None) -> int:
    """Length of a justification after trimming; 0 for None."""
    return len(justification.strip()) if justification else 0


@dataclass(frozen=True)
class TransitionTable:
    """
    Declarative catalogue of legal transitions for one entity type.

    Contract:
        Frozen.  Rows are kept in declaration order; every derived query
        (allowed transitions, available actions) preserves that order.
    """
    entity_type: str
    description: str
    initial_state: Enum
    states: tuple[Enum, ...]
    rules: tuple[TransitionRule, ...]
    terminal_states: frozenset[Enum]
    irreversible_states: frozenset[Enum]

    def __post_init__(self) -> None:
        declared = set(self.states)
        if self.initial_state not in declared:
            raise ValueError(f"{self.entity_type}: initial state {self.initial_state} not declared")
        seen: set[tuple[Enum, Enum]] = set()
        for rule in self.rules:
            if rule.from_state not in declared or rule.to_state not in declared:
                raise ValueError(
                    f"{self.entity_type}: rule {rule.from_state} -> {rule.to_state} "
                    "references an undeclared state"
                )
            pair = (rule.from_state, rule.to_state)
            if pair in seen:
                raise ValueError(f"{self.entity_type}: duplicate rule {pair}")
            seen.add(pair)
        if not self.terminal_states <= declared or not self.irreversible_states <= declared:
            raise ValueError(f"{self.entity_type}: terminal/irreversible states must be declared")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def find_rule(self, from_state: Enum, to_state: Enum) -> TransitionRule | None:
        for rule in self.rules:
            if rule.from_state == from_state and rule.to_state == to_state:
                return rule
        return None

    def reachable_statuses(self, from_state: Enum) -> list[Enum]:
        """Deduplicated targets of every rule leaving ``from_state``."""
        targets: list[Enum] = []
        for rule in self.rules:
            if rule.from_state == from_state and rule.to_state not in targets:
                targets.append(rule.to_state)
        return targets

    def is_terminal(self, status: Enum) -> bool:
        return status in self.terminal_states

    def is_irreversible(self, status: Enum) -> bool:
        return status in self.irreversible_states

    def available_transitions(
        self,
        from_state: Enum,
        role: Role,
        has_partial_received: bool = False,
    ) -> list[TransitionRule]:
        """Rules from ``from_state`` the role may fire in the given context."""
        context = TransitionContext(has_partial_received=has_partial_received)
        return [
            rule
            for rule in self.rules
            if rule.from_state == from_state
            and rule.permits(role)
            and not rule.is_blocked(context)
        ]

    def available_actions(
        self,
        status: Enum,
        role: Role,
        has_partial_received: bool = False,
    ) -> list[str]:
        """Deduplicated action names, in table order."""
        actions: list[str] = []
        for rule in self.available_transitions(status, role, has_partial_received):
            if rule.action not in actions:
                actions.append(rule.action)
        return actions

    # -------------------------------------------------------------------------
    # Guard
    # -------------------------------------------------------------------------

    def assert_can_transition(
        self,
        from_state: Enum,
        to_state: Enum,
        role: Role,
        justification: str | None = None,
        has_partial_received: bool = False,
    ) -> TransitionRule:
        """
        Return the rule allowing ``from_state -> to_state`` for ``role``.

        Raises:
            InvalidTransitionError: no such rule.
            RoleNotAuthorizedError: role outside the rule's roles (ADMIN never is).
            JustificationRequiredError: rule needs >= 10 trimmed characters.
            BlockedByPartialReceptionError: the rule's blocking predicate holds.
        """
        rule = self.find_rule(from_state, to_state)
        if rule is None:
            raise InvalidTransitionError(
                entity_type=self.entity_type,
                current_status=from_state.value,
                requested_status=to_state.value,
                allowed_transitions=[s.value for s in self.reachable_statuses(from_state)],
            )

        if not rule.permits(role):
            raise RoleNotAuthorizedError(
                role=role.value,
                required_roles=sorted(r.value for r in rule.allowed_roles),
                operation=rule.action,
            )

        if rule.requires_justification:
            provided = justification_length(justification)
            if provided < MIN_JUSTIFICATION_LENGTH:
                raise JustificationRequiredError(
                    min_length=MIN_JUSTIFICATION_LENGTH,
                    provided_length=provided,
                )

        context = TransitionContext(
            justification=justification,
            has_partial_received=has_partial_received,
        )
        if rule.is_blocked(context):
            raise BlockedByPartialReceptionError(
                current_status=from_state.value,
                requested_status=to_state.value,
            )

        return rule
