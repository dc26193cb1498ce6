"""
Workflow State Machine

Decides whether a requested status transition is legal for an entity kind
and actor role. Holds no state of its own; the tables below are fixed.
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, List, Set, Tuple, Union

from campusdesk.core.errors import InvalidTransition, PermissionDenied
from campusdesk.core.states import (
    STAFF_ROLES,
    STATUS_ENUMS,
    EntityKind,
    LaundryStatus,
    LostItemStatus,
    Role,
)

logger = logging.getLogger(__name__)

Status = Union[LaundryStatus, LostItemStatus]


class WorkflowStateMachine:
    """
    Transition tables and role rules for both entity kinds.

    Laundry requests only move forward. Lost items go out on a claim and
    either come back (claim rejected) or leave for good (claim approved).
    """

    # Define valid transitions (from_state -> set of valid to_states)
    TRANSITIONS: Dict[EntityKind, Dict[Status, Set[Status]]] = {
        EntityKind.LAUNDRY_REQUEST: {
            LaundryStatus.PENDING: {LaundryStatus.IN_PROCESS},
            LaundryStatus.IN_PROCESS: {LaundryStatus.READY},
            LaundryStatus.READY: {LaundryStatus.DELIVERED},
            LaundryStatus.DELIVERED: set(),  # Terminal state
        },
        EntityKind.LOST_ITEM: {
            LostItemStatus.AVAILABLE: {LostItemStatus.CLAIMED},
            LostItemStatus.CLAIMED: {LostItemStatus.RETURNED, LostItemStatus.AVAILABLE},
            LostItemStatus.RETURNED: set(),  # Terminal state
        },
    }

    # Who may move an entity into a given status. Unlisted targets are staff-only.
    PERMISSIONS: Dict[Tuple[EntityKind, Status], FrozenSet[Role]] = {
        (EntityKind.LOST_ITEM, LostItemStatus.CLAIMED): frozenset(Role),
    }

    def coerce_status(self, kind: EntityKind, value: Union[str, Status]) -> Status:
        """
        Turn a raw status value into the closed enum for ``kind``.

        Raises:
            InvalidTransition: If the value is not a status of that kind
        """
        enum_cls = STATUS_ENUMS[kind]
        if isinstance(value, enum_cls):
            return value
        raw = value.value if isinstance(value, Enum) else value
        try:
            return enum_cls(raw)
        except ValueError:
            valid = [s.value for s in enum_cls]
            raise InvalidTransition(
                f"Unknown {kind.value} status {raw!r}. Valid statuses: {valid}"
            ) from None

    def get_valid_transitions(self, kind: EntityKind, status: Status) -> List[Status]:
        """Get list of valid next states, in declaration order."""
        targets = self.TRANSITIONS[kind].get(status, set())
        return [s for s in STATUS_ENUMS[kind] if s in targets]

    def is_terminal(self, kind: EntityKind, status: Status) -> bool:
        return not self.TRANSITIONS[kind].get(status)

    def can_transition(self, kind: EntityKind, current: Status, requested: Status) -> bool:
        """Check if a transition is in the table (a no-op always is)."""
        return requested == current or requested in self.TRANSITIONS[kind].get(current, set())

    def allowed_roles(self, kind: EntityKind, target: Status) -> FrozenSet[Role]:
        return self.PERMISSIONS.get((kind, target), STAFF_ROLES)

    def validate_transition(
        self,
        kind: EntityKind,
        current: Union[str, Status],
        requested: Union[str, Status],
        role: Role,
    ) -> Status:
        """
        Validate a requested status change.

        Args:
            kind: Entity kind the status belongs to
            current: Status the entity is in now
            requested: Status the caller wants
            role: Role of the acting session

        Returns:
            The requested status as an enum member. Equal to ``current``
            when the request is an idempotent no-op.

        Raises:
            PermissionDenied: If the role may not perform this transition
            InvalidTransition: If the edge is not in the table
        """
        current = self.coerce_status(kind, current)
        requested = self.coerce_status(kind, requested)

        if role not in self.allowed_roles(kind, requested):
            raise PermissionDenied(
                f"Role {role.value} may not move a {kind.value} to {requested.value}"
            )

        if not self.can_transition(kind, current, requested):
            valid = self.get_valid_transitions(kind, current)
            logger.debug(f"Rejected {kind.value} transition {current.value} -> {requested.value}")
            raise InvalidTransition(
                f"Invalid transition from {current.value} to {requested.value}. "
                f"Valid transitions: {[s.value for s in valid]}"
            )

        return requested


# Shared instance; the machine is stateless.
state_machine = WorkflowStateMachine()


def validate_transition(
    kind: EntityKind,
    current: Union[str, Status],
    requested: Union[str, Status],
    role: Role,
) -> Status:
    return state_machine.validate_transition(kind, current, requested, role)


def next_statuses(kind: EntityKind, status: Union[str, Status]) -> List[Status]:
    return state_machine.get_valid_transitions(kind, state_machine.coerce_status(kind, status))


def is_terminal(kind: EntityKind, status: Union[str, Status]) -> bool:
    return state_machine.is_terminal(kind, state_machine.coerce_status(kind, status))
