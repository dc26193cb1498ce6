"""
Workflow State Definitions

Defines the entity kinds, actor roles and the closed status sets for
laundry requests and lost-and-found items.
"""
from enum import Enum
from typing import Type


class EntityKind(str, Enum):
    """The two kinds of workflow entities tracked by the engine."""
    LAUNDRY_REQUEST = "laundry_request"
    LOST_ITEM = "lost_item"


class Role(str, Enum):
    """Roles an actor can hold, as reported by the identity provider."""
    REQUESTER = "requester"
    HANDLER = "handler"
    AUDITOR = "auditor"


class LaundryStatus(str, Enum):
    """
    Enum representing the possible states of a laundry request.

    Flow: PENDING -> IN_PROCESS -> READY -> DELIVERED
    """
    PENDING = "pending"
    IN_PROCESS = "in-process"
    READY = "ready"
    DELIVERED = "delivered"


class LostItemStatus(str, Enum):
    """
    Enum representing the possible states of a lost-and-found item.

    Flow: AVAILABLE -> CLAIMED -> RETURNED
    Rejected claims send the item back: CLAIMED -> AVAILABLE
    """
    AVAILABLE = "available"
    CLAIMED = "claimed"
    RETURNED = "returned"


STATUS_ENUMS: dict[EntityKind, Type[Enum]] = {
    EntityKind.LAUNDRY_REQUEST: LaundryStatus,
    EntityKind.LOST_ITEM: LostItemStatus,
}

# Roles allowed to move work forward on behalf of others
STAFF_ROLES = frozenset({Role.HANDLER, Role.AUDITOR})
