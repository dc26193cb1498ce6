"""
View Scopes

One declarative filter for every role: which entities a session may see,
optionally narrowed by status and a free-text search.
"""
from typing import Iterable, Optional, Union

from pydantic import BaseModel

from campusdesk.core.errors import InvalidTransition, ValidationError
from campusdesk.core.models import Entity, LaundryRequest, LostItem, Session
from campusdesk.core.states import EntityKind, LaundryStatus, LostItemStatus, Role
from campusdesk.feed.change_feed import Predicate
from campusdesk.state_machine.machine import state_machine


class Scope(BaseModel):
    """What a subscriber is allowed and asked to see."""
    kind: EntityKind
    owner_id: Optional[str] = None
    status: Optional[Union[LaundryStatus, LostItemStatus]] = None
    search: Optional[str] = None

    class Config:
        frozen = True


def scope_for(
    session: Session,
    kind: EntityKind,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> Scope:
    """
    Derive the scope for a session.

    Requesters only see their own laundry requests. Staff see every request.
    Lost items are visible to everyone.
    """
    owner_id = None
    if kind == EntityKind.LAUNDRY_REQUEST and session.role == Role.REQUESTER:
        owner_id = session.actor_id

    status_filter = None
    if status is not None:
        try:
            status_filter = state_machine.coerce_status(kind, status)
        except InvalidTransition as e:
            raise ValidationError(str(e)) from None

    needle = search.strip().lower() if search else None
    return Scope(kind=kind, owner_id=owner_id, status=status_filter, search=needle or None)


def _searchable_text(entity: Entity) -> Iterable[str]:
    if isinstance(entity, LaundryRequest):
        yield from entity.items
        if entity.notes:
            yield entity.notes
    elif isinstance(entity, LostItem):
        yield entity.description
        yield entity.location
        yield entity.category


def build_predicate(scope: Scope) -> Predicate:
    """Compile a scope into the predicate used by the change feed."""

    def predicate(entity: Entity) -> bool:
        if entity.kind != scope.kind:
            return False
        if scope.owner_id is not None and getattr(entity, "owner_id", None) != scope.owner_id:
            return False
        if scope.status is not None and entity.status != scope.status:
            return False
        if scope.search is not None:
            return any(scope.search in text.lower() for text in _searchable_text(entity))
        return True

    return predicate
