"""
Workflow Service

The command and query surface used by the HTTP layer (or any other
controller). Every call takes the acting ``Session`` explicitly.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from campusdesk.config import Settings, get_settings
from campusdesk.core.errors import PermissionDenied, ValidationError
from campusdesk.core.models import (
    Analytics,
    ClaimRecord,
    Entity,
    LaundryRequest,
    LostItem,
    Session,
    newest_first,
    utc_now,
)
from campusdesk.core.states import STAFF_ROLES, EntityKind, LaundryStatus, LostItemStatus, Role
from campusdesk.feed.change_feed import ChangeFeed, Subscription
from campusdesk.services.claims import ClaimArbitrator
from campusdesk.state_machine.machine import state_machine
from campusdesk.store.entity_store import EntityStore
from campusdesk.views.projector import LiveView, ViewProjector
from campusdesk.views.scopes import build_predicate, scope_for

logger = logging.getLogger(__name__)


class WorkflowService:
    """
    Laundry and lost-and-found workflows over one entity store.

    Wires the store, the state machine, the claim arbitrator and the change
    feed together. Writes are pushed to live subscriptions before the
    command returns.
    """

    def __init__(self, store: Optional[EntityStore] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.store = store or EntityStore()
        self.machine = state_machine
        self.feed = ChangeFeed(self.store)
        self.arbitrator = ClaimArbitrator(self.store, self.machine)

    # ------------------------------------------------------------------
    # Laundry requests
    # ------------------------------------------------------------------

    async def create_laundry_request(
        self,
        session: Session,
        items: Sequence[str],
        pickup_time: datetime,
        notes: Optional[str] = None,
    ) -> LaundryRequest:
        """
        Create a pending laundry request owned by the session's actor.

        Raises:
            PermissionDenied: If the session is not a requester
            ValidationError: If the item list is empty or too long
        """
        if session.role != Role.REQUESTER:
            raise PermissionDenied("Only requesters can create laundry requests")

        cleaned = [item.strip() for item in items or []]
        if not cleaned or any(not item for item in cleaned):
            raise ValidationError("A laundry request needs at least one non-blank item")
        if len(cleaned) > self.settings.max_laundry_items:
            raise ValidationError(f"A laundry request holds at most {self.settings.max_laundry_items} items")

        try:
            request = LaundryRequest(
                owner_id=session.actor_id,
                owner_name=session.display_name,
                items=cleaned,
                requested_pickup_time=pickup_time,
                notes=(notes or "").strip() or None,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid laundry request: {e}") from e

        created = await self.store.create(request)
        logger.info(f"Laundry request {created.id} created by {session.actor_id} with {len(cleaned)} items")
        return created

    async def advance_laundry_status(
        self,
        session: Session,
        request_id: str,
        new_status: str,
        notes: Optional[str] = None,
    ) -> LaundryRequest:
        """
        Move a laundry request to its next status.

        Requesting the current status is a no-op and writes nothing.

        Raises:
            NotFound: If the request does not exist
            PermissionDenied: If the session may not advance requests
            InvalidTransition: If the edge is not in the transition table
            ConflictStale: If the request changed concurrently; re-read and retry
        """
        request = await self.store.get(EntityKind.LAUNDRY_REQUEST, request_id)
        target = self.machine.validate_transition(
            EntityKind.LAUNDRY_REQUEST, request.status, new_status, session.role
        )

        if target == request.status:
            logger.info(f"Laundry request {request_id} already {target.value}; nothing to do")
            return request

        changes: Dict[str, Any] = {"status": target}
        notes = (notes or "").strip() or None
        if notes:
            changes["notes"] = notes
        if target == LaundryStatus.DELIVERED:
            changes["delivered_at"] = utc_now()

        updated = await self.store.put(
            EntityKind.LAUNDRY_REQUEST, request_id, changes, expected_version=request.version
        )
        logger.info(
            f"Laundry request {request_id} moved {request.status.value} -> {target.value} by {session.actor_id}"
        )
        return updated

    async def get_request(self, session: Session, request_id: str) -> LaundryRequest:
        request = await self.store.get(EntityKind.LAUNDRY_REQUEST, request_id)
        if session.role == Role.REQUESTER and request.owner_id != session.actor_id:
            raise PermissionDenied("Requesters can only view their own laundry requests")
        return request

    async def list_requests(
        self, session: Session, status: Optional[str] = None, search: Optional[str] = None
    ) -> List[LaundryRequest]:
        return await self._list(session, EntityKind.LAUNDRY_REQUEST, status, search)

    async def subscribe_requests(
        self, session: Session, status: Optional[str] = None, search: Optional[str] = None
    ) -> Subscription:
        return await self._subscribe(session, EntityKind.LAUNDRY_REQUEST, status, search)

    # ------------------------------------------------------------------
    # Lost items
    # ------------------------------------------------------------------

    async def report_lost_item(
        self,
        session: Session,
        description: str,
        category: str,
        location: str,
        image_ref: Optional[str] = None,
        found_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> LostItem:
        """
        Log a found item as available for claiming.

        Raises:
            PermissionDenied: If the session is not staff
            ValidationError: If a field is blank or the category or location is unknown
        """
        if session.role not in STAFF_ROLES:
            raise PermissionDenied("Only handlers and auditors can report found items")

        try:
            item = LostItem(
                description=(description or "").strip(),
                category=self._canonical(category, self.settings.lost_item_categories, "category"),
                location=self._canonical(location, self.settings.lost_item_locations, "location"),
                reported_by=session.actor_id,
                image_ref=image_ref,
                found_at=found_at,
                notes=(notes or "").strip() or None,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid lost item: {e}") from e

        created = await self.store.create(item)
        logger.info(f"Lost item {created.id} reported by {session.actor_id} at {created.location}")
        return created

    async def submit_claim(
        self, session: Session, item_id: str, justification: str, contact_info: str
    ) -> ClaimRecord:
        return await self.arbitrator.submit_claim(session, item_id, justification, contact_info)

    async def decide_claim(
        self, session: Session, item_id: str, approved: bool, notes: Optional[str] = None
    ) -> LostItem:
        return await self.arbitrator.decide_claim(session, item_id, approved, notes)

    async def get_item(self, session: Session, item_id: str) -> LostItem:
        return await self.store.get(EntityKind.LOST_ITEM, item_id)

    async def list_items(
        self, session: Session, status: Optional[str] = None, search: Optional[str] = None
    ) -> List[LostItem]:
        return await self._list(session, EntityKind.LOST_ITEM, status, search)

    async def subscribe_items(
        self, session: Session, status: Optional[str] = None, search: Optional[str] = None
    ) -> Subscription:
        return await self._subscribe(session, EntityKind.LOST_ITEM, status, search)

    # ------------------------------------------------------------------
    # Live views and counters
    # ------------------------------------------------------------------

    def unsubscribe(self, subscription: Subscription) -> None:
        self.feed.unsubscribe(subscription)

    async def open_view(
        self,
        session: Session,
        kind: EntityKind,
        status: Optional[str] = None,
        search: Optional[str] = None,
        on_change: Optional[Callable[[ViewProjector], Any]] = None,
    ) -> LiveView:
        """Subscribe and keep a projector up to date in the background."""
        subscription = await self._subscribe(session, kind, status, search)
        return LiveView(self.feed, subscription, on_change=on_change).start()

    async def get_counters(
        self,
        session: Session,
        kind: EntityKind,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, int]:
        entities = await self._list(session, kind, status, search)
        return ViewProjector(kind, entities).counters

    async def get_analytics(self, session: Session) -> Analytics:
        if session.role != Role.AUDITOR:
            raise PermissionDenied("Only auditors can view analytics")

        requests = ViewProjector(EntityKind.LAUNDRY_REQUEST, await self.store.scan(EntityKind.LAUNDRY_REQUEST))
        items = ViewProjector(EntityKind.LOST_ITEM, await self.store.scan(EntityKind.LOST_ITEM))
        request_counts, item_counts = requests.counters, items.counters

        return Analytics(
            total_requests=requests.total,
            completed_requests=request_counts[LaundryStatus.DELIVERED.value],
            total_items=items.total,
            pending_claims=item_counts[LostItemStatus.CLAIMED.value],
            returned_items=item_counts[LostItemStatus.RETURNED.value],
        )

    # ------------------------------------------------------------------

    async def _list(
        self, session: Session, kind: EntityKind, status: Optional[str], search: Optional[str]
    ) -> List[Entity]:
        predicate = build_predicate(scope_for(session, kind, status, search))
        return newest_first(entity for entity in await self.store.scan(kind) if predicate(entity))

    async def _subscribe(
        self, session: Session, kind: EntityKind, status: Optional[str], search: Optional[str]
    ) -> Subscription:
        scope = scope_for(session, kind, status, search)
        subscription = await self.feed.subscribe(kind, build_predicate(scope))
        logger.info(f"{session.role.value} {session.actor_id} subscribed to {kind.value} ({subscription.id})")
        return subscription

    @staticmethod
    def _canonical(value: str, allowed: List[str], field: str) -> str:
        """Match ``value`` against a catalog case-insensitively; an empty catalog accepts anything."""
        cleaned = (value or "").strip()
        if not allowed:
            return cleaned
        for known in allowed:
            if known.lower() == cleaned.lower():
                return known
        raise ValidationError(f"Unknown {field} {value!r}. Valid values: {allowed}")
