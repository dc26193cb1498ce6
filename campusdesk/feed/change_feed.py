"""
Change Feed

Fans out committed entity writes to live subscriptions.

Each subscription gets a snapshot of everything it can currently see and
then every later change to a matching entity, in that entity's commit
order. Subscriptions have their own unbounded queues, so a slow consumer
never holds up a writer or another consumer.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel

from campusdesk.core.models import Entity, new_id, newest_first
from campusdesk.core.states import EntityKind
from campusdesk.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

Predicate = Callable[[Entity], bool]

# Wakes a consumer blocked on an empty queue when the subscription closes
_CLOSED = object()


def _match_all(entity: Entity) -> bool:
    return True


class ChangeType(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


class ChangeEvent(BaseModel):
    """One change to one entity, as seen by one subscription."""
    change_type: ChangeType
    kind: EntityKind
    entity_id: str
    version: int
    entity: Entity

    class Config:
        frozen = True


class Subscription:
    """
    Handle returned by ``ChangeFeed.subscribe``.

    Iterate it with ``async for`` to receive events; iteration ends once the
    subscription is closed.
    """

    def __init__(self, kind: EntityKind, predicate: Predicate):
        self.id = new_id()
        self.kind = kind
        self.predicate = predicate
        self.snapshot: List[Entity] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._versions: Dict[str, int] = {}
        # Holds events committed while the snapshot is being read
        self._buffer: Optional[List[ChangeEvent]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Events queued and not yet consumed."""
        return 0 if self._closed else self._queue.qsize()

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event

    async def next_event(self) -> Optional[ChangeEvent]:
        """Wait for the next event. Returns None once the subscription is closed."""
        if self._closed:
            return None
        item = await self._queue.get()
        if self._closed or item is _CLOSED:
            return None
        return item

    def _offer(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        if self._buffer is not None:
            self._buffer.append(event)
            return
        self._enqueue(event)

    def _enqueue(self, event: ChangeEvent) -> None:
        if event.version <= self._versions.get(event.entity_id, 0):
            return  # already reflected in the snapshot
        self._versions[event.entity_id] = event.version
        self._queue.put_nowait(event)

    def _complete_snapshot(self, visible: Iterable[Entity], scanned: Iterable[Entity]) -> None:
        if self._closed:
            return
        self.snapshot = newest_first(visible)
        self._versions = {entity.id: entity.version for entity in scanned}
        buffered, self._buffer = self._buffer or [], None
        for event in buffered:
            self._enqueue(event)

    def _close(self) -> None:
        self._closed = True
        self._buffer = None
        self._versions.clear()
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(_CLOSED)


class ChangeFeed:
    """
    Distributes store commits to subscriptions.

    USAGE:
        feed = ChangeFeed(store)
        sub = await feed.subscribe(EntityKind.LOST_ITEM, lambda item: True)
        render(sub.snapshot)
        async for event in sub:
            apply(event)
        ...
        feed.unsubscribe(sub)
    """

    def __init__(self, store: EntityStore):
        self.store = store
        self._subscriptions: Dict[EntityKind, Dict[str, Subscription]] = {kind: {} for kind in EntityKind}
        store.add_listener(self.publish)

    async def subscribe(self, kind: EntityKind, predicate: Optional[Predicate] = None) -> Subscription:
        """
        Open a live subscription.

        Args:
            kind: Entity kind to watch
            predicate: Scope filter; entities it rejects are never delivered

        Returns:
            Subscription whose ``snapshot`` holds the currently matching
            entities, newest first
        """
        subscription = Subscription(kind, predicate or _match_all)
        # Register first so commits racing the snapshot read are buffered, not lost
        self._subscriptions[kind][subscription.id] = subscription
        try:
            scanned = await self.store.scan(kind)
        except Exception:
            self.unsubscribe(subscription)
            raise

        visible = [entity for entity in scanned if self._matches(subscription, entity)]
        subscription._complete_snapshot(visible, scanned)

        logger.info(
            f"Subscription {subscription.id} opened on {kind.value} "
            f"with {len(subscription.snapshot)} entities in snapshot"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Close a subscription. Nothing is delivered to it after this returns."""
        removed = self._subscriptions[subscription.kind].pop(subscription.id, None)
        subscription._close()
        if removed is not None:
            logger.info(f"Subscription {subscription.id} closed")

    def subscriber_count(self, kind: Optional[EntityKind] = None) -> int:
        if kind is not None:
            return len(self._subscriptions[kind])
        return sum(len(subs) for subs in self._subscriptions.values())

    def close(self) -> None:
        for subs in self._subscriptions.values():
            for subscription in list(subs.values()):
                self.unsubscribe(subscription)
        self.store.remove_listener(self.publish)

    def publish(self, previous: Optional[Entity], current: Entity) -> None:
        """Store listener: route one commit to every interested subscription."""
        for subscription in list(self._subscriptions[current.kind].values()):
            event = self._classify(subscription, previous, current)
            if event is not None:
                subscription._offer(event)

    def _classify(
        self,
        subscription: Subscription,
        previous: Optional[Entity],
        current: Entity,
    ) -> Optional[ChangeEvent]:
        was_visible = previous is not None and self._matches(subscription, previous)
        is_visible = self._matches(subscription, current)

        if was_visible and is_visible:
            change_type = ChangeType.UPDATED
        elif is_visible:
            change_type = ChangeType.ADDED
        elif was_visible:
            change_type = ChangeType.REMOVED
        else:
            return None

        return ChangeEvent(
            change_type=change_type,
            kind=current.kind,
            entity_id=current.id,
            version=current.version,
            entity=current,
        )

    def _matches(self, subscription: Subscription, entity: Entity) -> bool:
        try:
            return bool(subscription.predicate(entity))
        except Exception:
            logger.exception(f"Predicate of subscription {subscription.id} failed on {entity.kind.value} {entity.id}")
            return False
