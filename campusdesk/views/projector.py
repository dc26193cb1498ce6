"""
View Projector

Keeps a role-scoped list of entities and per-status counters in step with
a live subscription.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from campusdesk.core.models import Entity, newest_first
from campusdesk.core.states import STATUS_ENUMS, EntityKind
from campusdesk.feed.change_feed import ChangeEvent, ChangeFeed, ChangeType, Subscription

logger = logging.getLogger(__name__)


class ViewProjector:
    """
    Ordered visible list plus a counter per status.

    Counters are maintained incrementally: every applied event moves one
    unit between status buckets, so after each event they equal a full
    recount of the visible entities.
    """

    def __init__(self, kind: EntityKind, snapshot: Iterable[Entity] = ()):
        self.kind = kind
        self._entities: Dict[str, Entity] = {}
        self._counts = {status: 0 for status in STATUS_ENUMS[kind]}
        for entity in snapshot:
            self._insert(entity)

    @property
    def entities(self) -> List[Entity]:
        return newest_first(self._entities.values())

    @property
    def counters(self) -> Dict[str, int]:
        return {status.value: count for status, count in self._counts.items()}

    @property
    def total(self) -> int:
        return len(self._entities)

    def get(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def recount(self) -> Dict[str, int]:
        """Counters computed from scratch; always equal to ``counters``."""
        counts = {status.value: 0 for status in STATUS_ENUMS[self.kind]}
        for entity in self._entities.values():
            counts[entity.status.value] += 1
        return counts

    def apply(self, event: ChangeEvent) -> bool:
        """
        Fold one event into the view.

        Returns:
            True if the visible list changed
        """
        if event.kind != self.kind:
            return False

        existing = self._entities.get(event.entity_id)
        if existing is not None and event.version <= existing.version:
            return False

        if event.change_type == ChangeType.REMOVED:
            if existing is None:
                return False
            self._remove(existing)
            return True

        if existing is not None:
            self._remove(existing)
        self._insert(event.entity)
        return True

    def _insert(self, entity: Entity) -> None:
        self._entities[entity.id] = entity
        self._counts[entity.status] += 1

    def _remove(self, entity: Entity) -> None:
        del self._entities[entity.id]
        self._counts[entity.status] -= 1


class LiveView:
    """
    A projector fed by a subscription in a background task.

    ``on_change`` (sync or async) is called with the projector after each
    event that changed the view.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        subscription: Subscription,
        on_change: Optional[Callable[[ViewProjector], Any]] = None,
    ):
        self.feed = feed
        self.subscription = subscription
        self.projector = ViewProjector(subscription.kind, subscription.snapshot)
        self.on_change = on_change
        self._task: Optional[asyncio.Task] = None
        self._busy = False

    @property
    def entities(self) -> List[Entity]:
        return self.projector.entities

    @property
    def counters(self) -> Dict[str, int]:
        return self.projector.counters

    def start(self) -> "LiveView":
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self

    async def settle(self) -> None:
        """Wait until every event queued so far has been applied."""
        while self._task is not None and not self._task.done() and (self.subscription.pending or self._busy):
            await asyncio.sleep(0)

    async def close(self) -> None:
        self.feed.unsubscribe(self.subscription)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            event = await self.subscription.next_event()
            if event is None:
                return
            self._busy = True
            try:
                if self.projector.apply(event) and self.on_change is not None:
                    result = self.on_change(self.projector)
                    if inspect.isawaitable(result):
                        await result
            except Exception:
                logger.exception(f"View callback failed for subscription {self.subscription.id}")
            finally:
                self._busy = False
