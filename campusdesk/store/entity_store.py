"""
Entity Store

Authoritative, versioned record keeper for laundry requests and lost items.

Every accepted write bumps ``version`` and is handed to the registered
listeners before the write call returns. Writes to one entity hold a
per-entity lock from the version check through notification, so listeners
observe commits of one entity in version order even when the backend
suspends after committing.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from campusdesk.core.errors import ConflictStale, NotFound, UpstreamUnavailable, ValidationError
from campusdesk.core.models import ENTITY_MODELS, Entity, utc_now
from campusdesk.core.states import EntityKind
from campusdesk.store.backend import MemoryBackend, StoreBackend

logger = logging.getLogger(__name__)

# Called with (previous, current); previous is None for a newly created entity.
CommitListener = Callable[[Optional[Entity], Entity], None]

# Fields owned by the store itself
_PROTECTED_FIELDS = frozenset({"id", "version", "created_at", "updated_at"})

_UPSTREAM_ERRORS = (ConnectionError, TimeoutError, OSError)


class EntityStore:
    """
    Versioned read/write over a ``StoreBackend``.

    ``put`` is optimistic: the caller passes the version it read and the
    write only lands if nobody else wrote in between.
    """

    def __init__(self, backend: Optional[StoreBackend] = None):
        self.backend = backend or MemoryBackend()
        self._listeners: List[CommitListener] = []
        self._locks: Dict[Tuple[EntityKind, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[EntityKind, str], int] = {}

    def add_listener(self, listener: CommitListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: CommitListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def get(self, kind: EntityKind, entity_id: str) -> Entity:
        """
        Read the current record.

        Raises:
            NotFound: If no entity of that kind has the id
            UpstreamUnavailable: If the backend cannot be reached
        """
        entity = await self._call(self.backend.get(kind, entity_id))
        if entity is None:
            raise NotFound(f"{kind.value} {entity_id} not found")
        return entity

    async def scan(self, kind: EntityKind) -> List[Entity]:
        return await self._call(self.backend.scan(kind))

    async def create(self, entity: Entity) -> Entity:
        """
        Insert a new entity at version 1.

        Raises:
            ConflictStale: If an entity with the same id already exists
        """
        now = utc_now()
        stored = self._rebuild(entity, {}, version=1, created_at=now, updated_at=now)

        async with self._entity_lock(stored.kind, stored.id):
            inserted = await self._call(self.backend.insert(stored))
            if not inserted:
                raise ConflictStale(f"{entity.kind.value} {entity.id} already exists", expected_version=None)

            logger.info(f"Created {stored.kind.value} {stored.id}")
            self._notify(None, stored)
        return stored

    async def put(
        self,
        kind: EntityKind,
        entity_id: str,
        changes: Mapping[str, Any],
        expected_version: int,
    ) -> Entity:
        """
        Apply ``changes`` if the stored version is still ``expected_version``.

        Args:
            kind: Entity kind
            entity_id: Id of the entity to write
            changes: Field updates; the whole record is revalidated afterwards
            expected_version: Version the caller based its changes on

        Returns:
            The stored entity with its new version

        Raises:
            NotFound: If the entity does not exist
            ConflictStale: If someone else wrote first; nothing is written
            ValidationError: If the updated record breaks a model invariant
            UpstreamUnavailable: If the backend cannot be reached
        """
        protected = _PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise ValidationError(f"Fields {sorted(protected)} are managed by the store")

        async with self._entity_lock(kind, entity_id):
            current = await self.get(kind, entity_id)
            if current.version != expected_version:
                raise ConflictStale(
                    f"{kind.value} {entity_id} is at version {current.version}, expected {expected_version}",
                    expected_version=expected_version,
                    actual_version=current.version,
                )

            updated = self._rebuild(
                current,
                changes,
                version=current.version + 1,
                updated_at=max(utc_now(), current.updated_at),
            )

            written = await self._call(self.backend.compare_and_set(updated, expected_version))
            if not written:
                raise ConflictStale(
                    f"{kind.value} {entity_id} changed while writing version {updated.version}",
                    expected_version=expected_version,
                )

            self._notify(current, updated)
        return updated

    @asynccontextmanager
    async def _entity_lock(self, kind: EntityKind, entity_id: str) -> AsyncIterator[None]:
        """Serialize writes to one entity; the lock is dropped once nobody waits on it."""
        key = (kind, entity_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _rebuild(self, entity: Entity, changes: Mapping[str, Any], **managed: Any) -> Entity:
        model = ENTITY_MODELS[entity.kind]
        data = entity.model_dump()
        data.update(changes)
        data.update(managed)
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {entity.kind.value}: {e}") from e

    def _notify(self, previous: Optional[Entity], current: Entity) -> None:
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                # Already committed
                logger.exception(f"Commit listener failed for {current.kind.value} {current.id}")

    async def _call(self, awaitable):
        try:
            return await awaitable
        except _UPSTREAM_ERRORS as e:
            logger.error(f"Store backend unavailable: {e}")
            raise UpstreamUnavailable(f"Store backend unavailable: {e}") from e
