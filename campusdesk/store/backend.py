"""
Store Backends

The persistent store the entity store is built on. Anything offering keyed
reads, insert-if-absent and a version compare-and-set can back the engine.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from campusdesk.core.models import Entity
from campusdesk.core.states import EntityKind


class StoreBackend(ABC):
    """
    Durable key-by-id storage with compare-and-set writes.

    Implementations signal an unreachable store by raising ``ConnectionError``,
    ``TimeoutError`` or another ``OSError``.
    """

    @abstractmethod
    async def get(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        ...

    @abstractmethod
    async def insert(self, entity: Entity) -> bool:
        """Store a new record. Returns False if the id is already taken."""

    @abstractmethod
    async def compare_and_set(self, entity: Entity, expected_version: int) -> bool:
        """Replace the record only if its stored version equals ``expected_version``."""

    @abstractmethod
    async def scan(self, kind: EntityKind) -> List[Entity]:
        ...


class MemoryBackend(StoreBackend):
    """
    In-process backend.

    None of the methods suspend, so each one is atomic with respect to
    every other task on the event loop.
    """

    def __init__(self):
        self._records: Dict[EntityKind, Dict[str, Entity]] = {kind: {} for kind in EntityKind}

    async def get(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        return self._records[kind].get(entity_id)

    async def insert(self, entity: Entity) -> bool:
        table = self._records[entity.kind]
        if entity.id in table:
            return False
        table[entity.id] = entity
        return True

    async def compare_and_set(self, entity: Entity, expected_version: int) -> bool:
        table = self._records[entity.kind]
        stored = table.get(entity.id)
        if stored is None or stored.version != expected_version:
            return False
        table[entity.id] = entity
        return True

    async def scan(self, kind: EntityKind) -> List[Entity]:
        return list(self._records[kind].values())
