"""
Test backends that control when store calls suspend.
"""
import asyncio

from campusdesk.store.backend import MemoryBackend


class YieldingBackend(MemoryBackend):
    """Gives other tasks a turn on every read, like a real network store."""

    async def get(self, kind, entity_id):
        await asyncio.sleep(0)
        return await super().get(kind, entity_id)


class GatedScanBackend(MemoryBackend):
    """
    Holds scans at a gate so tests can commit writes mid-snapshot.

    read_first=True reads the records, then waits (the snapshot comes back
    stale). read_first=False waits, then reads (the snapshot already
    contains the racing writes).
    """

    def __init__(self, read_first: bool):
        super().__init__()
        self.read_first = read_first
        self.scan_started = asyncio.Event()
        self.release = asyncio.Event()

    async def scan(self, kind):
        self.scan_started.set()
        if self.read_first:
            records = await super().scan(kind)
            await self.release.wait()
            return records
        await self.release.wait()
        return await super().scan(kind)


class BrokenBackend(MemoryBackend):
    """Every call fails as if the store were unreachable."""

    async def get(self, kind, entity_id):
        raise ConnectionError("store offline")

    async def insert(self, entity):
        raise ConnectionError("store offline")

    async def scan(self, kind):
        raise TimeoutError("store timed out")


class SlowAckBackend(MemoryBackend):
    """Commits at once but is slow to acknowledge the first compare-and-set."""

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay
        self.committed = asyncio.Event()

    async def compare_and_set(self, entity, expected_version):
        written = await super().compare_and_set(entity, expected_version)
        if written and not self.committed.is_set():
            self.committed.set()
            await asyncio.sleep(self.delay)
        return written


class InterleavedWriteBackend(MemoryBackend):
    """Another writer lands between the store's version check and its first compare-and-set."""

    def __init__(self):
        super().__init__()
        self.interleave = True

    async def compare_and_set(self, entity, expected_version):
        if self.interleave:
            self.interleave = False
            table = self._records[entity.kind]
            stored = table[entity.id]
            table[entity.id] = stored.model_copy(update={"version": stored.version + 1})
        return await super().compare_and_set(entity, expected_version)
