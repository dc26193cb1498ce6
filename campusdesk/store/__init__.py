# Store module - versioned entity storage
from .backend import StoreBackend, MemoryBackend
from .entity_store import EntityStore, CommitListener

__all__ = ["StoreBackend", "MemoryBackend", "EntityStore", "CommitListener"]
