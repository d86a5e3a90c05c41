"""Resource store interface and implementations."""

from ledgerctl.store.base import ResourceStore
from ledgerctl.store.memory import MemoryStore

__all__ = ["MemoryStore", "ResourceStore"]
