"""Persistence adapters."""

from sharpedge.storage.base import SignalStore
from sharpedge.storage.memory import InMemoryStore
from sharpedge.storage.sqlite import SqliteStore

__all__ = [
    "SignalStore",
    "InMemoryStore",
    "SqliteStore",
]
