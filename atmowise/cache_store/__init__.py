"""Persistence backends for result-cache snapshots."""

from .base import CachePersistence, SnapshotPairs
from .memory import InMemoryCachePersistence
from .redis import RedisCachePersistence

__all__ = [
    "CachePersistence",
    "SnapshotPairs",
    "InMemoryCachePersistence",
    "RedisCachePersistence",
]
