"""In-memory snapshot store, intended for development, tests and Redis fallback."""

import threading
from typing import Optional

from atmowise.cache_store.base import CachePersistence, SnapshotPairs
from atmowise.cache_store.codec import decode_snapshot, encode_snapshot
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache_store/in_memory_cache_persistence")


class InMemoryCachePersistence(CachePersistence):
    """Thread-safe store that keeps encoded snapshots so restores see JSON-shaped data."""

    def __init__(self) -> None:
        logger.debug("Initializing InMemoryCachePersistence")
        self._snapshots: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def save(self, namespace: str, entries: SnapshotPairs, *, ttl_seconds: Optional[int] = None) -> bool:
        """Store the snapshot; the TTL is ignored because the process owns the memory."""
        encoded = encode_snapshot(entries)
        with self._lock:
            self._snapshots[namespace] = encoded
        return True

    def load(self, namespace: str) -> Optional[SnapshotPairs]:
        """Return the decoded snapshot, or None if nothing was saved."""
        with self._lock:
            raw = self._snapshots.get(namespace)
        if raw is None:
            return None
        return decode_snapshot(raw)

    def delete(self, namespace: str) -> None:
        """Remove a namespace's snapshot if present."""
        with self._lock:
            self._snapshots.pop(namespace, None)

    def namespaces(self) -> list[str]:
        """Names with a stored snapshot."""
        with self._lock:
            return sorted(self._snapshots)
