"""Shared protocol and types for cache persistence backends."""

from typing import List, Optional, Protocol, Tuple

SnapshotPairs = List[Tuple[str, dict]]

SNAPSHOT_VERSION = 1


class CachePersistence(Protocol):
    """Protocol for anything that can store and return cache snapshots."""

    def save(self, namespace: str, entries: SnapshotPairs, *, ttl_seconds: Optional[int] = None) -> bool:
        """Persist the snapshot for a namespace; return False on failure."""

    def load(self, namespace: str) -> Optional[SnapshotPairs]:
        """Return the last snapshot for a namespace, or None if absent/unreadable."""

    def delete(self, namespace: str) -> None:
        """Drop a namespace's snapshot without raising if it is absent."""
