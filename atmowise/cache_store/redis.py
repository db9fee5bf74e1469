"""Redis-backed snapshot store for result caches."""

from typing import Optional

from atmowise.cache_store.base import CachePersistence, SnapshotPairs
from atmowise.cache_store.codec import decode_snapshot, encode_snapshot
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache_store/redis_cache_persistence")


class RedisCachePersistence(CachePersistence):
    """Stores each namespace's snapshot as one JSON value under `<prefix><namespace>`."""

    def __init__(self, client, prefix: str = "atmowise-cache-") -> None:
        """Initialize with a Redis client and key prefix."""
        logger.debug("Initializing RedisCachePersistence")
        self.client = client
        self.prefix = prefix

    def _key(self, namespace: str) -> str:
        """Return the Redis key for a namespace."""
        return f"{self.prefix}{namespace}"

    def save(self, namespace: str, entries: SnapshotPairs, *, ttl_seconds: Optional[int] = None) -> bool:
        """Write the snapshot, with an expiry when `ttl_seconds` is positive."""
        payload = encode_snapshot(entries)
        try:
            if ttl_seconds and ttl_seconds > 0:
                self.client.setex(self._key(namespace), int(ttl_seconds), payload)
            else:
                self.client.set(self._key(namespace), payload)
        except Exception as exc:
            logger.error("Failed to write cache snapshot to Redis: %s", exc)
            return False
        return True

    def load(self, namespace: str) -> Optional[SnapshotPairs]:
        """Fetch and decode a snapshot, or None if missing/corrupt/unreachable."""
        try:
            raw = self.client.get(self._key(namespace))
        except Exception as exc:
            logger.error("Failed to read cache snapshot from Redis: %s", exc)
            return None
        if not raw:
            return None
        return decode_snapshot(raw)

    def delete(self, namespace: str) -> None:
        """Delete a snapshot if present."""
        try:
            self.client.delete(self._key(namespace))
        except Exception as exc:
            logger.error("Failed to delete cache snapshot from Redis: %s", exc)

    def clear(self) -> None:
        """Best-effort removal of every snapshot under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:
            logger.error("Failed to clear cache snapshots from Redis: %s", exc)
