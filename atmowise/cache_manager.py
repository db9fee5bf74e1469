"""Owns the process-wide caches, their persistence backend and the flusher."""

from __future__ import annotations

from typing import Dict, Optional

import redis

from atmowise import config
from atmowise.cache_flusher import CacheFlusher
from atmowise.cache_presets import AIR_QUALITY, PRESET_FACTORIES
from atmowise.cache_store import InMemoryCachePersistence, RedisCachePersistence
from atmowise.cache_store.base import CachePersistence
from atmowise.result_cache import BoundedCache, CacheStats
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache_manager")


def build_cache_persistence(settings: config.Settings | None = None) -> CachePersistence:
    """Return Redis-backed persistence when configured and reachable, else in-memory."""
    settings = settings or config.settings
    if settings.cache_redis_url:
        try:
            client = redis.Redis.from_url(settings.cache_redis_url)
            client.ping()
            logger.info("Using Redis cache persistence")
            return RedisCachePersistence(client, prefix=settings.cache_redis_prefix)
        except Exception as exc:
            logger.warning("Redis unavailable; falling back to in-memory cache persistence: %s", exc)
    logger.info("Using in-memory cache persistence")
    return InMemoryCachePersistence()


class CacheRegistry:
    """Explicit owner of the preset caches; replaces module-level singletons."""

    def __init__(
        self,
        persistence: Optional[CachePersistence] = None,
        settings: config.Settings | None = None,
    ) -> None:
        self.settings = settings or config.settings
        self.persistence = persistence if persistence is not None else build_cache_persistence(self.settings)
        self.caches: Dict[str, BoundedCache] = {
            name: factory(self.settings, self.persistence) for name, factory in PRESET_FACTORIES.items()
        }
        self.flusher = CacheFlusher(
            self.caches.values(),
            self.persistence,
            interval_seconds=self.settings.cache_flush_interval_seconds,
        )

    @property
    def air_quality(self) -> BoundedCache:
        return self.caches[AIR_QUALITY]

    def get(self, namespace: str) -> Optional[BoundedCache]:
        return self.caches.get(namespace)

    def stats(self) -> Dict[str, CacheStats]:
        """Stats for every namespace."""
        return {name: cache.stats() for name, cache in self.caches.items()}

    def clear(self, namespace: str) -> bool:
        """Clear one namespace in memory and in persistence; False if unknown."""
        cache = self.caches.get(namespace)
        if cache is None:
            return False
        cache.clear()
        try:
            self.persistence.delete(namespace)
        except Exception as exc:
            logger.warning("Failed to delete persisted cache", extra={"namespace": namespace, "error": str(exc)})
        return True

    def start(self) -> None:
        self.flusher.start()

    def stop(self) -> None:
        self.flusher.stop(final_flush=True)
