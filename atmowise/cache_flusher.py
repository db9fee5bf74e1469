"""Background thread that periodically saves cache snapshots."""

from __future__ import annotations

import threading
from typing import Iterable, Optional

from atmowise.cache_store.base import CachePersistence
from atmowise.result_cache import BoundedCache
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="cache_flusher")

DEFAULT_INTERVAL_SECONDS = 30.0


class CacheFlusher:
    """
    Snapshot a set of caches into a persistence backend every `interval_seconds`.

    A failed save is logged and simply retried on the next tick. `stop()`
    performs a final flush by default so a clean shutdown loses nothing.
    """

    def __init__(
        self,
        caches: Iterable[BoundedCache],
        persistence: CachePersistence,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.caches = list(caches)
        self.persistence = persistence
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def flush_now(self) -> int:
        """Save every cache once; return how many saves succeeded."""
        saved = 0
        for cache in self.caches:
            ttl_seconds = max(1, int(cache.options.ttl_ms // 1000))
            try:
                ok = self.persistence.save(cache.namespace, cache.snapshot(), ttl_seconds=ttl_seconds)
            except Exception as exc:
                logger.warning(
                    "Cache flush failed; will retry next interval",
                    extra={"namespace": cache.namespace, "error": str(exc)},
                )
                continue
            if ok:
                saved += 1
            else:
                logger.warning("Cache flush not persisted", extra={"namespace": cache.namespace})
        return saved

    def _run(self) -> None:
        logger.info("Cache flusher started", extra={"interval_seconds": self.interval_seconds})
        while not self._stop_event.wait(self.interval_seconds):
            self.flush_now()
        logger.info("Cache flusher stopped")

    def start(self) -> None:
        """Start the daemon thread; a second call while running is a no-op."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="atmowise-cache-flusher", daemon=True)
        self._thread.start()

    def stop(self, *, final_flush: bool = True, timeout: float = 5.0) -> None:
        """Signal the thread to exit, wait for it, and optionally flush once more."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if final_flush:
            self.flush_now()
