"""Bounded, TTL-aware result cache with pluggable eviction.

Entries expire lazily: every get/set/has/stats call first sweeps entries older
than the TTL, and set() additionally evicts by strategy (LRU, FIFO or
TTL-priority) when an insert would push the cache past `max_size`.

Timestamps are epoch milliseconds so snapshots written by one process can be
restored by another.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from atmowise.cache_store.base import CachePersistence, SnapshotPairs
from atmowise.domain import CacheStrategy
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="result_cache")

T = TypeVar("T")

DEFAULT_TTL_MS = 5 * 60 * 1000
DEFAULT_MAX_SIZE = 100


def _now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000.0


class CacheOptions(BaseModel):
    """Size, expiry and eviction settings for one cache namespace."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ttl_ms: int = Field(default=DEFAULT_TTL_MS, gt=0)
    max_size: int = Field(default=DEFAULT_MAX_SIZE, ge=1)
    strategy: CacheStrategy = CacheStrategy.LRU

    @field_validator("strategy", mode="before")
    @classmethod
    def accept_legacy_ttl_name(cls, v: Any) -> Any:
        """Older persisted configs call the TTL-priority strategy plain "ttl"."""
        if isinstance(v, str) and v.strip().lower() == "ttl":
            return CacheStrategy.TTL_PRIORITY
        return v


class CacheStats(BaseModel):
    """Diagnostic counters computed from the live (post-sweep) entries."""
    size: int
    max_size: int
    total_access: int
    avg_access: float
    hit_rate: float
    hits: int
    misses: int
    lookup_hit_rate: float


@dataclass
class CacheEntry(Generic[T]):
    """One cached payload with its bookkeeping."""
    key: str
    payload: T
    created_at: float
    last_accessed_at: float
    access_count: int = 1

    def age_ms(self, now: float) -> float:
        """Milliseconds since the entry was written."""
        return now - self.created_at

    def to_dict(self, payload: Any) -> dict:
        """Serializable form; `payload` is the already-dumped payload."""
        return {
            "payload": payload,
            "created_at": self.created_at,
            "last_accessed_at": self.last_accessed_at,
            "access_count": self.access_count,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict, payload: Any) -> "CacheEntry":
        """Rebuild an entry from its serialized form; timestamps must be finite."""
        created_at = float(data["created_at"])
        last_accessed_at = float(data.get("last_accessed_at") or created_at)
        if not (math.isfinite(created_at) and math.isfinite(last_accessed_at)):
            raise ValueError(f"Non-finite timestamp for cache entry '{key}'")
        return cls(
            key=key,
            payload=payload,
            created_at=created_at,
            last_accessed_at=last_accessed_at,
            access_count=int(data.get("access_count") or 1),
        )


class BoundedCache(Generic[T]):
    """
    Keyed store bounded by size and age.

    One instance per namespace; the owner decides whether it is shared.
    A threading.Lock guards the map so a background flusher can snapshot it
    while request handlers read and write.
    """

    def __init__(
        self,
        namespace: str,
        options: CacheOptions | None = None,
        *,
        persistence: CachePersistence | None = None,
        payload_type: Any = None,
    ) -> None:
        """Create the cache and, if a persistence backend is given, restore from it."""
        self.namespace = namespace
        self.options = options or CacheOptions()
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._payload_adapter = TypeAdapter(payload_type) if payload_type is not None else None
        logger.debug(
            "Initializing BoundedCache",
            extra={"namespace": namespace, "options": self.options.model_dump(mode="json")},
        )
        if persistence is not None:
            self.restore_from(persistence)

    def __len__(self) -> int:
        """Number of stored entries, expired or not."""
        with self._lock:
            return len(self._entries)

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        """True once an entry is strictly older than the TTL."""
        return entry.age_ms(now) > self.options.ttl_ms

    def _evict_expired(self, now: float) -> int:
        """Drop every expired entry; caller holds the lock."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Expired cache entries", extra={"namespace": self.namespace, "count": len(expired)})
        return len(expired)

    def _eviction_order(self, now: float) -> list[str]:
        """Keys sorted from first-to-evict to last for the configured strategy."""
        items = list(self._entries.items())
        strategy = self.options.strategy
        if strategy == CacheStrategy.FIFO:
            items.sort(key=lambda kv: kv[1].created_at)
        elif strategy == CacheStrategy.TTL_PRIORITY:
            # expired entries first, then oldest writes
            items.sort(key=lambda kv: (not self._is_expired(kv[1], now), kv[1].created_at))
        else:
            items.sort(key=lambda kv: kv[1].last_accessed_at)
        return [key for key, _entry in items]

    def _evict_by_strategy(self, now: float, *, reserve: int = 0) -> int:
        """Evict until `reserve` more entries fit under max_size; caller holds the lock."""
        limit = self.options.max_size - reserve
        excess = len(self._entries) - limit
        if excess <= 0:
            return 0
        for key in self._eviction_order(now)[:excess]:
            del self._entries[key]
        logger.debug(
            "Evicted cache entries",
            extra={"namespace": self.namespace, "count": excess, "strategy": self.options.strategy.value},
        )
        return excess

    def get(self, key: str) -> Optional[T]:
        """Return the payload for `key`, or None if missing or expired."""
        with self._lock:
            now = _now_ms()
            self._evict_expired(now)
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            entry.access_count += 1
            entry.last_accessed_at = now
            self._hits += 1
            return entry.payload

    def set(self, key: str, value: T) -> None:
        """Insert or overwrite `key`, evicting first if the bound would be exceeded."""
        with self._lock:
            now = _now_ms()
            self._evict_expired(now)
            if key in self._entries:
                # re-insert so map order follows write order
                del self._entries[key]
            else:
                self._evict_by_strategy(now, reserve=1)
            self._entries[key] = CacheEntry(
                key=key,
                payload=value,
                created_at=now,
                last_accessed_at=now,
                access_count=1,
            )

    def has(self, key: str) -> bool:
        """Existence check after the expiry sweep; does not touch access bookkeeping."""
        with self._lock:
            self._evict_expired(_now_ms())
            return key in self._entries

    def keys(self) -> list[str]:
        """Stored keys in insertion order, without an expiry sweep."""
        with self._lock:
            return list(self._entries)

    def remove(self, key: str) -> bool:
        """Remove `key`; return whether it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove every entry. Hit/miss counters are kept."""
        with self._lock:
            self._entries.clear()

    def is_expired(self, key: str) -> bool:
        """Report whether a stored entry has outlived the TTL, without sweeping."""
        with self._lock:
            entry = self._entries.get(key)
            return self._is_expired(entry, _now_ms()) if entry else False

    def stats(self) -> CacheStats:
        """Counters over the live entries (expired ones are swept first)."""
        with self._lock:
            self._evict_expired(_now_ms())
            size = len(self._entries)
            total_access = sum(entry.access_count for entry in self._entries.values())
            lookups = self._hits + self._misses
            return CacheStats(
                size=size,
                max_size=self.options.max_size,
                total_access=total_access,
                avg_access=total_access / size if size else 0.0,
                hit_rate=(total_access - size) / total_access if total_access > 0 else 0.0,
                hits=self._hits,
                misses=self._misses,
                lookup_hit_rate=self._hits / lookups if lookups else 0.0,
            )

    def _dump_payload(self, payload: T) -> Any:
        """Convert a payload into JSON-compatible data."""
        if isinstance(payload, BaseModel):
            return payload.model_dump(mode="json")
        if self._payload_adapter is not None:
            return self._payload_adapter.dump_python(payload, mode="json")
        return payload

    def _load_payload(self, raw: Any) -> T:
        """Rebuild a payload from persisted data (validated when a type is known)."""
        if self._payload_adapter is not None:
            return self._payload_adapter.validate_python(raw)
        return raw

    def snapshot(self) -> SnapshotPairs:
        """Ordered (key, entry) pairs suitable for a persistence backend."""
        with self._lock:
            return [(key, entry.to_dict(self._dump_payload(entry.payload))) for key, entry in self._entries.items()]

    def restore(self, pairs: Iterable[tuple[str, dict]]) -> int:
        """
        Load persisted pairs, overwriting same-named keys.

        Expiry is not checked here; stale entries disappear on the next
        get/set/has. Malformed pairs are skipped and logged. A snapshot
        larger than max_size is trimmed by the eviction strategy.
        """
        restored = 0
        with self._lock:
            for pair in pairs:
                try:
                    key, data = pair
                    entry = CacheEntry.from_dict(str(key), data, self._load_payload(data["payload"]))
                except Exception as exc:
                    logger.warning(
                        "Skipping malformed cache entry during restore",
                        extra={"namespace": self.namespace, "error": str(exc)},
                    )
                    continue
                self._entries[entry.key] = entry
                restored += 1
            self._evict_by_strategy(_now_ms())
        return restored

    def restore_from(self, persistence: CachePersistence) -> int:
        """Restore from a persistence backend; failures leave the cache memory-only."""
        try:
            pairs = persistence.load(self.namespace)
        except Exception as exc:
            logger.warning(
                "Cache restore failed; continuing in memory only",
                extra={"namespace": self.namespace, "error": str(exc)},
            )
            return 0
        if not pairs:
            return 0
        restored = self.restore(pairs)
        logger.info("Restored cache entries", extra={"namespace": self.namespace, "count": restored})
        return restored
