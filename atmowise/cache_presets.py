"""Named cache namespaces with their default bounds.

Each preset pairs a namespace with size/TTL defaults; TTLs can be overridden
from Settings so deployments can tune freshness without code changes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from atmowise import config
from atmowise.cache_store.base import CachePersistence
from atmowise.domain import AirQualityResult
from atmowise.result_cache import BoundedCache, CacheOptions

AIR_QUALITY = "air-quality"
LOCATIONS = "locations"
TIMELINE = "timeline"
USER_DATA = "user-data"

PRESET_MAX_SIZES: Dict[str, int] = {
    AIR_QUALITY: 50,
    LOCATIONS: 20,
    TIMELINE: 30,
    USER_DATA: 10,
}

_TTL_SETTING_NAMES: Dict[str, str] = {
    AIR_QUALITY: "air_quality_cache_ttl_seconds",
    LOCATIONS: "location_cache_ttl_seconds",
    TIMELINE: "timeline_cache_ttl_seconds",
    USER_DATA: "user_data_cache_ttl_seconds",
}

PRESET_NAMESPACES = tuple(PRESET_MAX_SIZES)


def preset_options(namespace: str, settings: config.Settings | None = None) -> CacheOptions:
    """CacheOptions for a preset namespace; unknown names raise KeyError."""
    settings = settings or config.settings
    max_size = PRESET_MAX_SIZES[namespace]
    ttl_seconds = getattr(settings, _TTL_SETTING_NAMES[namespace])
    return CacheOptions(
        ttl_ms=int(ttl_seconds * 1000),
        max_size=max_size,
        strategy=settings.default_cache_strategy,
    )


def _build(
    namespace: str,
    settings: config.Settings | None,
    persistence: Optional[CachePersistence],
    payload_type: Any = None,
) -> BoundedCache:
    return BoundedCache(
        namespace,
        preset_options(namespace, settings),
        persistence=persistence,
        payload_type=payload_type,
    )


def air_quality_cache(
    settings: config.Settings | None = None, persistence: Optional[CachePersistence] = None
) -> BoundedCache[AirQualityResult]:
    """Classified readings keyed by (coordinates, user)."""
    return _build(AIR_QUALITY, settings, persistence, AirQualityResult)


def location_cache(
    settings: config.Settings | None = None, persistence: Optional[CachePersistence] = None
) -> BoundedCache:
    return _build(LOCATIONS, settings, persistence)


def timeline_cache(
    settings: config.Settings | None = None, persistence: Optional[CachePersistence] = None
) -> BoundedCache:
    return _build(TIMELINE, settings, persistence)


def user_data_cache(
    settings: config.Settings | None = None, persistence: Optional[CachePersistence] = None
) -> BoundedCache:
    return _build(USER_DATA, settings, persistence)


PRESET_FACTORIES = {
    AIR_QUALITY: air_quality_cache,
    LOCATIONS: location_cache,
    TIMELINE: timeline_cache,
    USER_DATA: user_data_cache,
}
