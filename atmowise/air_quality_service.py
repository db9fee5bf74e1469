"""Check-air-quality orchestration: cache, reading source, profile, classifier.

A lookup is keyed by rounded coordinates plus the user, so two users at the
same spot can receive different tiers. On a miss the configured reading source
is queried, the reading is classified against the user's profile and the
result is cached.
"""

from __future__ import annotations

import math
from typing import List, Optional

from atmowise.domain import (
    AirQualityResult,
    GeocodedLocation,
    LocationSearchResult,
    PollutantReading,
    SensitivityProfile,
    utc_now,
)
from atmowise.data_sources.base import ReadingSource
from atmowise.data_sources.geocoding import AddressGeocoder
from atmowise.profiles import ProfileStore, coerce_profile
from atmowise.result_cache import BoundedCache
from atmowise.risk_classifier import classify_reading
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="air_quality_service")

COORDINATE_PRECISION = 4
ANONYMOUS_USER = "anonymous"


def validate_coordinates(latitude: float, longitude: float) -> tuple[float, float]:
    """Return the coordinates as floats or raise ValueError when out of range."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        raise ValueError("Latitude and longitude must be numbers")
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError) as exc:
        raise ValueError("Latitude and longitude must be numbers") from exc
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError("Latitude and longitude must be finite")
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"Latitude {lat} is outside [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise ValueError(f"Longitude {lon} is outside [-180, 180]")
    return lat, lon


class AirQualityService:
    """Ties together a reading source, a profile store and the result caches."""

    def __init__(
        self,
        reading_source: ReadingSource,
        profile_store: ProfileStore,
        cache: BoundedCache[AirQualityResult],
        *,
        profile_cache: Optional[BoundedCache] = None,
        history_cache: Optional[BoundedCache] = None,
        location_cache: Optional[BoundedCache] = None,
        geocoder: Optional[AddressGeocoder] = None,
    ) -> None:
        self.reading_source = reading_source
        self.profile_store = profile_store
        self.cache = cache
        self.profile_cache = profile_cache
        self.history_cache = history_cache
        self.location_cache = location_cache
        self.geocoder = geocoder or AddressGeocoder()

    @staticmethod
    def cache_key(latitude: float, longitude: float, user_id: Optional[str] = None) -> str:
        """Stable key: coordinates rounded to 4 decimals plus the user id."""
        return f"{latitude:.{COORDINATE_PRECISION}f},{longitude:.{COORDINATE_PRECISION}f}|{user_id or ANONYMOUS_USER}"

    def profile_for(self, user_id: Optional[str]) -> Optional[SensitivityProfile]:
        """Look up a profile; lookup failures are logged and treated as no profile."""
        if not user_id:
            return None
        if self.profile_cache is not None:
            cached = self.profile_cache.get(user_id)
            if cached is not None:
                return coerce_profile(cached)
        try:
            profile = self.profile_store.get_profile(user_id)
        except Exception as exc:
            logger.warning("Profile lookup failed; classifying without escalation", extra={"user_id": user_id, "error": str(exc)})
            return None
        if profile is not None and self.profile_cache is not None:
            self.profile_cache.set(user_id, profile.model_dump(mode="json"))
        return profile

    def check(
        self,
        latitude: float,
        longitude: float,
        user_id: Optional[str] = None,
        refresh: bool = False,
    ) -> AirQualityResult:
        """Return the classified reading for the coordinates, from cache when fresh."""
        lat, lon = validate_coordinates(latitude, longitude)
        key = self.cache_key(lat, lon, user_id)

        if not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Air quality cache hit", extra={"key": key})
                return cached.model_copy(update={"cached": True})

        reading = self.reading_source.fetch_reading(lat, lon)
        assessment = classify_reading(reading, self.profile_for(user_id))
        result = AirQualityResult(
            key=key,
            reading=reading,
            assessment=assessment,
            generated_at=utc_now(),
        )
        self.cache.set(key, result)
        logger.info(
            "Classified air quality",
            extra={"key": key, "status": assessment.status.value, "tier": assessment.tier},
        )
        return result

    @staticmethod
    def location_key(query: str) -> str:
        """Case- and whitespace-insensitive key for an address query."""
        return " ".join(query.lower().split())

    def locate(self, query: str) -> GeocodedLocation:
        """Geocode an address through the location cache."""
        key = self.location_key(query or "")
        if not key:
            raise ValueError("Address query is required")
        if self.location_cache is not None:
            cached = self.location_cache.get(key)
            if cached is not None:
                return GeocodedLocation.model_validate(cached)
        location = self.geocoder.geocode(query)
        if self.location_cache is not None:
            self.location_cache.set(key, location.model_dump(mode="json"))
        return location

    def search(self, query: str, user_id: Optional[str] = None, refresh: bool = False) -> LocationSearchResult:
        """Air quality for a free-text address (geocode, then check)."""
        location = self.locate(query)
        result = self.check(location.latitude, location.longitude, user_id=user_id, refresh=refresh)
        return LocationSearchResult(query=query.strip(), location=location, air_quality=result)

    def update_profile(self, user_id: str, profile) -> SensitivityProfile:
        """Store a profile and drop cached results that were classified under the old one."""
        stored = self.profile_store.set_profile(user_id, profile)
        self.invalidate_user(user_id)
        return stored

    def invalidate_user(self, user_id: str) -> int:
        """Remove every cached result and profile entry belonging to the user."""
        removed = 0
        for key in self.cache.keys():
            # coordinates never contain "|", so everything after the first one is the user id
            if key.partition("|")[2] == user_id and self.cache.remove(key):
                removed += 1
        if self.profile_cache is not None:
            self.profile_cache.remove(user_id)
        return removed

    def history(self, latitude: float, longitude: float, *, days: int = 7) -> Optional[List[PollutantReading]]:
        """Stored readings near the coordinates; None when the source keeps no history."""
        lat, lon = validate_coordinates(latitude, longitude)
        fetch_history = getattr(self.reading_source, "history", None)
        if fetch_history is None:
            return None
        key = f"{self.cache_key(lat, lon)}|{days}d"
        if self.history_cache is not None:
            cached = self.history_cache.get(key)
            if cached is not None:
                return [PollutantReading.model_validate(item) for item in cached]
        readings = fetch_history(lat, lon, days=days)
        if self.history_cache is not None:
            self.history_cache.set(key, [reading.model_dump(mode="json") for reading in readings])
        return readings
