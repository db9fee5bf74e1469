"""Address-to-coordinates lookup via geocode.maps.co with a Nominatim fallback."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import requests

from atmowise.data_sources.http import build_session
from atmowise.domain import GeocodedLocation
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="geocoding")

GEOCODE_MAPS_URL = "https://geocode.maps.co/search"
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "AtmoWise/1.0"

# Addresses rarely move.
GEOCODE_EXPIRE_AFTER_SECONDS = 24 * 60 * 60

session = build_session("atmowise_geocode_cache", expire_after=GEOCODE_EXPIRE_AFTER_SECONDS)


class LocationNotFound(LookupError):
    """No geocoding provider could resolve the address."""


def parse_search_results(data: Any, query: str, provider: str) -> Optional[GeocodedLocation]:
    """First hit of a geocode.maps.co / Nominatim search response, or None."""
    if not isinstance(data, list) or not data:
        return None
    first = data[0]
    if not isinstance(first, dict):
        return None
    try:
        return GeocodedLocation(
            latitude=float(first["lat"]),
            longitude=float(first["lon"]),
            label=first.get("display_name") or query,
            provider=provider,
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Ignoring malformed geocoding result", extra={"provider": provider, "error": str(exc)})
        return None


def _providers(query: str, api_key: Optional[str]) -> list[tuple[str, str, dict]]:
    providers = []
    if api_key:
        providers.append(("geocode.maps.co", GEOCODE_MAPS_URL, {"q": query, "api_key": api_key}))
    providers.append(("nominatim", NOMINATIM_URL, {"q": query, "format": "json", "limit": 1}))
    return providers


def geocode_address(query: str, api_key: Optional[str] = None, *, timeout: float = 10) -> GeocodedLocation:
    """
    Resolve an address, trying each provider in turn.

    geocode.maps.co is only tried when an API key is configured. Provider
    errors are logged and the next one is tried; LocationNotFound is raised
    when none returns a usable hit.
    """
    query = (query or "").strip()
    if not query:
        raise ValueError("Address query is required")

    for provider, url, params in _providers(query, api_key):
        logger.debug(
            "Trying geocoding provider",
            extra={"provider": provider, "query": query, "api_key": mask_secret(api_key)},
        )
        try:
            resp = session.get(url, params=params, headers={"User-Agent": USER_AGENT}, timeout=timeout)
            resp.raise_for_status()
            location = parse_search_results(resp.json(), query, provider)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Geocoding provider failed", extra={"provider": provider, "error": str(exc)})
            continue
        if location is not None:
            logger.info("Geocoded address", extra={"provider": provider, "label": location.label})
            return location
        logger.debug("Geocoding provider had no match", extra={"provider": provider})

    raise LocationNotFound(f"Location not found: {query}")


@dataclass
class AddressGeocoder:
    """Configured geocoder handed to the service layer."""

    api_key: Optional[str] = None
    timeout: float = 10

    def geocode(self, query: str) -> GeocodedLocation:
        return geocode_address(query, self.api_key, timeout=self.timeout)
