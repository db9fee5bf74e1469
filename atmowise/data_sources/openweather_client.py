"""Helpers for fetching current air pollution from the OpenWeather API."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from atmowise.data_sources.base import ReadingSource, ReadingUnavailable
from atmowise.data_sources.http import build_session
from atmowise.domain import PollutantReading, ReadingSourceName
from atmowise.risk_classifier import aqi_category, dominant_pollutant, openweather_index_to_aqi
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="openweather_client")

OPENWEATHER_AIR_URL = "https://api.openweathermap.org/data/2.5/air_pollution"

session = build_session("atmowise_openweather_cache")


def _component(components: Mapping[str, Any], name: str) -> Optional[float]:
    """Return a numeric component value or None."""
    value = components.get(name)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric OpenWeather component", extra={"component": name, "value": value})
        return None


def _observed_at(item: Mapping[str, Any]) -> dt.datetime:
    """Observation time from the epoch `dt` field, or now if it is missing."""
    epoch = item.get("dt")
    if isinstance(epoch, (int, float)) and not isinstance(epoch, bool):
        return dt.datetime.fromtimestamp(epoch, tz=dt.timezone.utc)
    return dt.datetime.now(dt.timezone.utc)


def parse_openweather_payload(data: Mapping[str, Any], latitude: float, longitude: float) -> PollutantReading:
    """Convert an OpenWeather air_pollution response into a PollutantReading."""
    items = data.get("list") or []
    if not items:
        raise ReadingUnavailable("OpenWeather returned no air quality data")
    item = items[0]
    components = item.get("components") or {}
    aqi = openweather_index_to_aqi((item.get("main") or {}).get("aqi"))

    reading = PollutantReading(
        pm25=_component(components, "pm2_5"),
        pm10=_component(components, "pm10"),
        o3=_component(components, "o3"),
        no2=_component(components, "no2"),
        aqi=aqi,
        timestamp=_observed_at(item),
        source=ReadingSourceName.OPENWEATHER,
        latitude=latitude,
        longitude=longitude,
        category=aqi_category(aqi),
    )
    return reading.model_copy(update={"dominant_pollutant": dominant_pollutant(reading)})


def fetch_openweather_reading(
    latitude: float,
    longitude: float,
    api_key: str,
    *,
    timeout: float = 10,
) -> PollutantReading:
    """Fetch the current air pollution reading for the given coordinates."""
    if not api_key:
        raise ReadingUnavailable("OpenWeather API key is not configured")

    params = {"lat": latitude, "lon": longitude, "appid": api_key}
    logger.debug(
        "Requesting OpenWeather air pollution",
        extra={"lat": latitude, "lon": longitude, "api_key": mask_secret(api_key)},
    )
    resp = session.get(OPENWEATHER_AIR_URL, params=params, timeout=timeout)
    resp.raise_for_status()
    return parse_openweather_payload(resp.json(), latitude, longitude)


@dataclass
class OpenWeatherReadingSource(ReadingSource):
    """ReadingSource backed by the OpenWeather air_pollution endpoint."""

    api_key: str
    timeout: float = 10
    name: str = "openweather"

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        """Fetch from OpenWeather."""
        return fetch_openweather_reading(latitude, longitude, self.api_key, timeout=self.timeout)
