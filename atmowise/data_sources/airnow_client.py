"""Helpers for fetching current observations from the EPA AirNow API (US only)."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from atmowise.data_sources.base import ReadingSource, ReadingUnavailable
from atmowise.data_sources.http import build_session
from atmowise.domain import PollutantReading, ReadingSourceName
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="airnow_client")

AIRNOW_CURRENT_URL = "https://www.airnowapi.org/aq/observation/latLong/current/"
AIRNOW_DISTANCE_MILES = 25

# Rough continental-US bounding box; AirNow has nothing outside it.
US_LAT_RANGE = (24.0, 49.0)
US_LON_RANGE = (-125.0, -66.0)

# AirNow ParameterName -> PollutantReading field
PARAMETER_FIELDS = {
    "pm2.5": "pm25",
    "pm10": "pm10",
    "o3": "o3",
    "ozone": "o3",
    "no2": "no2",
}

session = build_session("atmowise_airnow_cache")


def in_airnow_coverage(latitude: float, longitude: float) -> bool:
    """True when the coordinates fall inside the continental-US box AirNow serves."""
    return US_LAT_RANGE[0] <= latitude <= US_LAT_RANGE[1] and US_LON_RANGE[0] <= longitude <= US_LON_RANGE[1]


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_airnow_observations(
    observations: Iterable[Mapping[str, Any]],
    latitude: float,
    longitude: float,
) -> PollutantReading:
    """
    Collapse AirNow's per-pollutant observations into one reading.

    The overall AQI, category and dominant pollutant come from the
    observation with the highest AQI.
    """
    values: dict[str, Optional[float]] = {}
    max_aqi = 0
    dominant: Optional[str] = None
    category: Optional[str] = None
    seen = False

    for item in observations:
        seen = True
        param = str(item.get("ParameterName") or "")
        field = PARAMETER_FIELDS.get(param.lower())
        if field is not None and field not in values:
            values[field] = _number(item.get("Value"))
        aqi = _number(item.get("AQI"))
        if aqi is not None and aqi > max_aqi:
            max_aqi = int(aqi)
            dominant = param or None
            category = (item.get("Category") or {}).get("Name") or "Unknown"

    if not seen:
        raise ReadingUnavailable("AirNow returned no observations")

    return PollutantReading(
        pm25=values.get("pm25"),
        pm10=values.get("pm10"),
        o3=values.get("o3"),
        no2=values.get("no2"),
        aqi=max_aqi or None,
        timestamp=dt.datetime.now(dt.timezone.utc),
        source=ReadingSourceName.AIRNOW,
        latitude=latitude,
        longitude=longitude,
        category=category,
        dominant_pollutant=dominant,
    )


def fetch_airnow_reading(
    latitude: float,
    longitude: float,
    api_key: str,
    *,
    timeout: float = 10,
) -> PollutantReading:
    """Fetch current AirNow observations near the coordinates."""
    if not api_key:
        raise ReadingUnavailable("AirNow API key is not configured")
    if not in_airnow_coverage(latitude, longitude):
        raise ReadingUnavailable("Coordinates are outside AirNow coverage")

    params = {
        "format": "application/json",
        "latitude": f"{latitude:.4f}",
        "longitude": f"{longitude:.4f}",
        "distance": AIRNOW_DISTANCE_MILES,
        "API_KEY": api_key,
    }
    logger.debug(
        "Requesting AirNow observations",
        extra={"lat": latitude, "lon": longitude, "api_key": mask_secret(api_key)},
    )
    resp = session.get(AIRNOW_CURRENT_URL, params=params, timeout=timeout)
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, list):
        raise ReadingUnavailable("Unexpected AirNow response shape")
    return parse_airnow_observations(data, latitude, longitude)


@dataclass
class AirNowReadingSource(ReadingSource):
    """ReadingSource backed by AirNow current observations."""

    api_key: str
    timeout: float = 10
    name: str = "airnow"

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        """Fetch from AirNow."""
        return fetch_airnow_reading(latitude, longitude, self.api_key, timeout=self.timeout)
