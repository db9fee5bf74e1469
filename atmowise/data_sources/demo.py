"""Deterministic demo readings used when every live source is unavailable."""

from __future__ import annotations

from dataclasses import dataclass

from atmowise.data_sources.base import ReadingSource
from atmowise.domain import PollutantReading, ReadingSourceName, utc_now
from atmowise.risk_classifier import aqi_category

DEMO_PM25 = 25.0
DEMO_PM10 = 45.0
DEMO_O3 = 60.0
DEMO_NO2 = 30.0


def _demo_aqi(pm25: float) -> int:
    """Coarse PM2.5 -> AQI step used for the demo payload."""
    if pm25 > 150.4:
        return 300
    if pm25 > 55.4:
        return 200
    if pm25 > 35.4:
        return 150
    if pm25 > 12:
        return 100
    return 75


def demo_reading(latitude: float, longitude: float) -> PollutantReading:
    """Same pollutant values for every location; never raises."""
    aqi = _demo_aqi(DEMO_PM25)
    return PollutantReading(
        pm25=DEMO_PM25,
        pm10=DEMO_PM10,
        o3=DEMO_O3,
        no2=DEMO_NO2,
        aqi=aqi,
        timestamp=utc_now(),
        source=ReadingSourceName.DEMO,
        latitude=latitude,
        longitude=longitude,
        category=aqi_category(aqi),
        dominant_pollutant="PM2.5",
    )


@dataclass
class DemoReadingSource(ReadingSource):
    name: str = "demo"

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        return demo_reading(latitude, longitude)
