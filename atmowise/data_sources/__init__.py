"""Reading sources for plugging different air-quality backends."""

from .base import CallableReadingSource, ReadingSource, ReadingUnavailable
from .demo import DemoReadingSource, demo_reading
from .factory import build_reading_source
from .multi_source import FallbackReadingSource
from .postgres_source import SqlReadingSource
from .openweather_client import OpenWeatherReadingSource, fetch_openweather_reading
from .airnow_client import AirNowReadingSource, fetch_airnow_reading, in_airnow_coverage
from .geocoding import AddressGeocoder, LocationNotFound, geocode_address

__all__ = [
    "build_reading_source",
    "ReadingSource",
    "ReadingUnavailable",
    "CallableReadingSource",
    "DemoReadingSource",
    "demo_reading",
    "FallbackReadingSource",
    "SqlReadingSource",
    "OpenWeatherReadingSource",
    "fetch_openweather_reading",
    "AirNowReadingSource",
    "fetch_airnow_reading",
    "in_airnow_coverage",
    "AddressGeocoder",
    "LocationNotFound",
    "geocode_address",
]
