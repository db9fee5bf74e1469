"""Factory helpers for choosing a reading source at startup."""

from __future__ import annotations

from typing import List

from atmowise import config
from atmowise.data_sources.airnow_client import AirNowReadingSource
from atmowise.data_sources.base import ReadingSource
from atmowise.data_sources.demo import DemoReadingSource
from atmowise.data_sources.multi_source import FallbackReadingSource
from atmowise.data_sources.openweather_client import OpenWeatherReadingSource
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="data_sources/factory")


DEFAULT_SOURCE_NAME = "multi"


def _live_sources(settings: config.Settings) -> List[ReadingSource]:
    """OpenWeather first (global), then AirNow (US), each only when keyed."""
    timeout = settings.request_timeout_seconds
    sources: List[ReadingSource] = []
    if settings.openweather_api_key:
        sources.append(OpenWeatherReadingSource(settings.openweather_api_key, timeout=timeout))
    if settings.airnow_api_key:
        sources.append(AirNowReadingSource(settings.airnow_api_key, timeout=timeout))
    return sources


def build_reading_source(settings: config.Settings | None = None) -> ReadingSource:
    """Instantiate the configured reading source."""
    settings = settings or config.settings
    source = (settings.reading_source or DEFAULT_SOURCE_NAME).lower()

    if source == "multi":
        live = _live_sources(settings)
        logger.info("Using multi-source reading fallback", extra={"sources": [s.name for s in live]})
        return FallbackReadingSource(live)

    if source == "openweather":
        if not settings.openweather_api_key:
            raise ValueError("openweather_api_key must be set for the OpenWeather source")
        logger.info("Using OpenWeather reading source")
        return OpenWeatherReadingSource(settings.openweather_api_key, timeout=settings.request_timeout_seconds)

    if source == "airnow":
        if not settings.airnow_api_key:
            raise ValueError("airnow_api_key must be set for the AirNow source")
        logger.info("Using AirNow reading source")
        return AirNowReadingSource(settings.airnow_api_key, timeout=settings.request_timeout_seconds)

    if source == "demo":
        logger.info("Using demo reading source")
        return DemoReadingSource()

    if source == "postgres":
        from .postgres_source import SqlReadingSource

        db_url = settings.readings_database_url
        if not db_url:
            raise ValueError("readings_database_url must be set for the database source")
        logger.info("Using database reading source", extra={"db_url": mask_db_url(db_url)})
        return SqlReadingSource.from_url(
            db_url,
            upstream=FallbackReadingSource(_live_sources(settings)),
            max_age_minutes=settings.reading_max_age_minutes,
        )

    raise ValueError(f"Unknown reading source '{source}'")
