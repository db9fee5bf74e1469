"""Ordered fallback across reading sources, ending at deterministic demo data."""

from __future__ import annotations

from typing import Optional, Sequence

from atmowise.data_sources.base import ReadingSource
from atmowise.data_sources.demo import DemoReadingSource
from atmowise.domain import PollutantReading
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/multi_source")


def _source_name(source: ReadingSource) -> str:
    return getattr(source, "name", None) or type(source).__name__


class FallbackReadingSource(ReadingSource):
    """
    Try each source in order and return the first reading.

    Failures (network errors, empty responses, missing keys) are logged and
    the next source is tried. The final fallback is expected not to raise;
    with the default demo fallback, fetch_reading always returns a reading.
    """

    name = "multi"

    def __init__(self, sources: Sequence[ReadingSource], fallback: Optional[ReadingSource] = None) -> None:
        self.sources = list(sources)
        self.fallback = fallback or DemoReadingSource()

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        """Return the first successful reading, falling back to the final source."""
        for source in self.sources:
            name = _source_name(source)
            try:
                reading = source.fetch_reading(latitude, longitude)
            except Exception as exc:
                logger.warning(
                    "Reading source failed; trying next",
                    extra={"source": name, "lat": latitude, "lon": longitude, "error": str(exc)},
                )
                continue
            if reading is None:
                logger.warning("Reading source returned nothing; trying next", extra={"source": name})
                continue
            logger.debug("Reading source succeeded", extra={"source": name})
            return reading

        logger.info(
            "All reading sources failed; using fallback",
            extra={"fallback": _source_name(self.fallback), "lat": latitude, "lon": longitude},
        )
        return self.fallback.fetch_reading(latitude, longitude)
