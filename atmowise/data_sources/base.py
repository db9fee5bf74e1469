"""Interfaces and helpers for air-quality reading sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from atmowise.domain import PollutantReading


class ReadingUnavailable(LookupError):
    """Raised when a source answered but had no usable reading for the location."""


class ReadingSource(Protocol):
    """Interface for anything that can provide a current pollutant reading."""

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        """Return the current reading for the coordinates or raise."""
        ...


@dataclass
class CallableReadingSource(ReadingSource):
    """Wrap a plain function so it can be swapped for other backends."""

    fetch: Callable[[float, float], PollutantReading]
    name: str = "callable"

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        """Delegate to the configured callable."""
        return self.fetch(latitude, longitude)
