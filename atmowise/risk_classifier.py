"""Deterministic air-quality risk classification.

Turns a PollutantReading plus an optional SensitivityProfile into a
RiskAssessment. Pure functions only: no I/O, no randomness, and malformed
upstream values degrade to the unknown status instead of raising.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Sequence

from atmowise.domain import AgeGroup, PollutantReading, RiskAssessment, RiskStatus, SensitivityProfile

# Upper bounds (inclusive) for levels 1..4; anything above the last is level 5.
PM25_BREAKPOINTS: Sequence[float] = (12.0, 35.0, 55.0, 150.0)
AQI_BREAKPOINTS: Sequence[float] = (50.0, 100.0, 150.0, 200.0)

MAX_LEVEL = 5

RATIONALE_UNAVAILABLE = "Air quality data unavailable"
RATIONALE_GOOD = "Air quality is good. Perfect for outdoor activities."
RATIONALE_MODERATE = "Air quality is acceptable for most people."
RATIONALE_CAUTION = (
    "Moderate to unhealthy levels detected. Sensitive individuals should limit outdoor activities."
)
RATIONALE_CAUTION_ASTHMA = "Poor air quality. Limit outdoor activities and use inhaler if needed."
RATIONALE_AVOID = "Unhealthy air quality. Avoid outdoor activities."

# OpenWeather reports a 1-5 index; the app works on the US 0-500 scale.
OPENWEATHER_INDEX_TO_AQI: Mapping[int, int] = {1: 50, 2: 100, 3: 150, 4: 200, 5: 300}

_NO_PROFILE = SensitivityProfile()


def _valid_measure(value: Any) -> float | None:
    """Return a usable concentration, or None for absent/negative/NaN/inf values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def _level_from_breakpoints(value: float, breakpoints: Sequence[float]) -> int:
    """Return the 1-based level of the first breakpoint that bounds the value."""
    for idx, upper in enumerate(breakpoints, start=1):
        if value <= upper:
            return idx
    return MAX_LEVEL


def base_level(reading: PollutantReading) -> int | None:
    """Level 1-5 from PM2.5, falling back to AQI; None when neither is usable."""
    pm25 = _valid_measure(reading.pm25)
    if pm25 is not None:
        return _level_from_breakpoints(pm25, PM25_BREAKPOINTS)
    aqi = _valid_measure(reading.aqi)
    if aqi is not None:
        return _level_from_breakpoints(aqi, AQI_BREAKPOINTS)
    return None


def is_sensitive(profile: SensitivityProfile) -> bool:
    """True when any escalating condition applies to the profile."""
    return profile.asthma or profile.pregnant or profile.age_group == AgeGroup.ELDERLY


def escalate(level: int, profile: SensitivityProfile) -> int:
    """Raise a level by one step for sensitive profiles; never compounds."""
    if level >= 2 and is_sensitive(profile):
        return min(level + 1, MAX_LEVEL)
    return level


def _assessment_for_level(level: int, profile: SensitivityProfile) -> RiskAssessment:
    """Map a final level to status and rationale text."""
    if level == 1:
        return RiskAssessment(tier=1, status=RiskStatus.GOOD, rationale=RATIONALE_GOOD)
    if level == 2:
        return RiskAssessment(tier=2, status=RiskStatus.MODERATE, rationale=RATIONALE_MODERATE)
    if level in (3, 4):
        rationale = RATIONALE_CAUTION_ASTHMA if profile.asthma else RATIONALE_CAUTION
        return RiskAssessment(tier=level, status=RiskStatus.CAUTION, rationale=rationale)
    return RiskAssessment(tier=MAX_LEVEL, status=RiskStatus.AVOID, rationale=RATIONALE_AVOID)


def classify_reading(reading: PollutantReading, profile: Optional[SensitivityProfile] = None) -> RiskAssessment:
    """Pure function: classify a reading for a (possibly missing) sensitivity profile."""
    profile = profile or _NO_PROFILE
    level = base_level(reading)
    if level is None:
        return RiskAssessment(tier=None, status=RiskStatus.UNKNOWN, rationale=RATIONALE_UNAVAILABLE)
    return _assessment_for_level(escalate(level, profile), profile)


def aqi_category(aqi: float | None) -> str:
    """US EPA category label for an AQI value."""
    value = _valid_measure(aqi)
    if value is None:
        return "Unknown"
    if value <= 50:
        return "Good"
    if value <= 100:
        return "Moderate"
    if value <= 150:
        return "Unhealthy for Sensitive Groups"
    if value <= 200:
        return "Unhealthy"
    if value <= 300:
        return "Very Unhealthy"
    return "Hazardous"


def dominant_pollutant(reading: PollutantReading) -> str | None:
    """Name of the pollutant with the largest concentration, if any were measured."""
    candidates = [
        ("PM2.5", _valid_measure(reading.pm25)),
        ("PM10", _valid_measure(reading.pm10)),
        ("O3", _valid_measure(reading.o3)),
        ("NO2", _valid_measure(reading.no2)),
    ]
    measured = [(name, value) for name, value in candidates if value is not None]
    if not measured:
        return None
    # max() keeps the first of equal values, so ties favour PM2.5
    return max(measured, key=lambda item: item[1])[0]


def openweather_index_to_aqi(index: Any) -> int:
    """Convert OpenWeather's 1-5 index to the US AQI scale (unknown -> 50)."""
    try:
        return OPENWEATHER_INDEX_TO_AQI.get(int(index), 50)
    except (TypeError, ValueError):
        return 50
