"""Domain vocabulary and strict schemas for air-quality risk classification.

This module defines the contract shared by the reading sources, the risk
classifier, the result cache and the HTTP layer: enums, pollutant readings,
sensitivity profiles and derived assessments. No interpretation logic lives
here beyond boundary normalization.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(BaseModel):
    """Immutable value object; unknown keys from upstream payloads are dropped."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class RiskStatus(str, Enum):
    """User-facing status for a classified reading."""
    GOOD = "good"
    MODERATE = "moderate"
    CAUTION = "caution"
    AVOID = "avoid"
    UNKNOWN = "unknown"


class AgeGroup(str, Enum):
    """Age bracket used for sensitivity escalation."""
    CHILD = "child"
    ADULT = "adult"
    ELDERLY = "elderly"


class ReadingSourceName(str, Enum):
    """Where a pollutant reading came from."""
    OPENWEATHER = "openweather"
    AIRNOW = "airnow"
    DATABASE = "database"
    DEMO = "demo"


class CacheStrategy(str, Enum):
    """Eviction ordering used when a cache is over its bound."""
    LRU = "lru"
    FIFO = "fifo"
    TTL_PRIORITY = "ttl-priority"


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class PollutantReading(_FrozenModel):
    """A single air-quality observation. Superseded, never mutated, on refresh."""
    pm25: Optional[float] = None
    pm10: Optional[float] = None
    o3: Optional[float] = None
    no2: Optional[float] = None
    aqi: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)
    source: Optional[ReadingSourceName] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: Optional[str] = None
    dominant_pollutant: Optional[str] = None


class SensitivityProfile(_FrozenModel):
    """Closed set of health flags that can raise a user's risk tier."""
    asthma: bool = False
    pregnant: bool = False
    copd: bool = False
    cardiopulmonary: bool = False
    age_group: AgeGroup = Field(default=AgeGroup.ADULT, validation_alias="ageGroup")

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @field_validator("age_group", mode="before")
    @classmethod
    def normalize_age_group(cls, v: Any) -> Any:
        """Map legacy labels ("senior", "kid") and blanks onto the enum."""
        if v is None or v == "":
            return AgeGroup.ADULT
        if isinstance(v, str):
            lowered = v.strip().lower()
            aliases = {"senior": "elderly", "older": "elderly", "kid": "child", "teen": "child"}
            return aliases.get(lowered, lowered)
        return v

    @field_validator("asthma", "pregnant", "copd", "cardiopulmonary", mode="before")
    @classmethod
    def none_is_false(cls, v: Any) -> Any:
        """Profiles stored as sparse JSON omit or null out unset flags."""
        return False if v is None else v


class RiskAssessment(_StrictBaseModel):
    """Derived classification of a reading for a given profile."""
    tier: Optional[int] = Field(default=None, ge=1, le=5)
    status: RiskStatus
    rationale: str = Field(min_length=1)


class AirQualityResult(_StrictBaseModel):
    """Reading plus assessment as returned to the presentation layer."""
    key: str
    reading: PollutantReading
    assessment: RiskAssessment
    generated_at: datetime
    cached: bool = False


class GeocodedLocation(_FrozenModel):
    """Coordinates resolved from a free-text address."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    label: str
    provider: Optional[str] = None


class LocationSearchResult(_StrictBaseModel):
    """Air quality for a searched address."""
    query: str
    location: GeocodedLocation
    air_quality: AirQualityResult


class GuidanceSeverity(str, Enum):
    """Severity label for health guidance responses."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class HealthGuidance(_StrictBaseModel):
    """Summary/action pair returned for a symptom note."""
    summary: str
    action: str
    severity: GuidanceSeverity
    emergency: bool = False
    source: str = "fallback"  # fallback, llm, emergency
