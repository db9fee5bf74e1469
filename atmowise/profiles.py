"""Per-user sensitivity profiles, validated at the store boundary."""

from __future__ import annotations

import threading
from typing import Any, Mapping, Optional, Protocol

from atmowise.domain import SensitivityProfile
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="profiles")


class ProfileStore(Protocol):
    """Interface for looking up and saving sensitivity profiles."""

    def get_profile(self, user_id: str) -> Optional[SensitivityProfile]:
        """Return the user's profile, or None if none is stored."""
        ...

    def set_profile(self, user_id: str, profile: SensitivityProfile | Mapping[str, Any]) -> SensitivityProfile:
        """Validate and store a profile, returning the stored value."""
        ...

    def delete_profile(self, user_id: str) -> bool:
        """Remove a stored profile."""
        ...


def coerce_profile(profile: SensitivityProfile | Mapping[str, Any]) -> SensitivityProfile:
    """Validate raw profile data (legacy `senior` age group, unknown keys dropped)."""
    if isinstance(profile, SensitivityProfile):
        return profile
    return SensitivityProfile.model_validate(dict(profile))


class InMemoryProfileStore(ProfileStore):
    """Thread-safe dict-backed profile store."""

    def __init__(self) -> None:
        self._profiles: dict[str, SensitivityProfile] = {}
        self._lock = threading.Lock()

    def get_profile(self, user_id: str) -> Optional[SensitivityProfile]:
        with self._lock:
            return self._profiles.get(user_id)

    def set_profile(self, user_id: str, profile: SensitivityProfile | Mapping[str, Any]) -> SensitivityProfile:
        validated = coerce_profile(profile)
        with self._lock:
            self._profiles[user_id] = validated
        logger.debug("Stored sensitivity profile", extra={"user_id": user_id})
        return validated

    def delete_profile(self, user_id: str) -> bool:
        with self._lock:
            return self._profiles.pop(user_id, None) is not None
