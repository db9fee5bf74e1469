"""Shared HTTP session construction for the upstream air-quality APIs."""

import requests_cache
from retry_requests import retry

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/http")

# Upstream responses are reused for five minutes.
DEFAULT_EXPIRE_AFTER_SECONDS = 300
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.2


def build_session(
    cache_name: str,
    *,
    expire_after: int = DEFAULT_EXPIRE_AFTER_SECONDS,
    retries: int = DEFAULT_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
):
    """Return a cached requests session wrapped with retry/backoff."""
    cache_session = requests_cache.CachedSession(cache_name, expire_after=expire_after)
    logger.debug("Built HTTP session", extra={"cache_name": cache_name, "retries": retries})
    return retry(cache_session, retries=retries, backoff_factor=backoff_factor)
