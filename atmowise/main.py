"""FastAPI application setup for AtmoWise."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .air_quality_service import AirQualityService
from .api import router as api_router
from .cache_manager import CacheRegistry
from .cache_presets import LOCATIONS, TIMELINE, USER_DATA
from .config import settings
from .data_sources import AddressGeocoder, build_reading_source
from .profiles import InMemoryProfileStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the caches and services for the process and run the cache flusher."""
    registry = CacheRegistry(settings=settings)
    app.state.registry = registry
    app.state.profile_store = InMemoryProfileStore()
    app.state.service = AirQualityService(
        build_reading_source(settings),
        app.state.profile_store,
        registry.air_quality,
        profile_cache=registry.get(USER_DATA),
        history_cache=registry.get(TIMELINE),
        location_cache=registry.get(LOCATIONS),
        geocoder=AddressGeocoder(settings.geocode_api_key, timeout=settings.request_timeout_seconds),
    )
    if settings.llm_guidance_enabled:
        from .ollama_client import ollama_client

        app.state.guidance_client = ollama_client
    else:
        app.state.guidance_client = None

    registry.start()
    logger.info("AtmoWise started")
    try:
        yield
    finally:
        registry.stop()
        logger.info("AtmoWise stopped")


app = FastAPI(title="AtmoWise", lifespan=lifespan)

# API routes
app.include_router(api_router, prefix="/v1")
