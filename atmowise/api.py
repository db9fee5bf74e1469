"""HTTP API for air-quality checks, risk classification and health guidance."""

import hmac
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from .air_quality_service import AirQualityService
from .cache_manager import CacheRegistry
from .config import settings
from .data_sources.geocoding import LocationNotFound
from .domain import (
    AirQualityResult,
    HealthGuidance,
    LocationSearchResult,
    PollutantReading,
    RiskAssessment,
    SensitivityProfile,
)
from .guidance import build_guidance
from .result_cache import CacheStats
from .risk_classifier import classify_reading
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="api")


def require_api_key(x_api_key: str | None = Header(default=None)):
    """
    Validate the X-API-Key header against the configured api_key.

    With no key configured every request is allowed (dev/default mode).
    """
    if not settings.api_key:
        logger.debug("No API key configured; allowing all requests")
        return

    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(dependencies=[Depends(require_api_key)])


def get_service(request: Request) -> AirQualityService:
    return request.app.state.service


def get_registry(request: Request) -> CacheRegistry:
    return request.app.state.registry


class RiskRequest(BaseModel):
    """Reading plus an inline profile or a user id whose stored profile applies."""
    reading: PollutantReading
    profile: Optional[SensitivityProfile] = None
    user_id: Optional[str] = None


class GuidanceRequest(BaseModel):
    """Symptom note with optional location and user context."""
    note: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    user_id: Optional[str] = None
    symptom_severity: int = Field(default=2, ge=1, le=5)


class HistoryResponse(BaseModel):
    readings: List[PollutantReading]


class CacheClearResponse(BaseModel):
    namespace: str
    cleared: bool


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    """Liveness plus the active backends."""
    service = get_service(request)
    registry = get_registry(request)
    return {
        "status": "ok",
        "reading_source": getattr(service.reading_source, "name", type(service.reading_source).__name__),
        "cache_persistence": type(registry.persistence).__name__,
        "flusher_running": registry.flusher.running,
    }


@router.get("/air", response_model=AirQualityResult)
def check_air(
    lat: float = Query(...),
    lon: float = Query(...),
    user_id: Optional[str] = Query(default=None),
    refresh: bool = Query(default=False),
    service: AirQualityService = Depends(get_service),
):
    """Classified air quality for the coordinates, personalized when a user id is given."""
    try:
        return service.check(lat, lon, user_id=user_id, refresh=refresh)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Air quality check failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Air quality data unavailable") from exc


@router.get("/air/history", response_model=HistoryResponse)
def air_history(
    lat: float = Query(...),
    lon: float = Query(...),
    days: int = Query(default=7, ge=1, le=90),
    service: AirQualityService = Depends(get_service),
):
    """Stored readings near the coordinates (database source only)."""
    try:
        readings = service.history(lat, lon, days=days)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if readings is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reading history is not available")
    return HistoryResponse(readings=readings)


@router.get("/air/search", response_model=LocationSearchResult)
def search_air(
    q: str = Query(...),
    user_id: Optional[str] = Query(default=None),
    refresh: bool = Query(default=False),
    service: AirQualityService = Depends(get_service),
):
    """Geocode an address and return its classified air quality."""
    if not q.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Address query parameter is required")
    try:
        return service.search(q, user_id=user_id, refresh=refresh)
    except LocationNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Location search failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to search location") from exc


@router.post("/risk", response_model=RiskAssessment)
def classify_risk(req: RiskRequest, service: AirQualityService = Depends(get_service)):
    """Classify a caller-supplied reading without touching the cache."""
    profile = req.profile
    if profile is None and req.user_id:
        profile = service.profile_for(req.user_id)
    return classify_reading(req.reading, profile)


@router.put("/profile/{user_id}", response_model=SensitivityProfile)
def put_profile(
    user_id: str,
    payload: Dict[str, Any] = Body(...),
    service: AirQualityService = Depends(get_service),
):
    """Store a user's sensitivity profile; cached results for the user are dropped."""
    try:
        return service.update_profile(user_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/profile/{user_id}", response_model=SensitivityProfile)
def get_profile(user_id: str, service: AirQualityService = Depends(get_service)):
    profile = service.profile_for(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


@router.get("/cache/stats", response_model=Dict[str, CacheStats])
def cache_stats(registry: CacheRegistry = Depends(get_registry)):
    return registry.stats()


@router.delete("/cache/{namespace}", response_model=CacheClearResponse)
def clear_cache(namespace: str, registry: CacheRegistry = Depends(get_registry)):
    """Clear one cache namespace in memory and in persistence."""
    if not registry.clear(namespace):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown cache namespace '{namespace}'")
    return CacheClearResponse(namespace=namespace, cleared=True)


@router.post("/guidance", response_model=HealthGuidance)
def guidance(req: GuidanceRequest, request: Request):
    """Summary/action guidance for a symptom note."""
    note = (req.note or "").strip()
    if not note:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Note is required")
    if len(note) > settings.max_note_chars:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Note too long (max {settings.max_note_chars} characters)",
        )

    service = get_service(request)
    reading = None
    if req.lat is not None and req.lon is not None:
        try:
            reading = service.check(req.lat, req.lon, user_id=req.user_id).reading
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except Exception as exc:
            logger.warning("Reading unavailable for guidance; continuing without it: %s", exc)

    return build_guidance(
        note,
        reading=reading,
        profile=service.profile_for(req.user_id),
        symptom_severity=req.symptom_severity,
        client=request.app.state.guidance_client,
        max_note_chars=settings.max_note_chars,
    )
