"""Application configuration pulled from environment variables via pydantic."""
import os
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the AtmoWise service."""
    model_config = SettingsConfigDict(env_prefix="ATMOWISE_", extra="ignore")

    reading_source: str = "multi"  # options: multi, openweather, airnow, demo, postgres
    openweather_api_key: str | None = None
    airnow_api_key: str | None = None
    geocode_api_key: str | None = None
    readings_database_url: str = "sqlite:///./atmowise.db"
    reading_max_age_minutes: int = 30
    request_timeout_seconds: float = 10.0

    api_key: str | None = None

    cache_redis_url: str | None = None
    cache_redis_prefix: str = "atmowise-cache-"
    cache_flush_interval_seconds: float = 30.0
    default_cache_strategy: str = "lru"
    air_quality_cache_ttl_seconds: int = 5 * 60
    location_cache_ttl_seconds: int = 24 * 60 * 60
    timeline_cache_ttl_seconds: int = 10 * 60
    user_data_cache_ttl_seconds: int = 15 * 60

    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "phi4-mini"
    ollama_options: dict = Field(
        default_factory=lambda: {
            "temperature": float(os.getenv("ATMOWISE_OLLAMA_TEMPERATURE", 0.3)),
            "num_predict": int(os.getenv("ATMOWISE_OLLAMA_NUM_PREDICT", 200)),
        }
    )
    ollama_retries: int = 1
    ollama_retry_backoff_seconds: float = 0.5
    ollama_timeout_seconds: float = 60.0
    llm_guidance_enabled: bool = True
    max_note_chars: int = 2000

    @field_validator("ollama_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("reading_source", "default_cache_strategy", mode="after")
    @classmethod
    def lower_case(cls, v: str) -> str:
        """Accept option names in any case."""
        return str(v).strip().lower()


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
