"""Application configuration helpers.

Credentials only ever come from the environment: `SERPAPI_API_KEY` and
`OPENAI_API_KEY` are billable keys and must never be hardcoded.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    serpapi_api_key: str
    openai_api_key: str
    database_url: str
    intent_model: str = "gpt-4o-mini"
    provider_timeout: float = 10.0
    min_shops_threshold: int = 10
    default_radius_meters: int = 50000
    intent_cache_ttl: float = 24 * 60 * 60
    port: int = 8080


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    serpapi_api_key = os.getenv("SERPAPI_API_KEY", "")
    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    intent_model = os.getenv("INTENT_MODEL", "gpt-4o-mini")
    provider_timeout = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
    min_shops_threshold = int(os.getenv("MIN_SHOPS_THRESHOLD", "10"))
    default_radius_meters = int(os.getenv("DEFAULT_RADIUS_METERS", "50000"))
    intent_cache_ttl = float(os.getenv("INTENT_CACHE_TTL_SECONDS", str(24 * 60 * 60)))
    port = int(os.getenv("PORT", "8080"))

    if not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if not serpapi_api_key:
        logger.warning("SERPAPI_API_KEY is not configured; discovery and geocoding will fail.")
    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; every query will be classified as general.")

    return Settings(
        serpapi_api_key=serpapi_api_key,
        openai_api_key=openai_api_key,
        database_url=database_url,
        intent_model=intent_model,
        provider_timeout=provider_timeout,
        min_shops_threshold=min_shops_threshold,
        default_radius_meters=default_radius_meters,
        intent_cache_ttl=intent_cache_ttl,
        port=port,
    )
