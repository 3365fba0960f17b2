"""
Application configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Pollution API (measurement source)
    POLLU_API_BASE_URL: str = "https://be-recruitment-task.onrender.com"
    POLLU_API_USERNAME: Optional[str] = None
    POLLU_API_PASSWORD: Optional[str] = None
    POLLU_API_TIMEOUT: float = 30.0
    POLLUTION_PAGE_SIZE: int = 50

    # Pollution API rate limiting (5 requests / 10 seconds upstream)
    RATE_LIMIT_MAX_REQUESTS: int = 5
    RATE_LIMIT_WINDOW_SECONDS: float = 10.0
    RATE_LIMIT_MAX_RETRIES: int = 3
    RATE_LIMIT_BACKOFF_BASE: float = 2.0
    RATE_LIMIT_BACKOFF_CAP: float = 30.0
    RATE_LIMIT_SAFETY_MARGIN: float = 0.1

    # Auth session
    TOKEN_EXPIRY_MARGIN_SECONDS: float = 5.0
    TOKEN_DEFAULT_LIFETIME_SECONDS: float = 60.0

    # Wikipedia (knowledge source)
    WIKIPEDIA_API_URL: str = "https://en.wikipedia.org/w/api.php"
    WIKIPEDIA_USER_AGENT: str = "PollutedCities/1.0"
    WIKIPEDIA_TIMEOUT: float = 2.5
    WIKIPEDIA_MAX_TITLES: int = 20
    WIKIPEDIA_MAX_CONCURRENCY: int = 2
    WIKIPEDIA_REQUEST_DELAY: float = 1.0
    WIKIPEDIA_MAX_RETRIES: int = 3
    WIKIPEDIA_RETRY_DELAY: float = 1.0

    # Caches (TTL in seconds)
    POLLUTION_CACHE_TTL: float = 5 * 60
    POLLUTION_CACHE_SIZE: int = 500
    WIKIPEDIA_CACHE_TTL: float = 24 * 60 * 60
    WIKIPEDIA_CACHE_SIZE: int = 1000
    WIKIPEDIA_FAILURE_TTL: float = 5 * 60
    COUNTRY_CACHE_TTL: float = 2 * 60 * 60
    COUNTRY_CACHE_SIZE: int = 50

    # City query limits
    DEFAULT_CITY_LIMIT: int = 10
    MIN_CITY_LIMIT: int = 1
    MAX_CITY_LIMIT: int = 50

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
