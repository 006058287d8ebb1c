"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/schoolmeal"
    db_pool_timeout: float = 10.0  # seconds to wait for a pooled connection

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # NEIS open data feed
    neis_api_key: str = ""
    neis_base_url: str = "https://open.neis.go.kr/hub"
    feed_timeout: float = 10.0  # httpx request timeout in seconds
    feed_max_retries: int = 3
    feed_call_timeout: float = 30.0  # upper bound for one fetch, retries included

    # Ingestion
    ingest_request_delay: float = 0.5  # seconds between schools in the batch job
    default_meal_slot: str = "중식"
    timezone: str = "Asia/Seoul"

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    @property
    def meal_feed_url(self) -> str:
        """Get the full URL of the meal service endpoint."""
        return f"{self.neis_base_url.rstrip('/')}/mealServiceDietInfo"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
