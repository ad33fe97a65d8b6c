"""Application configuration via Pydantic settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration object loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Clinic Agenda"
    debug: bool = False

    api_base_url: str = Field("http://localhost:8080/api/v1", alias="AGENDA_API_BASE_URL")
    api_timeout_seconds: float = Field(30.0, alias="AGENDA_API_TIMEOUT_SECONDS")

    default_timezone: str = Field("America/Mexico_City", alias="DEFAULT_TIMEZONE")

    calendar_refresh_seconds: float = Field(120.0, alias="AGENDA_CALENDAR_REFRESH_SECONDS")
    queue_refresh_seconds: float = Field(300.0, alias="AGENDA_QUEUE_REFRESH_SECONDS")
    token_refresh_margin_seconds: int = Field(120, alias="AGENDA_TOKEN_REFRESH_MARGIN_SECONDS")

    cancel_retry_attempts: int = Field(3, alias="AGENDA_CANCEL_RETRY_ATTEMPTS")
    cancel_retry_backoff_seconds: float = Field(0.5, alias="AGENDA_CANCEL_RETRY_BACKOFF_SECONDS")

    queue_page_size: int = Field(20, alias="AGENDA_QUEUE_PAGE_SIZE")


@lru_cache(1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings = get_settings()
