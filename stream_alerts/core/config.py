from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = "sqlite+aiosqlite:///./data/streamers.db"
    youtube_api_key: str | None = None
    hub_url: str = "https://pubsubhubbub.appspot.com/subscribe"
    callback_url: str = "http://localhost:8000/alerts"
    callback_path: str = "/alerts"
    verify_mode: str = "async"
    lease_seconds: int = 864000
    webhook_secret: str | None = None
    subscribe_timeout_seconds: float = 10
    lookup_timeout_seconds: float = 5
    lease_check_interval_seconds: float = 60
    lease_renew_window: float = 0.05
    lease_renew_timeout_seconds: float = 15
    lease_retry_seconds: float = 0
    lease_monitor_enabled: bool = True
    notification_body_limit: int = 1 << 20
    log_level: str = "INFO"
    dashboard_cors_origins: list[str] = ["http://localhost:5173"]

    model_config = SettingsConfigDict(env_file=".env", env_prefix="APP_", env_file_encoding="utf-8")

    @field_validator("dashboard_cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("callback_path")
    @classmethod
    def _normalise_callback_path(cls, value: str) -> str:
        value = value.strip() or "/alerts"
        if not value.startswith("/"):
            value = "/" + value
        return value

@lru_cache

def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
