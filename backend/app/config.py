from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Trip Approvals"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://trip_approvals:trip_approvals@db:5432/trip_approvals"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]
    transaction_timeout_seconds: float = 10.0
    maintenance_interval_seconds: int = 86400
    bonus_window_months: int = 1


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
