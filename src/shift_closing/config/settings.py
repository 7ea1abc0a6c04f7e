"""Configuration settings for the shift-closing workflow."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a local .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Station API
    station_api_url: str = Field(
        default="http://localhost:8000/api/v1", validation_alias="STATION_API_URL"
    )
    station_api_timeout: float = Field(default=30.0, validation_alias="STATION_API_TIMEOUT")
    station_api_max_retries: int = Field(default=3, validation_alias="STATION_API_MAX_RETRIES")

    # Station context
    station_id: str | None = Field(default=None, validation_alias="STATION_ID")
    currency: str = Field(default="KES", validation_alias="CURRENCY")

    # Where in-progress selections are kept between sessions (None = memory only)
    selection_store_dir: Path | None = Field(
        default=None, validation_alias="SELECTION_STORE_DIR"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
