"""Runtime settings using Pydantic BaseSettings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Scanner configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TRENDSCAN_",
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: str = "INFO"

    # Scanning
    SCAN_MAX_WORKERS: int = Field(default=4, ge=1, le=64)
    SCAN_USE_PROCESSES: bool = False

    # Validation thresholds
    CONFIDENCE_THRESHOLD: float = Field(default=0.70, ge=0.0, le=1.0)
    PATTERN_VALIDITY_THRESHOLD: float = Field(default=70.0, ge=0.0, le=100.0)

    # Backtest defaults
    MAX_HOLDING_PERIOD: int = Field(default=30, ge=1)
    MIN_FORWARD_CANDLES: int = Field(default=20, ge=0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
