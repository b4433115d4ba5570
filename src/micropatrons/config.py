"""Application settings via pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables with MP_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="MP_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    api_prefix: str = "/api"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Storage ---
    database_url: str = "sqlite+aiosqlite:///./micropatrons.db"
    db_busy_timeout_seconds: float = 5.0
    create_schema_on_startup: bool = True
    ledger_backend: Literal["sql", "memory"] = "sql"

    # --- Redis (empty URL disables rate limiting and event publishing) ---
    redis_url: str = ""
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    rate_limit_transfer: int = 20

    # --- Ledger ---
    starting_balance: int = 200_000
    opsec_penalty_amount: int = 20_000

    # --- Read views ---
    activity_default_limit: int = 50
    activity_max_limit: int = 1000
    activity_stats_default_days: int = 7
    leaderboard_default_limit: int = 10


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
