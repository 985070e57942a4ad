"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables with BAGEL_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="BAGEL_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    database_url: str = "postgresql+asyncpg://sho@localhost:5432/bagelfunds"
    db_pool_size: int = 10
    db_max_overflow: int = 5
    redis_url: str = "redis://localhost:6379/0"
    cors_origins: list[str] = ["http://localhost:5050", "http://localhost:3000"]
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Session cookie (signed JWT) ---
    jwt_secret_key: str = "dev-session-secret-change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "bagelfunds"
    session_expire_minutes: int = 60 * 24 * 7
    session_cookie_name: str = "loggedUser"
    session_cookie_secure: bool = False

    # --- Login lockout ---
    account_lockout_threshold: int = 10
    account_lockout_duration_minutes: int = 15

    # --- Cycles ---
    min_cycle_members: int = 2


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
