"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Collabzy REST API
    api_base_url: str = "http://localhost:5000/api"
    api_timeout_seconds: float = 30.0
    # Attempts for idempotent reads on connection errors (1 = no retry)
    api_read_retry_attempts: int = 1

    # Cache settings
    cache_ttl_seconds: float = 300
    coalesce_timeout_seconds: float = 30.0

    # Per-token sessions: dropped after this much inactivity, or oldest first
    # once more than session_max_count are open
    session_idle_seconds: float = 1800
    session_max_count: int = 1000

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
