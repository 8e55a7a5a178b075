"""Configuration settings for Tiergate."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="TIERGATE_", env_file=".env")

    # Server
    host: str = "127.0.0.1"  # Use TIERGATE_HOST=0.0.0.0 for Docker
    port: int = 8080
    debug: bool = False

    # Gateway
    api_key_header: str = "X-API-Key"
    default_tier: str = "Free"

    # Counter store: "memory" or "redis"
    store_backend: str = "memory"
    cas_max_attempts: int = 16

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    redis_pool_size: int = 50
    redis_key_prefix: str = "tiergate:usage"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Metrics
    metrics_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
