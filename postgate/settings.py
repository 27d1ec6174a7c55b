import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Upstream API Configuration
    upstream_base_url: str = Field(
        default="https://jsonplaceholder.typicode.com", alias="UPSTREAM_BASE_URL"
    )
    upstream_timeout: float = Field(default=10.0, alias="UPSTREAM_TIMEOUT")

    # Retry Configuration
    retry_max_attempts: int = Field(default=3, alias="RETRY_MAX_ATTEMPTS")
    retry_base_delay: float = Field(default=0.5, alias="RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=5.0, alias="RETRY_MAX_DELAY")

    # Circuit Breaker Configuration
    circuit_failure_rate: float = Field(default=0.5, alias="CIRCUIT_FAILURE_RATE")
    circuit_window_size: int = Field(default=10, alias="CIRCUIT_WINDOW_SIZE")
    circuit_minimum_calls: int = Field(default=5, alias="CIRCUIT_MINIMUM_CALLS")
    circuit_reset_seconds: float = Field(default=30.0, alias="CIRCUIT_RESET_SECONDS")

    # Cache Configuration
    cache_max_size: int = Field(default=1000, alias="CACHE_MAX_SIZE")
    cache_expire_after_write_seconds: float = Field(
        default=300.0, alias="CACHE_EXPIRE_AFTER_WRITE"
    )
    cache_expire_after_access_seconds: float = Field(
        default=120.0, alias="CACHE_EXPIRE_AFTER_ACCESS"
    )
    cache_clear_interval_seconds: int = Field(default=300, alias="CACHE_CLEAR_INTERVAL")
    cache_cleanup_interval_seconds: int = Field(
        default=60, alias="CACHE_CLEANUP_INTERVAL"
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def load_settings() -> Settings:
    """Build settings from the process environment (and .env)."""
    return Settings.model_validate(
        {
            field.alias: os.environ[field.alias]
            for field in Settings.model_fields.values()
            if field.alias and field.alias in os.environ
        }
    )


global_settings = load_settings()
