"""Configuration management for the policy binding controller and webhooks."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "policybinder"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    # Operator
    metrics_port: int = Field(8000, description="Port of the operator metrics endpoint")
    liveness_port: int = Field(8080, description="Port of the operator liveness probe")
    resync_interval: int = Field(60, description="Seconds between full resyncs")
    backoff_base: float = Field(1.0, description="First requeue delay in seconds")
    backoff_max: float = Field(300.0, description="Upper bound for requeue delays")
    worker_limit: int = 3

    # Webhook server
    host: str = "0.0.0.0"
    port: int = 9443
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None
    health_check_path: str = "/healthz"
    readiness_check_path: str = "/readyz"

    # Redis Configuration
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_url: Optional[str] = Field(None, validate_default=True)
    redis_max_connections: int = Field(20, ge=1)
    redis_socket_timeout: float = Field(5.0, gt=0)

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_json: bool = False

    @field_validator("redis_url", mode="before")
    @classmethod
    def build_redis_url(cls, v, info):
        """Build Redis URL from components if not provided."""
        if v:
            return v

        host = info.data.get("redis_host", "redis")
        port = info.data.get("redis_port", 6379)
        password = info.data.get("redis_password")
        db = info.data.get("redis_db", 0)

        if password:
            return f"redis://:{password}@{host}:{port}/{db}"
        return f"redis://{host}:{port}/{db}"

    @field_validator("backoff_max")
    @classmethod
    def check_backoff_bounds(cls, v, info):
        base = info.data.get("backoff_base", 1.0)
        if v < base:
            raise ValueError("backoff_max must not be lower than backoff_base")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience instance for modules that read settings at import time
settings = get_settings()
