"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - Pipeline capacity (batch size, concurrency ceiling, backlog) is configuration, not code

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://examops:examops@db:5432/examops"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting platforms provide postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Result cache + event notifier (Redis)
    redis_url: str = "redis://redis:6379/0"
    redis_max_connections: int = 50
    result_cache_ttl_seconds: int = Field(86_400, gt=0)

    # Result publication pipeline
    publication_batch_size: int = Field(500, gt=0)
    publication_max_concurrency: int = Field(10, gt=0)
    publication_backlog: int = Field(50, ge=0)
    publication_stall_timeout_seconds: int = Field(300, gt=0)
    publication_max_attempts: int = Field(3, gt=0)
    publication_base_delay_ms: int = 500
    publication_max_delay_ms: int = 10_000
    publication_event_topic: str = "results.published"

    # Payment gateway
    payment_gateway_url: str = "https://payments.example.invalid/api/v1"
    payment_gateway_api_key: str = "pg-placeholder"
    payment_gateway_timeout_seconds: int = 30
    payment_gateway_max_retries: int = 3
    payment_gateway_base_delay_ms: int = 500
    payment_gateway_max_delay_ms: int = 10_000
    payment_currency: str = "USD"

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
