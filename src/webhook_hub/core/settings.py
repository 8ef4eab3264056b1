"""Application settings and configuration.

This module defines all configuration options for the Webhook Hub application.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Webhook Hub application.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Webhook Hub", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration (destination catalog and delivery queue)
    database_url: str = Field(default="sqlite:///./webhook_hub.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Resolution cache
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    cache_backend: str = Field(default="memory", alias="CACHE_BACKEND")
    cache_ttl_seconds: int = Field(default=3600, alias="CACHE_TTL_SECONDS")
    cache_key_prefix: str = Field(default="phone:", alias="CACHE_KEY_PREFIX")

    # Delivery workers
    delivery_workers_enabled: bool = Field(default=True, alias="DELIVERY_WORKERS_ENABLED")
    delivery_worker_count: int = Field(default=4, alias="DELIVERY_WORKER_COUNT")
    delivery_timeout_seconds: float = Field(default=10.0, alias="DELIVERY_TIMEOUT_SECONDS")
    delivery_poll_interval_seconds: float = Field(
        default=0.5,
        alias="DELIVERY_POLL_INTERVAL_SECONDS",
    )
    delivery_stall_timeout_seconds: float = Field(
        default=30.0,
        alias="DELIVERY_STALL_TIMEOUT_SECONDS",
    )
    delivery_shutdown_grace_seconds: float = Field(
        default=15.0,
        alias="DELIVERY_SHUTDOWN_GRACE_SECONDS",
    )

    # Retry policy: attempts include the first try; delays double from the base.
    delivery_max_attempts: int = Field(default=3, alias="DELIVERY_MAX_ATTEMPTS")
    delivery_backoff_base_seconds: float = Field(
        default=2.0,
        alias="DELIVERY_BACKOFF_BASE_SECONDS",
    )

    # Bounded history of terminal jobs kept for inspection
    delivery_keep_completed: int = Field(default=100, alias="DELIVERY_KEEP_COMPLETED")
    delivery_keep_failed: int = Field(default=500, alias="DELIVERY_KEEP_FAILED")

    # Headers identifying this relay to downstream destinations
    delivery_user_agent: str = Field(default="Webhook-Hub/1.0", alias="DELIVERY_USER_AGENT")
    delivery_source_name: str = Field(default="webhook-hub", alias="DELIVERY_SOURCE_NAME")

    # CORS configuration for the admin surface
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
