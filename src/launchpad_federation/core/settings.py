"""Application settings and configuration.

This module defines all configuration options for the federation service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="LaunchPadder Federation", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./federation.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    auto_create_tables: bool = Field(default=False, alias="AUTO_CREATE_TABLES")

    # Identity presented to partner instances
    federation_instance_id: str = Field(
        default="launchpadder-local",
        alias="FEDERATION_INSTANCE_ID",
    )
    federation_user_agent: str = Field(
        default="LaunchPadder-Federation/1.0",
        alias="FEDERATION_USER_AGENT",
    )

    # Outbound partner traffic
    partner_request_timeout_seconds: float = Field(
        default=10.0,
        alias="PARTNER_REQUEST_TIMEOUT_SECONDS",
    )
    dispatch_concurrency: int = Field(default=5, alias="DISPATCH_CONCURRENCY")
    dispatch_deadline_seconds: float = Field(default=60.0, alias="DISPATCH_DEADLINE_SECONDS")
    # A dispatch claim older than this is treated as abandoned by a crashed worker.
    dispatch_claim_ttl_seconds: float = Field(default=300.0, alias="DISPATCH_CLAIM_TTL_SECONDS")
    discovery_concurrency: int = Field(default=10, alias="DISCOVERY_CONCURRENCY")
    discovery_deadline_seconds: float = Field(
        default=15.0,
        alias="DISCOVERY_DEADLINE_SECONDS",
    )
    discovery_cache_seconds: float = Field(default=60.0, alias="DISCOVERY_CACHE_SECONDS")
    validate_targets_against_catalog: bool = Field(
        default=True,
        alias="VALIDATE_TARGETS_AGAINST_CATALOG",
    )

    # Pricing
    default_currency: str = Field(default="USD", alias="DEFAULT_CURRENCY")

    # Payment gateway collaborator
    payment_gateway_url: str | None = Field(default=None, alias="PAYMENT_GATEWAY_URL")
    payment_gateway_api_key: str | None = Field(default=None, alias="PAYMENT_GATEWAY_API_KEY")
    payment_gateway_timeout_seconds: float = Field(
        default=10.0,
        alias="PAYMENT_GATEWAY_TIMEOUT_SECONDS",
    )

    # Retry sweep
    retry_sweep_batch_size: int = Field(default=50, alias="RETRY_SWEEP_BATCH_SIZE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "OPTIONS"],
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
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def payment_gateway_enabled(self) -> bool:
        return bool(self.payment_gateway_url)


settings = Settings()
