"""Application settings and configuration.

This module defines all configuration options for the Bridge Hub service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Bridge Hub", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./bridge_hub.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")

    # Alias resolution cache
    alias_cache_ttl_seconds: float = Field(default=60.0, alias="ALIAS_CACHE_TTL_SECONDS")
    alias_cache_max_entries: int = Field(default=10_000, alias="ALIAS_CACHE_MAX_ENTRIES")

    # Outbound forwarding
    forward_timeout_seconds: float = Field(default=10.0, alias="FORWARD_TIMEOUT_SECONDS")
    max_request_bytes: int = Field(default=1_048_576, alias="MAX_REQUEST_BYTES")
    max_response_bytes: int = Field(default=5_242_880, alias="MAX_RESPONSE_BYTES")

    # Supervised background work (log appends, last-used touches)
    background_drain_timeout_seconds: float = Field(
        default=15.0,
        alias="BACKGROUND_DRAIN_TIMEOUT_SECONDS",
    )

    # Rate-limit gate in front of the repeater (0 disables the gate)
    repeater_rate_limit_per_minute: int = Field(
        default=60,
        alias="REPEATER_RATE_LIMIT_PER_MINUTE",
    )
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Read-only endpoint configuration route
    endpoint_info_enabled: bool = Field(default=False, alias="ENDPOINT_INFO_ENABLED")

    # CORS configuration for the dashboard frontend
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
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
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
