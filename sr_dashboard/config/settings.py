"""
SR Performance Dashboard
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type safety.
Credentials are always environment-sourced; nothing secret lives in code.
"""

from functools import lru_cache
from typing import List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sr_dashboard import __version__

DEFAULT_JWT_SECRET = "jwt-secret-change-me"


class DatabaseSettings(BaseSettings):
    """Relational store configuration (read-only access)"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="sr_dashboard", alias="POSTGRES_DB", description="Database name")
    user: str = Field(default="dashboard_ro", description="Database user")
    password: SecretStr = Field(default="", description="Database password")
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=5, description="Max overflow connections")
    pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full SQLAlchemy URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from parts"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"

    @property
    def max_connections(self) -> int:
        """Upper bound on concurrently checked-out connections"""
        return self.pool_size + self.max_overflow


class RedisSettings(BaseSettings):
    """Redis result cache configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(default=True, description="Cache aggregate results in Redis")
    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """Security and Authentication Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    jwt_secret_key: SecretStr = Field(default=DEFAULT_JWT_SECRET, alias="JWT_SECRET_KEY", description="JWT secret key")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM", description="JWT algorithm")
    jwt_expiration_hours: int = Field(default=24, alias="JWT_EXPIRATION_HOURS", description="JWT expiration in hours")

    # Dashboard credentials
    auth_enabled: bool = Field(default=True, alias="AUTH_ENABLED", description="Require a bearer token for dashboard reads")
    admin_password: Optional[SecretStr] = Field(default=None, alias="ADMIN_PASSWORD", description="Password granting the admin role")
    viewer_password: Optional[SecretStr] = Field(default=None, alias="VIEWER_PASSWORD", description="Password granting the viewer role")
    max_login_attempts: int = Field(default=3, alias="MAX_LOGIN_ATTEMPTS", description="Failed logins before lockout")
    lockout_seconds: int = Field(default=60, alias="LOCKOUT_SECONDS", description="Lockout duration after too many failures")

    # Rate limiting
    rate_limit_requests: int = Field(default=120, alias="RATE_LIMIT_REQUESTS", description="Rate limit requests")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")
    export_request_cost: int = Field(default=10, alias="RATE_LIMIT_EXPORT_COST", description="Budget units one export request spends")
    trust_forwarded_for: bool = Field(default=False, alias="TRUST_FORWARDED_FOR", description="Account requests to the first X-Forwarded-For hop")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class DashboardSettings(BaseSettings):
    """Aggregation behaviour"""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    timezone: str = Field(default="", description="IANA timezone for calendar days; empty means server local time")
    strict_range_tokens: bool = Field(
        default=False,
        description="Reject unrecognized range tokens instead of falling back to 7d",
    )
    case_insensitive_test_filter: bool = Field(
        default=False,
        description="Match the 'test' placeholder substring case-insensitively",
    )
    query_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-aggregation timeout")
    cache_ttl_seconds: int = Field(default=300, gt=0, description="TTL for cached aggregate results")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Unknown zones fail at startup instead of on the first dashboard read"""
        v = v.strip()
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"Unknown timezone: {v}") from exc
        return v


class Settings(BaseSettings):
    """
    Main Application Settings

    One object per process, shared by the API, the aggregation layer and the
    demo-data tooling.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="sr-dashboard", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    version: str = Field(default=__version__, description="Application version")

    # Standalone uvicorn entrypoint; gunicorn reads BIND instead
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    dashboard: DashboardSettings = Field(default_factory=DashboardSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @model_validator(mode="after")
    def require_real_secrets(self) -> "Settings":
        """Production with auth on must not sign tokens with the placeholder key"""
        security = self.security
        if self.is_production and security.auth_enabled:
            if security.jwt_secret_key.get_secret_value() == DEFAULT_JWT_SECRET:
                raise ValueError("JWT_SECRET_KEY must be set in production")
            if security.admin_password is None and security.viewer_password is None:
                raise ValueError("ADMIN_PASSWORD or VIEWER_PASSWORD must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
