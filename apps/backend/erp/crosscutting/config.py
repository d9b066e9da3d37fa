"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults for local development and tests

Collaborators:
  - api/main.py: reads settings for CORS, pool and startup validation
  - container.py: decides in-memory vs Postgres store from app_env
  - identity/auth_users.py: JWT secret, TTL and cookie settings
  - application/sequences.py: retry budget for sequence allocation

Constraints:
  - Lives in the crosscutting layer, NOT in domain/application
  - No business logic — pure configuration

Notes:
  - Singleton via lru_cache for performance
  - Production rejects insecure secrets and missing database_url
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        database_url: PostgreSQL connection string
        app_env: Application environment (development/test/production)
        allowed_origins: Comma-separated CORS origins
        cors_allow_credentials: Allow cookies cross-origin (default: False)
        jwt_secret: Secret for signing JWT access tokens
        jwt_access_ttl_minutes: Access token TTL in minutes
        jwt_cookie_name: Cookie name for access token
        jwt_cookie_secure: Set Secure on auth cookies
        db_pool_min_size / db_pool_max_size: Connection pool bounds
        db_statement_timeout_ms: statement_timeout applied per connection
        max_body_bytes: Max request body size (default: 2MB)
        metrics_require_auth: Require setup:view for /metrics
        log_level: Root log level for the JSON logger
        log_json: Emit JSON lines (False -> plain text)
        sequence_max_attempts: Retries when a document number collides
        money_epsilon: Tolerance for debit/credit comparisons
        default_page_size / max_page_size: List pagination bounds
    """

    database_url: str = ""

    # Environment
    app_env: str = "development"

    # CORS configuration
    allowed_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = False

    # Security - JWT Auth
    jwt_secret: str = "dev-secret"
    jwt_access_ttl_minutes: int = 60
    jwt_cookie_name: str = "access_token"
    jwt_cookie_secure: bool = False

    # Database - Connection Pool
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_statement_timeout_ms: int = 30000  # 30 seconds

    # Security - Hardening
    max_body_bytes: int = 2 * 1024 * 1024  # 2MB
    metrics_require_auth: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Business numerics
    sequence_max_attempts: int = 5
    money_epsilon: Decimal = Decimal("0.01")

    # Listing
    default_page_size: int = 50
    max_page_size: int = 200

    @field_validator("sequence_max_attempts")
    @classmethod
    def sequence_attempts_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("sequence_max_attempts must be greater than 0")
        return v

    @field_validator("money_epsilon")
    @classmethod
    def money_epsilon_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("money_epsilon must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_page_sizes(self):
        if self.default_page_size <= 0 or self.max_page_size <= 0:
            raise ValueError("page sizes must be greater than 0")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must be <= max_page_size")
        return self

    @model_validator(mode="after")
    def validate_security_requirements(self):
        if not self.is_production():
            return self

        insecure_secrets = {"dev-secret", "changeme", "change-me", "password"}
        jwt_secret = (self.jwt_secret or "").strip()
        if not jwt_secret or jwt_secret in insecure_secrets:
            raise ValueError(
                "JWT_SECRET must be set to a strong, non-default value in production"
            )
        if len(jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters in production")
        if not self.jwt_cookie_secure:
            raise ValueError("JWT_COOKIE_SECURE must be true in production")
        if not self.database_url.strip():
            raise ValueError("DATABASE_URL is required in production")
        return self

    def get_allowed_origins_list(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def is_test(self) -> bool:
        return self.app_env.strip().lower() in {"test", "testing", "ci"}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()
