"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    auth_database_url: str | None = None  # Optional separate auth database
    database_pool_size: int = 10
    database_pool_timeout: int = 10
    # Max connection age in seconds; QueuePool has no idle reaping, so idle
    # connections stay open until recycled or invalidated by pool_pre_ping
    database_pool_recycle: int = 1800
    database_connect_timeout: int = 10

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "LensCherry Billing Dashboard"
    api_version: str = "0.1.0"
    api_description: str = "Admin read models for the LensCherry billing dashboard"
    environment: str = "development"

    # Object Storage (S3-compatible)
    s3_endpoint: str | None = None
    s3_region: str = "eu-central-1"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_bucket: str = "lenscherry-production"
    s3_force_path_style: bool = False
    presign_expires_seconds: int = 3600

    # Admin Authentication
    better_auth_secret: str = ""
    better_auth_url: str = ""
    auth_cookie_prefix: str = "vesperion"
    session_expires_seconds: int = 60 * 60 * 24 * 7

    # CAPTCHA (Cloudflare Turnstile)
    turnstile_site_key: str = ""
    turnstile_secret_key: str = ""

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "lenscherry-billing-dashboard"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.auth_database_url and not self.auth_database_url.startswith(
            ("postgresql", "postgres")
        ):
            errors.append("AUTH_DATABASE_URL must be a PostgreSQL URL")

        if not self.better_auth_secret:
            errors.append("BETTER_AUTH_SECRET is required but empty or missing")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def is_production(self) -> bool:
        """Production mode enables the HTTPS upgrade and secure cookies."""
        return self.environment.lower() == "production"

    @property
    def auth_db_url(self) -> str:
        """Get auth database URL (fallback to primary if not split)."""
        return self.auth_database_url or self.database_url

    @property
    def session_cookie_name(self) -> str:
        return f"{self.auth_cookie_prefix}.session_token"

    @property
    def secure_session_cookie_name(self) -> str:
        return f"__Secure-{self.session_cookie_name}"


# Global settings instance - validates at import time
settings = Settings()
