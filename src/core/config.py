"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="tenant-auth-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Token signing
    jwt_secret_key: str = Field(..., description="HMAC secret used to sign every token this service issues")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expiry_minutes: int = Field(default=1440, description="Access token lifetime (1 day)")
    refresh_token_expiry_minutes: int = Field(default=2880, description="Refresh token lifetime (2 days)")
    confirmation_token_expiry_hours: int = Field(default=24, description="Account confirmation token lifetime")
    password_reset_token_expiry_minutes: int = Field(default=30, description="Password reset token lifetime")

    # Invitations
    invitation_expiry_days: int = Field(default=7, description="Days until an invitation expires")
    max_pending_invitations: int = Field(
        default=50,
        description="Soft cap of concurrent pending invitations per company",
    )
    invitation_sweep_enabled: bool = Field(default=True, description="Run the background expiry sweep")
    invitation_sweep_interval_seconds: int = Field(default=3600, description="Seconds between expiry sweeps")

    # Plans
    default_plan_user_limit: int = Field(default=5, description="User limit of the plan created at registration")

    # Rate limiting (public auth endpoints, per client IP)
    rate_limit_auth_requests: int = Field(default=10, description="Max auth requests per window per IP")
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window in seconds")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Accounts <noreply@example.com>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend origin used when a request carries no Origin header",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
