"""
Centralized settings configuration using Pydantic BaseSettings.

All environment variables are defined here with types, defaults, and validation.
Use get_settings() for dependency injection compatibility in FastAPI.

Usage:
    from backend.settings import get_settings, Settings

    # In FastAPI endpoints (dependency injection)
    @app.get("/")
    def read_root(settings: Settings = Depends(get_settings)):
        return {"environment": settings.environment}

    # Direct access (module-level)
    settings = get_settings()
    print(settings.supabase_url)
"""

import json
from functools import lru_cache
from typing import Annotated, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_ALLOWED_ORIGINS = [
    "https://plonguo.com",
    "https://www.plonguo.com",
    "http://localhost:5173",
    "http://localhost:4173",
    "http://localhost:3000",
    "http://localhost:3001",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Core Environment
    # -------------------------------------------------------------------------
    environment: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    # -------------------------------------------------------------------------
    # Supabase Database
    # -------------------------------------------------------------------------
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (SUPABASE_URL or SUPABASE_PROJECT_URL)",
    )
    supabase_project_url: Optional[str] = Field(
        default=None,
        description="Legacy name for the Supabase project URL",
    )
    supabase_service_role_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key (full access)",
    )

    @property
    def supabase_key(self) -> Optional[str]:
        """Get the Supabase key.

        The quota and cache tables are written server-side only, so the
        service role key is required; there is no anon-key fallback.
        """
        return self.supabase_service_role_key

    @property
    def supabase_endpoint(self) -> Optional[str]:
        """Supabase URL, accepting either env var name."""
        return self.supabase_url or self.supabase_project_url

    # -------------------------------------------------------------------------
    # AI Services
    # -------------------------------------------------------------------------
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key for chat completions",
    )
    chat_model: str = Field(
        default="gpt-4o-mini",
        description="Completion model for the portfolio assistant",
    )
    chat_max_tokens: int = Field(
        default=1024,
        ge=1,
        description="Maximum output tokens per completion",
    )
    chat_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for completions",
    )

    # -------------------------------------------------------------------------
    # Helicone Observability
    # -------------------------------------------------------------------------
    helicone_api_key: Optional[str] = Field(
        default=None,
        description="Helicone API key for LLM observability",
    )
    helicone_enabled: bool = Field(
        default=False,
        description="Enable Helicone LLM request logging",
    )

    # -------------------------------------------------------------------------
    # CORS
    # -------------------------------------------------------------------------
    # NoDecode lets the validator below accept a plain comma-separated env value
    allowed_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS),
        description="Allowed CORS origins. Localhost origins are always accepted.",
    )

    # -------------------------------------------------------------------------
    # Chat Abuse Protection
    # -------------------------------------------------------------------------
    max_input_length: int = Field(
        default=1000,
        ge=1,
        description="Maximum characters accepted in a single chat message",
    )
    history_window: int = Field(
        default=10,
        ge=0,
        description="Number of prior messages forwarded to the model",
    )
    verification_interval: int = Field(
        default=10,
        ge=1,
        description="Completed exchanges between Turnstile re-challenges (client side)",
    )
    turnstile_secret_key: Optional[str] = Field(
        default=None,
        description="Cloudflare Turnstile secret key",
    )
    turnstile_verify_url: str = Field(
        default="https://challenges.cloudflare.com/turnstile/v0/siteverify",
        description="Turnstile siteverify endpoint",
    )
    turnstile_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for the Turnstile siteverify call",
    )

    # -------------------------------------------------------------------------
    # Rate Limits
    # -------------------------------------------------------------------------
    rate_limit_max_requests: int = Field(
        default=30,
        ge=1,
        description="Chat requests allowed per identity per window",
    )
    rate_limit_max_tokens: int = Field(
        default=100000,
        ge=1,
        description="Approximate streamed tokens allowed per identity per window",
    )
    rate_limit_window_seconds: int = Field(
        default=3600,
        ge=1,
        description="Length of the rate limit window in seconds",
    )

    # -------------------------------------------------------------------------
    # GitHub Activity Widget
    # -------------------------------------------------------------------------
    github_repo: str = Field(
        default="PlonGuo/Responsive-personal-portfolio",
        description="owner/name of the repository shown in the activity feed",
    )
    github_token: Optional[str] = Field(
        default=None,
        description="Optional GitHub token to raise the API rate limit",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )
    github_commits_per_page: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Number of commits returned by the activity feed",
    )
    commit_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Freshness window for cached commit activity",
    )

    # -------------------------------------------------------------------------
    # Observability - Sentry
    # -------------------------------------------------------------------------
    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )

    # -------------------------------------------------------------------------
    # Deployment
    # -------------------------------------------------------------------------
    render_git_commit: Optional[str] = Field(
        default=None,
        description="Git commit SHA provided by the host (RENDER_GIT_COMMIT)",
    )

    # -------------------------------------------------------------------------
    # Observability - OpenTelemetry
    # -------------------------------------------------------------------------
    otel_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing and metrics",
    )
    otel_service_name: str = Field(
        default="portfolio-chat-api",
        description="Service name reported to the collector",
    )
    otel_exporter_otlp_endpoint: Optional[str] = Field(
        default=None,
        description="OTLP collector endpoint; console exporter when unset",
    )
    otel_exporter_otlp_protocol: str = Field(
        default="http",
        description="OTLP protocol: http or grpc",
    )
    otel_traces_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Fraction of traces sampled",
    )
    otel_metrics_export_interval_ms: int = Field(
        default=60000,
        description="Metric export interval in milliseconds",
    )
    otel_log_correlation: bool = Field(
        default=True,
        description="Inject trace ids into log records",
    )

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v: Union[str, List[str], None]) -> List[str]:
        """Accept JSON array, comma-separated string, or list."""
        if v is None:
            return list(DEFAULT_ALLOWED_ORIGINS)
        if isinstance(v, list):
            return v
        v = v.strip()
        if not v:
            return list(DEFAULT_ALLOWED_ORIGINS)
        if v.startswith("["):
            return json.loads(v)
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is a valid value."""
        valid_environments = {"development", "staging", "production", "test"}
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {valid_environments}"
            )
        return v.lower()


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    For testing, you can clear the cache with get_settings.cache_clear().

    Returns:
        Settings: Application settings instance
    """
    return Settings()
