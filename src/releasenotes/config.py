"""Service configuration using pydantic-settings.

This module defines the ReleaseNotesSettings class that reads configuration
from environment variables with the RELEASENOTES_ prefix. Only the webhook
secret is required; the remaining collaborators degrade as follows:

- No github_token: GitHub calls fail loudly with MissingTokenError, so
  release backfill is logged and skipped.
- No llm_url: changelog generation always uses the deterministic renderer.
- No database_url: an in-memory store is used (local development only).
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReleaseNotesSettings(BaseSettings):
    """Release notes service configuration from environment variables.

    All environment variables are prefixed with RELEASENOTES_
    (e.g., RELEASENOTES_GITHUB_TOKEN).
    """

    model_config = SettingsConfigDict(
        env_prefix="RELEASENOTES_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Secret for validating X-Hub-Signature-256 on inbound webhooks
    github_webhook_secret: str

    # GitHub API token used for backfill and publishing release bodies
    github_token: Optional[str] = None

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Maximum number of merged pull requests fetched when backfilling a release
    backfill_limit: int = 100

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    # OpenAI-compatible endpoint used for changelog generation
    llm_url: Optional[str] = None

    # Model name for changelog generation
    llm_model: str = "gpt-4o-mini"

    # API key for the LLM endpoint (self-hosted endpoints ignore it)
    llm_api_key: str = "not-needed"

    # Upper bound for a single generation call before falling back
    llm_timeout_seconds: float = 60.0

    # Sampling temperature for generation
    llm_temperature: float = 0.3

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; in-memory store when unset
    database_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that webhook secret is not empty."""
        if not v or not v.strip():
            raise ValueError("github_webhook_secret cannot be empty")
        return v

    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank token as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("llm_url")
    @classmethod
    def validate_llm_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that LLM URL, when set, is a valid URL format."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("llm_url must start with http:// or https://")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that database URL, when set, has a PostgreSQL scheme."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("llm_timeout_seconds")
    @classmethod
    def validate_llm_timeout(cls, v: float) -> float:
        """Validate that the generation timeout is positive."""
        if v <= 0:
            raise ValueError("llm_timeout_seconds must be positive")
        return v

    @field_validator("backfill_limit")
    @classmethod
    def validate_backfill_limit(cls, v: int) -> int:
        """Validate that the backfill limit is positive."""
        if v < 1:
            raise ValueError("backfill_limit must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> ReleaseNotesSettings:
    """Create and return a ReleaseNotesSettings instance.

    Returns:
        ReleaseNotesSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return ReleaseNotesSettings()
