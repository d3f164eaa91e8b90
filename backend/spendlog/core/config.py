"""Simple configuration management.

This module defines a ``Settings`` class that reads configuration
values from environment variables and provides sensible defaults.
``.env`` support is implemented by loading files from the repository
root in a defined order.  You can override any value via environment
variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from dotenv import load_dotenv, find_dotenv

# -----------------------------------------------------------------------------
# .env loading
#
# Prefer a .env in the repository root but allow fallback to whatever
# python-dotenv discovers from the current working directory.  Files are
# loaded in order without overriding already-set variables.

_THIS_FILE = Path(__file__).resolve()
_REPO_ROOT = _THIS_FILE.parents[3]
_ROOT_ENV = _REPO_ROOT / ".env"

_candidate_envs: list[str] = []
if _ROOT_ENV.exists():
    _candidate_envs.append(str(_ROOT_ENV))

_FOUND_ENV = find_dotenv(usecwd=True)
if _FOUND_ENV and _FOUND_ENV not in _candidate_envs:
    _candidate_envs.append(_FOUND_ENV)

for _env_path in _candidate_envs:
    load_dotenv(dotenv_path=_env_path, override=False)


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from the environment with sensible defaults.  Any
    attribute defined here can be overridden by setting the corresponding
    environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=tuple(_candidate_envs) if _candidate_envs else (".env",),
        case_sensitive=True,
        extra="allow",
    )

    # API Settings
    PROJECT_NAME: str = "Spendlog"
    ENVIRONMENT: str = Field(default="development")

    # Database
    DATABASE_URL: Optional[str] = Field(default=None)
    # Dev DB fallback (fail fast by default)
    DB_DEV_FALLBACK_SQLITE: bool = Field(default=False)

    # Queue transport
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    DRAMATIQ_BROKER_URL: Optional[str] = Field(default=None)
    # "redis" in deployments, "stub" for tests and local experiments
    QUEUE_BROKER: str = Field(default="redis")
    EXTRACTION_QUEUE_NAME: str = Field(default="ai_extraction")

    # Retry budget recorded on the job, and the transport's hard cap on deliveries
    EXTRACTION_MAX_RETRIES: int = Field(default=3)
    EXTRACTION_MAX_DELIVERIES: int = Field(default=10)
    EXTRACTION_MIN_BACKOFF_MS: int = Field(default=5_000)
    EXTRACTION_MAX_BACKOFF_MS: int = Field(default=60_000)
    # Also the age after which a job left in "processing" counts as abandoned
    EXTRACTION_TIME_LIMIT_MS: int = Field(default=120_000)

    # Extraction backend: "rules" or "openai"
    EXTRACTION_BACKEND: str = Field(default="rules")
    EXTRACTION_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_API_KEY: Optional[str] = Field(default=None)

    # Auth
    # Disable auth bypass by default.  Override in .env only when running locally.
    DEV_AUTH_BYPASS: bool = Field(default=False)
    CLERK_JWKS_URL: Optional[str] = Field(default=None)
    CLERK_JWT_AUDIENCE: Optional[str] = Field(default=None)
    CLERK_JWT_ISSUER: Optional[str] = Field(default=None)

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
    )

    # Sentry
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_RELEASE: Optional[str] = Field(default=None)

    @field_validator("QUEUE_BROKER", "EXTRACTION_BACKEND")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_backoff(self) -> "Settings":
        if self.EXTRACTION_MIN_BACKOFF_MS > self.EXTRACTION_MAX_BACKOFF_MS:
            raise ValueError("EXTRACTION_MIN_BACKOFF_MS must not exceed EXTRACTION_MAX_BACKOFF_MS")
        return self

    @property
    def broker_url(self) -> str:
        """Dramatiq broker URL, falling back to the shared Redis URL."""
        return self.DRAMATIQ_BROKER_URL or os.getenv("DRAMATIQ_BROKER_URL") or self.REDIS_URL


# Instantiate global settings
settings = Settings()
