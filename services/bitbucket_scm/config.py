"""
Configuration management for the Bitbucket SCM adapter.

The adapter itself is configured with a BitbucketScmConfig, validated once
when BitbucketScm is constructed. The webhook service process loads
Settings from a YAML file and BITBUCKET_SCM_* environment variables.
"""

from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH = "/etc/bitbucket-scm/config.yaml"


def yaml_config_settings_source() -> dict[str, Any]:
    """Load configuration from YAML file."""
    config_path = Path(CONFIG_PATH)
    if config_path.exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


class _CamelModel(BaseModel):
    """Accepts both snake_case and the orchestrator's camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# --- Checkout Configuration ---


class CloneType(StrEnum):
    """Clone transports for read-only checkouts."""

    HTTPS = "https"
    SSH = "ssh"


class ReadOnlyConfig(_CamelModel):
    """Alternate read-only credential path used by the checkout command."""

    enabled: bool = Field(default=False)
    username: str | None = Field(default=None)
    access_token: SecretStr | None = Field(default=None)
    clone_type: CloneType = Field(default=CloneType.HTTPS)


# --- Transport Resilience ---


class RetryConfig(_CamelModel):
    """Retry policy for outbound calls. 4xx responses are never retried."""

    retries: int = Field(default=5, ge=0, description="Retries after the first attempt")
    factor: float = Field(default=2.0, gt=0, description="Exponential backoff multiplier")
    min_timeout: int = Field(default=1000, ge=0, description="First backoff in milliseconds")
    max_timeout: int = Field(default=10000, ge=0, description="Backoff ceiling in milliseconds")


class BreakerConfig(_CamelModel):
    """Circuit breaker around the Bitbucket API."""

    max_failures: int = Field(default=5, ge=1, description="Consecutive failures before opening")
    timeout: int = Field(default=10000, gt=0, description="Per-request timeout in milliseconds")
    reset_timeout: int = Field(
        default=60000, ge=0, description="Milliseconds before an open breaker lets a call through"
    )


class FuseboxConfig(_CamelModel):
    """Transport resilience tuning."""

    retry: RetryConfig = Field(default_factory=RetryConfig)
    breaker: BreakerConfig = Field(default_factory=BreakerConfig)


# --- Adapter Configuration ---


class BitbucketScmConfig(_CamelModel):
    """Adapter configuration.

    oauth_client_id and oauth_client_secret are required; everything else
    has a default. Unknown keys are ignored so the orchestrator can pass
    its whole SCM block through.
    """

    username: str = Field(default="sd-buildbot", description="Git user.name for checkouts")
    email: str = Field(
        default="dev-null@screwdriver.cd", description="Git user.email for checkouts"
    )
    read_only: ReadOnlyConfig = Field(default_factory=ReadOnlyConfig)
    https: bool = Field(default=False, description="Is the OAuth callback served over TLS")
    oauth_client_id: str = Field(min_length=1)
    oauth_client_secret: SecretStr
    fusebox: FuseboxConfig = Field(default_factory=FuseboxConfig)


# --- Service Settings ---


class Settings(BaseSettings):
    """Settings for the webhook service process."""

    model_config = SettingsConfigDict(
        env_prefix="BITBUCKET_SCM_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field(default="bitbucket-scm", description="Logged as `app` on every event")
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True, description="JSON logging in production")
    api_prefix: str = Field(default="/api/v1")

    scm: BitbucketScmConfig | None = Field(
        default=None,
        description="Adapter config (e.g. BITBUCKET_SCM_SCM__OAUTH_CLIENT_ID)",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Customize settings sources: env vars override YAML config."""
        return (
            init_settings,
            env_settings,
            yaml_config_settings_source,
            dotenv_settings,
            file_secret_settings,
        )


def get_settings() -> Settings:
    """Load service settings from the environment and YAML file."""
    return Settings()
