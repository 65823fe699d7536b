"""Configuration schema and validation using Pydantic.

This module defines the settings schema that validates and coerces configuration
values from the resolver's sources (environment, files, programmatic) into the
correct types with proper defaults.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from citewatch.client.configuration import RateLimitConfig
from citewatch.constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODELS,
    DEFAULT_REQUESTS_PER_MINUTE,
    DEFAULT_RETRY_AFTER_MS,
    DEFAULT_TEMPERATURE,
    GEMINI_MIN_INTERVAL,
    MAX_RETRIES,
    NETWORK_TIMEOUT,
)
from citewatch.core.types import Provider, ProviderCallConfig
from citewatch.exceptions import ConfigurationError

SECRET_FIELDS = frozenset(f"{p.value}_api_key" for p in Provider)


def _api_key_field(provider: str, *extra_env: str) -> Any:
    return Field(
        default=None,
        description=f"{provider} API key",
        validation_alias=AliasChoices(
            f"{provider}_api_key", f"citewatch_{provider}_api_key", *extra_env
        ),
    )


class CitewatchSettings(BaseSettings):
    """Pydantic settings schema for citewatch.

    Handles validation, type coercion and defaults for every field. Read
    directly, it picks up ``CITEWATCH_*`` variables and the conventional
    provider key variables (``OPENAI_API_KEY`` and friends); prefer
    `citewatch.config.resolve_config` which also reads config files and
    records where each value came from. Instances are immutable.
    """

    model_config = SettingsConfigDict(
        env_prefix="CITEWATCH_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # --- Credentials ---

    openai_api_key: SecretStr | None = _api_key_field("openai")
    gemini_api_key: SecretStr | None = _api_key_field("gemini")
    claude_api_key: SecretStr | None = _api_key_field("claude", "anthropic_api_key")
    perplexity_api_key: SecretStr | None = _api_key_field("perplexity")

    # --- Models ---

    openai_model: str = Field(default=DEFAULT_MODELS["openai"], min_length=1)
    gemini_model: str = Field(default=DEFAULT_MODELS["gemini"], min_length=1)
    claude_model: str = Field(default=DEFAULT_MODELS["claude"], min_length=1)
    perplexity_model: str = Field(default=DEFAULT_MODELS["perplexity"], min_length=1)

    # --- Completion parameters ---

    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1)
    request_timeout_seconds: float = Field(default=NETWORK_TIMEOUT, gt=0)

    # --- Retry and rate limiting ---

    max_retries: int = Field(
        default=MAX_RETRIES,
        ge=1,
        description="Provider invocations per call, including the first",
    )
    default_retry_after_ms: int = Field(
        default=DEFAULT_RETRY_AFTER_MS,
        ge=0,
        description="Wait after a 429 that carried no retry hint",
    )
    openai_requests_per_minute: int = Field(
        default=DEFAULT_REQUESTS_PER_MINUTE["openai"], ge=1
    )
    gemini_requests_per_minute: int = Field(
        default=DEFAULT_REQUESTS_PER_MINUTE["gemini"], ge=1
    )
    claude_requests_per_minute: int = Field(
        default=DEFAULT_REQUESTS_PER_MINUTE["claude"], ge=1
    )
    perplexity_requests_per_minute: int = Field(
        default=DEFAULT_REQUESTS_PER_MINUTE["perplexity"], ge=1
    )
    gemini_min_interval_seconds: float = Field(default=GEMINI_MIN_INTERVAL, ge=0.0)

    # --- Helpers ---

    def api_key_for(self, provider: Provider | str) -> str | None:
        """Plain API key for ``provider``, or None when unset or blank."""
        secret: SecretStr | None = getattr(
            self, f"{Provider.parse(provider).value}_api_key"
        )
        if secret is None:
            return None
        value = secret.get_secret_value().strip()
        return value or None

    def model_for(self, provider: Provider | str) -> str:
        """Configured model name for ``provider``."""
        return str(getattr(self, f"{Provider.parse(provider).value}_model"))

    def available_providers(self) -> tuple[Provider, ...]:
        """Providers with a configured API key, in enum order."""
        return tuple(p for p in Provider if self.api_key_for(p))

    def rate_limits(self) -> dict[Provider, RateLimitConfig]:
        """Per-provider window ceilings for the `RateLimiter`."""
        return {
            p: RateLimitConfig(
                requests_per_minute=getattr(self, f"{p.value}_requests_per_minute"),
                min_interval_seconds=(
                    self.gemini_min_interval_seconds if p is Provider.GEMINI else 0.0
                ),
            )
            for p in Provider
        }

    def call_config_for(
        self, provider: Provider | str, region: str | None = None
    ) -> ProviderCallConfig:
        """Per-call settings for ``provider``.

        Raises:
            ConfigurationError: No API key is configured for ``provider``.
        """
        key = Provider.parse(provider)
        api_key = self.api_key_for(key)
        if api_key is None:
            raise ConfigurationError(
                f"No API key configured for {key.value}. Set "
                f"{key.value.upper()}_API_KEY or CITEWATCH_{key.value.upper()}_API_KEY."
            )
        return ProviderCallConfig(
            api_key=api_key,
            model=self.model_for(key),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            region=region,
        )

    def to_dict(self) -> dict[str, Any]:
        """Field values keyed by field name (secrets stay wrapped)."""
        return {name: getattr(self, name) for name in type(self).model_fields}
