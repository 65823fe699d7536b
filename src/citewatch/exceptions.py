"""Exceptions for completion acquisition and citation normalization."""

from __future__ import annotations

from typing import Any


class CitewatchError(Exception):
    """Base exception for citewatch errors."""


class ConfigurationError(CitewatchError):
    """Raised when configuration is missing or invalid."""


class ProviderError(CitewatchError):
    """Base class for failures of a single provider call.

    Attributes:
        provider: Provider identifier (e.g. ``"openai"``).
        status_code: HTTP status of the failed response, when there was one.
    """

    def __init__(
        self, provider: str, message: str, *, status_code: int | None = None
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")

    @property
    def is_rate_limit(self) -> bool:
        """Whether the failure is a retryable quota/rate-limit rejection."""
        return False


class ProviderHttpError(ProviderError):
    """Non-2xx response or transport failure. Never retried by this package."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(provider, message, status_code=status_code)
        self.body = body


class RateLimitExceeded(ProviderError):
    """HTTP 429 (or provider quota payload).

    ``retry_after_ms`` is the provider-declared delay, or None when the
    response carried no hint and the caller should use its default.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        retry_after_ms: int | None = None,
        detail: Any | None = None,
    ) -> None:
        super().__init__(provider, message, status_code=429)
        self.retry_after_ms = retry_after_ms
        self.detail = detail

    @property
    def is_rate_limit(self) -> bool:  # noqa: D102
        return True


class ExhaustedRetries(ProviderError):
    """Every attempt of a retrying call was rejected with a rate limit."""

    def __init__(
        self, provider: str, attempts: int, last_error: RateLimitExceeded
    ) -> None:
        super().__init__(
            provider,
            f"rate limited on all {attempts} attempts; last error: {last_error}",
            status_code=last_error.status_code,
        )
        self.attempts = attempts
        self.last_error = last_error

    @property
    def is_rate_limit(self) -> bool:  # noqa: D102
        return True


class MalformedCitationSource(CitewatchError):
    """Raised by an extractor when the raw payload has an unexpected shape.

    Recovered inside ``extract_citations``; callers never see it.
    """
