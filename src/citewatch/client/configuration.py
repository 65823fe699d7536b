"""
Rate limit configuration for provider requests
"""  # noqa: D200, D212, D415

from __future__ import annotations

from dataclasses import dataclass

from citewatch.constants import (
    DEFAULT_REQUESTS_PER_MINUTE,
    GEMINI_MIN_INTERVAL,
    RATE_LIMIT_WINDOW,
)
from citewatch.core.types import Provider


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limiting parameters for one provider's request window"""  # noqa: D415

    requests_per_minute: int
    window_seconds: int = RATE_LIMIT_WINDOW
    min_interval_seconds: float = 0.0

    def __post_init__(self) -> None:  # noqa: D105
        if self.requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")


def default_rate_limits() -> dict[Provider, RateLimitConfig]:
    """Documented per-provider ceilings with the Gemini spacing rule applied."""
    return {
        provider: RateLimitConfig(
            requests_per_minute=DEFAULT_REQUESTS_PER_MINUTE[provider.value],
            min_interval_seconds=(
                GEMINI_MIN_INTERVAL if provider is Provider.GEMINI else 0.0
            ),
        )
        for provider in Provider
    }
