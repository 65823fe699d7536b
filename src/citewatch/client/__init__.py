"""Rate limiting, retries and error mapping for provider calls."""

from citewatch.client.configuration import RateLimitConfig, default_rate_limits
from citewatch.client.error_handler import ProviderErrorHandler, parse_retry_after
from citewatch.client.rate_limiter import RateLimiter
from citewatch.client.retry import CallState, RetryingCaller

__all__ = [
    "CallState",
    "ProviderErrorHandler",
    "RateLimitConfig",
    "RateLimiter",
    "RetryingCaller",
    "default_rate_limits",
    "parse_retry_after",
]
