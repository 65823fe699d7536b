"""Rate-limit-aware retrying of provider calls.

`RetryingCaller` runs one provider call as a small explicit state machine:

    ATTEMPTING --success--------------------------> SUCCEEDED
    ATTEMPTING --RateLimitExceeded, attempts left--> WAITING_FOR_RATE_LIMIT
    ATTEMPTING --RateLimitExceeded, no attempts----> FAILED (ExhaustedRetries)
    ATTEMPTING --any other error-------------------> FAILED (error re-raised)
    WAITING_FOR_RATE_LIMIT --after retry delay-----> ATTEMPTING

Every attempt passes through the shared `RateLimiter` first. Only rate-limit
rejections are retried; auth failures and malformed requests fail fast.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
import logging
from typing import TYPE_CHECKING

from citewatch.constants import DEFAULT_RETRY_AFTER_MS, MAX_RETRIES
from citewatch.core.types import Provider
from citewatch.exceptions import ExhaustedRetries, RateLimitExceeded
from citewatch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from citewatch.client.rate_limiter import RateLimiter
    from citewatch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

T_PROVIDER_CALL = "provider.call"


class CallState(str, Enum):
    """States of a single retrying provider call."""

    ATTEMPTING = "attempting"
    WAITING_FOR_RATE_LIMIT = "waiting_for_rate_limit"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


type TransitionListener = Callable[[CallState, int], None]


class RetryingCaller:
    """Wraps provider calls with the rate limiter and rate-limit retries."""

    def __init__(
        self,
        limiter: RateLimiter,
        *,
        max_retries: int = MAX_RETRIES,
        default_retry_after_ms: int = DEFAULT_RETRY_AFTER_MS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        telemetry: TelemetryContextProtocol | None = None,
        on_transition: TransitionListener | None = None,
    ) -> None:
        """Create a caller sharing ``limiter`` with every other in-flight call.

        ``on_transition`` receives ``(state, attempt)`` on every state change,
        which is mostly useful in tests.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.limiter = limiter
        self.max_retries = max_retries
        self.default_retry_after_ms = default_retry_after_ms
        self._sleep = sleep
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()
        self._on_transition = on_transition

    async def call[T](
        self,
        provider: Provider | str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or rate-limit retries run out.

        ``operation`` is invoked at most ``max_retries`` times. Non rate-limit
        errors propagate unchanged from the first attempt that raises them.

        Raises:
            ExhaustedRetries: Every attempt was rejected with a rate limit.
        """
        key = Provider.parse(provider)
        limit = self.max_retries if max_retries is None else max_retries
        if limit < 1:
            raise ValueError("max_retries must be >= 1")

        state = CallState.ATTEMPTING
        attempt = 0
        last_error: RateLimitExceeded | None = None
        result: T | None = None

        while True:
            if state is CallState.ATTEMPTING:
                attempt += 1
                self._notify(state, attempt)
                await self.limiter.admit(key)
                try:
                    with self._telemetry(
                        T_PROVIDER_CALL, provider=key.value, attempt=attempt
                    ):
                        result = await operation()
                except RateLimitExceeded as e:
                    last_error = e
                    self._telemetry.count("retry.rate_limited", provider=key.value)
                    logger.warning(
                        "%s rate limited on attempt %d/%d: %s",
                        key.value,
                        attempt,
                        limit,
                        e,
                    )
                    if attempt >= limit:
                        self._notify(CallState.FAILED, attempt)
                        raise ExhaustedRetries(key.value, attempt, e) from e
                    state = CallState.WAITING_FOR_RATE_LIMIT
                except Exception:
                    self._notify(CallState.FAILED, attempt)
                    raise
                else:
                    state = CallState.SUCCEEDED

            elif state is CallState.WAITING_FOR_RATE_LIMIT:
                self._notify(state, attempt)
                delay_ms = self._retry_delay_ms(last_error)
                logger.info(
                    "Waiting %dms before retrying %s (attempt %d/%d)",
                    delay_ms,
                    key.value,
                    attempt + 1,
                    limit,
                )
                await self._sleep(delay_ms / 1000)
                state = CallState.ATTEMPTING

            else:
                self._notify(state, attempt)
                return result  # type: ignore[return-value]

    # --- Internal helpers ---

    def _retry_delay_ms(self, error: RateLimitExceeded | None) -> int:
        if error is None or error.retry_after_ms is None or error.retry_after_ms < 0:
            return self.default_retry_after_ms
        return error.retry_after_ms

    def _notify(self, state: CallState, attempt: int) -> None:
        logger.debug("retry state -> %s (attempt %d)", state.value, attempt)
        if self._on_transition is not None:
            self._on_transition(state, attempt)
