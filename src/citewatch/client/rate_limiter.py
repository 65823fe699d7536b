"""Sliding-window rate limiting for provider requests"""  # noqa: D415

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
import logging
import time
from typing import TYPE_CHECKING

from citewatch.client.configuration import RateLimitConfig, default_rate_limits
from citewatch.constants import RATE_LIMIT_SAFETY_BUFFER
from citewatch.core.types import Provider
from citewatch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from citewatch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

T_RATE_LIMIT_ADMIT = "rate_limit.admit"


class RateLimiter:
    """Per-provider trailing-window request gate.

    Each provider owns a deque of admission timestamps (seconds on ``clock``)
    and an ``asyncio.Lock``. The lock is held across the window wait so two
    tasks can never both see room in the same window. Timestamps are recorded
    on admission and never removed early, so a cancelled or failed call still
    counts against the window.
    """

    def __init__(
        self,
        limits: Mapping[Provider, RateLimitConfig] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Create a limiter; providers missing from ``limits`` use the defaults."""
        self._limits: dict[Provider, RateLimitConfig] = default_rate_limits()
        if limits:
            self._limits.update(limits)
        self._clock = clock
        self._sleep = sleep
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()
        self._windows: dict[Provider, deque[float]] = {
            p: deque() for p in self._limits
        }
        self._locks: dict[Provider, asyncio.Lock] = {}

    def config_for(self, provider: Provider | str) -> RateLimitConfig:
        """Return the ceiling configuration for ``provider``."""
        return self._limits[Provider.parse(provider)]

    async def admit(self, provider: Provider | str) -> int:
        """Wait until ``provider`` has room in its window, then record a request.

        Returns the milliseconds spent waiting (0 when admitted immediately).
        """
        key = Provider.parse(provider)
        config = self._limits[key]
        window = self._windows[key]
        async with self._lock_for(key):
            with self._telemetry(T_RATE_LIMIT_ADMIT, provider=key.value):
                waited = 0.0
                self._prune(window, config)

                if config.min_interval_seconds and window:
                    since_last = self._clock() - window[-1]
                    if since_last < config.min_interval_seconds:
                        spacing = config.min_interval_seconds - since_last
                        logger.info(
                            "Spacing %s requests: waiting %.1fs since last request",
                            key.value,
                            spacing,
                        )
                        await self._sleep(spacing)
                        waited += spacing
                        self._prune(window, config)

                if len(window) >= config.requests_per_minute:
                    age = self._clock() - window[0]
                    wait = max(
                        0.0, config.window_seconds - age + RATE_LIMIT_SAFETY_BUFFER
                    )
                    logger.info(
                        "Rate limit reached for %s (%d/%d in window). Waiting %.1fs",
                        key.value,
                        len(window),
                        config.requests_per_minute,
                        wait,
                    )
                    await self._sleep(wait)
                    waited += wait
                    self._prune(window, config)

                window.append(self._clock())
                waited_ms = round(waited * 1000)
                if waited_ms:
                    self._telemetry.gauge(
                        "rate_limit.waited_ms", waited_ms, provider=key.value
                    )
                return waited_ms

    def window(self, provider: Provider | str) -> tuple[float, ...]:
        """Snapshot of the recorded timestamps for ``provider`` (not pruned)."""
        return tuple(self._windows[Provider.parse(provider)])

    def current_count(self, provider: Provider | str) -> int:
        """Requests counted in the trailing window, pruning stale entries first."""
        key = Provider.parse(provider)
        window = self._windows[key]
        self._prune(window, self._limits[key])
        return len(window)

    def remaining(self, provider: Provider | str) -> int:
        """Requests still available in the current window."""
        key = Provider.parse(provider)
        return max(0, self._limits[key].requests_per_minute - self.current_count(key))

    # --- Internal helpers ---

    def _lock_for(self, provider: Provider) -> asyncio.Lock:
        # Created lazily so the limiter can be built outside a running loop.
        lock = self._locks.get(provider)
        if lock is None:
            lock = self._locks[provider] = asyncio.Lock()
        return lock

    def _prune(self, window: deque[float], config: RateLimitConfig) -> None:
        now = self._clock()
        while window and now - window[0] >= config.window_seconds:
            window.popleft()
