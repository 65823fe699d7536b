"""Error mapping for provider completion requests.

Turns non-2xx HTTP responses and SDK errors into the package's typed
exceptions, parsing provider-specific retry hints on the way.
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
import logging
import re
from typing import Any

from google.genai import errors as genai_errors
import httpx

from citewatch.exceptions import ProviderError, ProviderHttpError, RateLimitExceeded

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)s\s*$")


def parse_retry_after(
    headers: httpx.Headers | dict[str, str], *, now: datetime | None = None
) -> int | None:
    """Read ``retry-after-ms`` or ``Retry-After`` into milliseconds.

    ``Retry-After`` may hold delay seconds or an HTTP date. Returns None when
    neither header is present or parseable.
    """
    headers = httpx.Headers(headers)
    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return max(0, round(float(raw_ms)))
        except ValueError:
            logger.debug("Ignoring unparseable retry-after-ms header: %r", raw_ms)

    raw = headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0, round(float(raw) * 1000))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable Retry-After header: %r", raw)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    delta = when - (now or datetime.now(UTC))
    return max(0, round(delta.total_seconds() * 1000))


def parse_duration_ms(value: Any) -> int | None:
    """Parse a protobuf duration string such as ``"5s"`` or ``"1.5s"``."""
    if not isinstance(value, str):
        return None
    match = _DURATION_RE.match(value)
    if match is None:
        return None
    return round(float(match.group(1)) * 1000)


def gemini_rate_limit_details(
    payload: Any,
) -> tuple[int | None, list[dict[str, Any]]]:
    """Extract ``(retry_after_ms, quota_violations)`` from a Gemini error body.

    Accepts either the full ``{"error": {...}}`` envelope or the inner object.
    """
    if not isinstance(payload, dict):
        return None, []
    inner = payload.get("error", payload)
    details = inner.get("details") if isinstance(inner, dict) else None
    if not isinstance(details, list):
        return None, []

    retry_after_ms: int | None = None
    violations: list[dict[str, Any]] = []
    for entry in details:
        if not isinstance(entry, dict):
            continue
        type_name = str(entry.get("@type", ""))
        if "RetryInfo" in type_name and retry_after_ms is None:
            retry_after_ms = parse_duration_ms(entry.get("retryDelay"))
        elif "QuotaFailure" in type_name:
            violations.extend(
                v for v in entry.get("violations") or [] if isinstance(v, dict)
            )
    return retry_after_ms, violations


def _json_or_none(response: httpx.Response) -> Any | None:
    try:
        return response.json()
    except ValueError:
        return None


def error_message(response: httpx.Response) -> str:
    """Provider ``error.message`` when the body is JSON, else the raw text."""
    body = _json_or_none(response)
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if body.get("message"):
            return str(body["message"])
    return response.text or response.reason_phrase


class ProviderErrorHandler:
    """Maps provider failures for one provider into typed errors."""

    def __init__(self, provider: str) -> None:  # noqa: D107
        self.provider = provider

    def raise_for_response(self, response: httpx.Response) -> None:
        """Raise a typed error for a non-2xx ``response``; return otherwise."""
        if response.is_success:
            return

        message = error_message(response)
        if response.status_code == 429:
            retry_after_ms = parse_retry_after(response.headers)
            logger.warning(
                "%s rate limit exceeded (429), retry after %s ms",
                self.provider,
                retry_after_ms if retry_after_ms is not None else "default",
            )
            raise RateLimitExceeded(
                self.provider,
                f"rate limit exceeded: {message}",
                retry_after_ms=retry_after_ms,
                detail=_json_or_none(response),
            )

        raise ProviderHttpError(
            self.provider,
            f"HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            body=response.text,
        )

    def handle_transport_error(self, error: httpx.HTTPError) -> ProviderHttpError:
        """Wrap a connection/timeout failure; the caller raises it ``from`` error."""
        return ProviderHttpError(
            self.provider, f"request failed: {type(error).__name__}: {error}"
        )

    def handle_sdk_error(self, error: genai_errors.APIError) -> ProviderError:
        """Map a google-genai SDK error, reading RetryInfo/QuotaFailure on 429."""
        if error.code == 429:
            retry_after_ms, violations = gemini_rate_limit_details(error.details)
            logger.warning(
                "%s rate limit exceeded (429), retry after %s ms",
                self.provider,
                retry_after_ms if retry_after_ms is not None else "default",
            )
            return RateLimitExceeded(
                self.provider,
                f"rate limit exceeded: {error.message or error}",
                retry_after_ms=retry_after_ms,
                detail={"violations": violations} if violations else None,
            )
        return ProviderHttpError(
            self.provider,
            f"HTTP {error.code}: {error.message or error}",
            status_code=error.code,
        )
