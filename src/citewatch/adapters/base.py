"""Provider adapter interface and the shared HTTP implementation.

An adapter issues exactly one completion request and returns an
`AdapterResponse` holding the text, the token count and the complete decoded
body. Adapters never extract citations; that is the job of
`citewatch.citations.extraction`, keyed by the same `Provider`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import math
from typing import Any, ClassVar

import httpx

from citewatch.client.error_handler import ProviderErrorHandler
from citewatch.constants import CHARS_PER_TOKEN, NETWORK_TIMEOUT
from citewatch.core.types import AdapterResponse, Provider, ProviderCallConfig
from citewatch.exceptions import ProviderHttpError

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Approximate token usage as one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class ProviderAdapter(ABC):
    """One implementation per `Provider`."""

    provider: ClassVar[Provider]

    def __init__(self, *, timeout: float = NETWORK_TIMEOUT) -> None:  # noqa: D107
        self.timeout = timeout
        self.errors = ProviderErrorHandler(self.provider.value)

    @abstractmethod
    async def complete(self, prompt: str, config: ProviderCallConfig) -> AdapterResponse:
        """Issue one completion request for ``prompt``.

        Raises:
            RateLimitExceeded: The provider answered 429.
            ProviderHttpError: Any other non-2xx answer or transport failure.
        """
        ...

    async def aclose(self) -> None:  # noqa: B027
        """Release any client resources the adapter owns."""


class HttpProviderAdapter(ProviderAdapter):
    """Adapter for providers reached with a plain JSON POST over httpx.

    Subclasses describe the request (`endpoint`, `build_headers`,
    `build_body`) and how to read text and usage out of the response
    (`parse_text`, `parse_usage`). An injected ``client`` is borrowed and
    never closed; otherwise a short-lived client is created per request.
    """

    endpoint: ClassVar[str]

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = NETWORK_TIMEOUT,
    ) -> None:
        """Create the adapter, optionally sharing an existing ``httpx`` client."""
        super().__init__(timeout=timeout)
        self._client = client

    @abstractmethod
    def build_headers(self, config: ProviderCallConfig) -> dict[str, str]: ...  # noqa: D102

    @abstractmethod
    def build_body(self, prompt: str, config: ProviderCallConfig) -> dict[str, Any]: ...  # noqa: D102

    @abstractmethod
    def parse_text(self, data: dict[str, Any]) -> str: ...  # noqa: D102

    @abstractmethod
    def parse_usage(self, data: dict[str, Any]) -> int | None:
        """Reported total token usage, or None when the body has none."""
        ...

    async def complete(self, prompt: str, config: ProviderCallConfig) -> AdapterResponse:  # noqa: D102
        response = await self._post(
            json=self.build_body(prompt, config),
            headers=self.build_headers(config),
        )
        self.errors.raise_for_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderHttpError(
                self.provider.value,
                "response body is not valid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e
        if not isinstance(data, dict):
            raise ProviderHttpError(
                self.provider.value,
                f"expected a JSON object, got {type(data).__name__}",
                status_code=response.status_code,
            )

        text = self.parse_text(data)
        tokens = self.parse_usage(data) or estimate_tokens(text)
        logger.info(
            "%s completion succeeded: %d tokens, %d chars",
            self.provider.value,
            tokens,
            len(text),
        )
        return AdapterResponse(
            text=text,
            tokens_used=tokens,
            model=config.model,
            raw=data,
        )

    async def _post(
        self, *, json: dict[str, Any], headers: dict[str, str]
    ) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.post(
                    self.endpoint, json=json, headers=headers, timeout=self.timeout
                )
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(self.endpoint, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise self.errors.handle_transport_error(e) from e


def approximate_location(region: str | None) -> dict[str, str] | None:
    """Web-search ``user_location`` for a two-letter country code, if given."""
    if region and len(region.strip()) == 2 and region.strip().isalpha():
        return {"type": "approximate", "country": region.strip().upper()}
    return None
