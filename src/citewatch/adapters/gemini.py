"""Gemini adapter using the google-genai SDK with Google Search grounding."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
import httpx

from citewatch.adapters.base import ProviderAdapter, estimate_tokens
from citewatch.constants import NETWORK_TIMEOUT
from citewatch.core.types import AdapterResponse, Provider, ProviderCallConfig
from citewatch.exceptions import ProviderHttpError

logger = logging.getLogger(__name__)


def response_to_dict(response: Any) -> dict[str, Any]:
    """Dump an SDK response to its camelCase REST shape.

    Plain mappings (recorded payloads in tests) pass through unchanged.
    """
    if isinstance(response, Mapping):
        return dict(response)
    return response.model_dump(mode="json", by_alias=True, exclude_none=True)


def candidate_text(data: Mapping[str, Any]) -> str:
    """Text of the first part of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts:
        return ""
    return parts[0].get("text") or ""


def _total_tokens(data: Mapping[str, Any]) -> int | None:
    usage = data.get("usageMetadata") or data.get("usage_metadata") or {}
    total = usage.get("totalTokenCount") or usage.get("total_token_count")
    return int(total) if total else None


class GeminiAdapter(ProviderAdapter):
    """``generate_content`` with the ``google_search`` tool enabled."""

    provider = Provider.GEMINI

    def __init__(
        self,
        *,
        client_factory: Callable[[str], genai.Client] | None = None,
        timeout: float = NETWORK_TIMEOUT,
    ) -> None:
        """Create the adapter; ``client_factory`` builds a client per API key."""
        super().__init__(timeout=timeout)
        self._client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> genai.Client:
        return genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )

    async def complete(self, prompt: str, config: ProviderCallConfig) -> AdapterResponse:  # noqa: D102
        client = self._client_factory(config.api_key)
        generation_config = types.GenerateContentConfig(
            temperature=config.temperature,
            max_output_tokens=config.max_tokens,
            tools=[types.Tool(google_search=types.GoogleSearch())],
        )
        try:
            response = await client.aio.models.generate_content(
                model=config.model,
                contents=prompt,
                config=generation_config,
            )
        except genai_errors.APIError as e:
            raise self.errors.handle_sdk_error(e) from e
        except httpx.HTTPError as e:
            raise self.errors.handle_transport_error(e) from e

        try:
            data = response_to_dict(response)
        except (AttributeError, TypeError, ValueError) as e:
            raise ProviderHttpError(
                self.provider.value, f"unreadable response: {e}"
            ) from e

        text = candidate_text(data)
        tokens = _total_tokens(data) or estimate_tokens(text)
        logger.info(
            "%s completion succeeded: %d tokens, %d chars",
            self.provider.value,
            tokens,
            len(text),
        )
        return AdapterResponse(text=text, tokens_used=tokens, model=config.model, raw=data)
