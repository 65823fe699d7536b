"""Provider adapters, one per `citewatch.core.types.Provider`."""

from __future__ import annotations

from typing import Any

from citewatch.adapters.base import (
    HttpProviderAdapter,
    ProviderAdapter,
    estimate_tokens,
)
from citewatch.adapters.claude import ClaudeAdapter
from citewatch.adapters.gemini import GeminiAdapter
from citewatch.adapters.openai import OpenAIAdapter
from citewatch.adapters.perplexity import PerplexityAdapter
from citewatch.core.types import Provider

ADAPTERS: dict[Provider, type[ProviderAdapter]] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.GEMINI: GeminiAdapter,
    Provider.CLAUDE: ClaudeAdapter,
    Provider.PERPLEXITY: PerplexityAdapter,
}


def create_adapter(provider: Provider | str, **kwargs: Any) -> ProviderAdapter:
    """Instantiate the adapter registered for ``provider``.

    Keyword arguments go to the adapter constructor (``timeout``, and
    ``client`` for HTTP adapters or ``client_factory`` for Gemini).
    """
    return ADAPTERS[Provider.parse(provider)](**kwargs)


__all__ = [
    "ADAPTERS",
    "ClaudeAdapter",
    "GeminiAdapter",
    "HttpProviderAdapter",
    "OpenAIAdapter",
    "PerplexityAdapter",
    "ProviderAdapter",
    "create_adapter",
    "estimate_tokens",
]
