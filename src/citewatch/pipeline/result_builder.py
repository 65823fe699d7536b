"""Conversion of adapter responses into immutable completion results.

Adds what the adapter does not know: elapsed time, the cost estimate, the
extracted raw citations and whether the answer was web-grounded.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging

from citewatch.citations.extraction import extract_citations
from citewatch.constants import COST_PER_1K_TOKENS, FALLBACK_COST_PER_1K_TOKENS
from citewatch.core.types import AdapterResponse, CompletionResult, Provider

logger = logging.getLogger(__name__)

# Providers whose answers are always grounded in a web search
ALWAYS_GROUNDED = frozenset({Provider.GEMINI, Provider.PERPLEXITY})


def estimate_cost(
    provider: Provider | str,
    tokens_used: int,
    rates: Mapping[str, float] | None = None,
) -> float:
    """Estimated USD cost: ``tokens / 1000 * rate`` for the provider."""
    table = COST_PER_1K_TOKENS if rates is None else rates
    key = provider.value if isinstance(provider, Provider) else str(provider)
    return tokens_used / 1000 * table.get(key, FALLBACK_COST_PER_1K_TOKENS)


class ResultBuilder:
    """Build `CompletionResult` objects from adapter responses."""

    def __init__(self, cost_rates: Mapping[str, float] | None = None) -> None:
        """Create a builder; ``cost_rates`` maps provider name to USD per 1K tokens."""
        self.cost_rates = dict(COST_PER_1K_TOKENS if cost_rates is None else cost_rates)

    def build(
        self,
        provider: Provider,
        response: AdapterResponse,
        execution_time_ms: int,
    ) -> CompletionResult:
        """Assemble the result; extraction problems yield no citations."""
        citations = extract_citations(provider, response.raw, response.text)
        return CompletionResult(
            provider=provider,
            text=response.text,
            tokens_used=response.tokens_used,
            model=response.model,
            cost_estimate=estimate_cost(
                provider, response.tokens_used, self.cost_rates
            ),
            execution_time_ms=max(0, execution_time_ms),
            raw_citations=tuple(citations) if citations else None,
            has_web_search=bool(citations) or provider in ALWAYS_GROUNDED,
        )
