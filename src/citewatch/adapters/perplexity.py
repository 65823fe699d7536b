"""Perplexity chat completions adapter (always grounded in web search)."""

from __future__ import annotations

from typing import Any

from citewatch.adapters.base import HttpProviderAdapter
from citewatch.core.types import Provider, ProviderCallConfig


class PerplexityAdapter(HttpProviderAdapter):
    """Sonar chat completions adapter."""

    provider = Provider.PERPLEXITY
    endpoint = "https://api.perplexity.ai/chat/completions"

    def build_headers(self, config: ProviderCallConfig) -> dict[str, str]:  # noqa: D102
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }

    def build_body(self, prompt: str, config: ProviderCallConfig) -> dict[str, Any]:  # noqa: D102
        body: dict[str, Any] = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "return_citations": True,
            "search_domain_filter": [],
        }
        if config.region:
            body["web_search_options"] = {
                "user_location": {"country": config.region.strip().upper()}
            }
        return body

    def parse_text(self, data: dict[str, Any]) -> str:  # noqa: D102
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    def parse_usage(self, data: dict[str, Any]) -> int | None:  # noqa: D102
        usage = data.get("usage")
        if isinstance(usage, dict) and usage.get("total_tokens"):
            return int(usage["total_tokens"])
        return None
