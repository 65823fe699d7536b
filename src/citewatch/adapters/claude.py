"""Anthropic Messages API adapter with the server-side web search tool."""

from __future__ import annotations

from typing import Any

from citewatch.adapters.base import HttpProviderAdapter, approximate_location
from citewatch.core.types import Provider, ProviderCallConfig

ANTHROPIC_VERSION = "2023-06-01"
WEB_SEARCH_TOOL = "web_search_20250305"
WEB_SEARCH_MAX_USES = 5


def joined_text(data: dict[str, Any]) -> str:
    """Concatenate every ``text`` content block in order.

    Citation offsets reported by the extractor are positions in this string.
    """
    return "".join(
        block["text"]
        for block in data.get("content") or []
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
    )


class ClaudeAdapter(HttpProviderAdapter):
    """Messages API adapter."""

    provider = Provider.CLAUDE
    endpoint = "https://api.anthropic.com/v1/messages"

    def build_headers(self, config: ProviderCallConfig) -> dict[str, str]:  # noqa: D102
        return {
            "Content-Type": "application/json",
            "x-api-key": config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(self, prompt: str, config: ProviderCallConfig) -> dict[str, Any]:  # noqa: D102
        tool: dict[str, Any] = {
            "type": WEB_SEARCH_TOOL,
            "name": "web_search",
            "max_uses": WEB_SEARCH_MAX_USES,
        }
        location = approximate_location(config.region)
        if location:
            tool["user_location"] = location
        return {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [{"role": "user", "content": prompt}],
            "tools": [tool],
        }

    def parse_text(self, data: dict[str, Any]) -> str:  # noqa: D102
        return joined_text(data)

    def parse_usage(self, data: dict[str, Any]) -> int | None:  # noqa: D102
        usage = data.get("usage")
        if not isinstance(usage, dict):
            return None
        total = int(usage.get("input_tokens") or 0) + int(
            usage.get("output_tokens") or 0
        )
        return total or None
