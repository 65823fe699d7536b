"""OpenAI Responses API adapter with the hosted web search tool."""

from __future__ import annotations

from typing import Any

from citewatch.adapters.base import HttpProviderAdapter, approximate_location
from citewatch.core.types import Provider, ProviderCallConfig


def output_text(data: dict[str, Any]) -> str:
    """Text of the final assistant message in a Responses API body.

    Falls back to the Chat Completions ``choices[0].message.content`` shape.
    """
    text = ""
    for item in data.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and part.get("type") == "output_text":
                text = part.get("text") or ""
                break
    if text:
        return text

    choices = data.get("choices") or []
    if choices and isinstance(choices[0], dict):
        content = (choices[0].get("message") or {}).get("content")
        if isinstance(content, str):
            return content
    return ""


class OpenAIAdapter(HttpProviderAdapter):
    """Responses API adapter.

    The Responses API rejects ``temperature`` and ``max_output_tokens`` for
    the search-capable reasoning models, so neither is sent.
    """

    provider = Provider.OPENAI
    endpoint = "https://api.openai.com/v1/responses"

    def build_headers(self, config: ProviderCallConfig) -> dict[str, str]:  # noqa: D102
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }

    def build_body(self, prompt: str, config: ProviderCallConfig) -> dict[str, Any]:  # noqa: D102
        tool: dict[str, Any] = {"type": "web_search"}
        location = approximate_location(config.region)
        if location:
            tool["user_location"] = location
        return {"model": config.model, "tools": [tool], "input": prompt}

    def parse_text(self, data: dict[str, Any]) -> str:  # noqa: D102
        return output_text(data)

    def parse_usage(self, data: dict[str, Any]) -> int | None:  # noqa: D102
        usage = data.get("usage")
        if isinstance(usage, dict) and usage.get("total_tokens"):
            return int(usage["total_tokens"])
        info = data.get("usage_info")
        if isinstance(info, dict):
            total = int(info.get("input_tokens") or 0) + int(
                info.get("output_tokens") or 0
            )
            return total or None
        return None
