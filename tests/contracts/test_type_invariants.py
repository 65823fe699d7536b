"""Invariants of the immutable data types that flow through the pipeline."""

import dataclasses

import pytest

from citewatch.core.types import (
    AdapterResponse,
    CompletionResult,
    Failure,
    Provider,
    ProviderCallConfig,
    ProviderOutcome,
    RawCitation,
    Success,
)
from citewatch.exceptions import ProviderHttpError

pytestmark = pytest.mark.contract


@pytest.mark.parametrize("value", ["openai", "GEMINI", " Claude ", Provider.PERPLEXITY])
def test_provider_parse_accepts_names_and_members(value):
    assert isinstance(Provider.parse(value), Provider)


def test_provider_parse_rejects_unknown_names():
    with pytest.raises(ValueError, match="Unsupported provider"):
        Provider.parse("groq")


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"url": "https://acme.io", "start_index": 5, "end_index": 2},
        {"url": "https://acme.io", "start_index": -1},
        {"url": "https://acme.io", "end_index": True},
    ],
)
def test_raw_citation_rejects_invalid_values(kwargs):
    with pytest.raises((TypeError, ValueError)):
        RawCitation(**kwargs)


def test_raw_citation_is_frozen_and_metadata_read_only():
    citation = RawCitation(uri="https://acme.io", metadata={"title": "Acme"})

    assert citation.location == "https://acme.io"
    with pytest.raises(dataclasses.FrozenInstanceError):
        citation.url = "https://other.io"  # type: ignore[misc]
    with pytest.raises(TypeError):
        citation.metadata["title"] = "x"  # type: ignore[index]


def test_adapter_response_raw_is_read_only():
    response = AdapterResponse(text="t", tokens_used=1, model="m", raw={"a": 1})
    with pytest.raises(TypeError):
        response.raw["a"] = 2  # type: ignore[index]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"api_key": "", "model": "m"},
        {"api_key": "k", "model": " "},
        {"api_key": "k", "model": "m", "temperature": 2.5},
        {"api_key": "k", "model": "m", "max_tokens": 0},
    ],
)
def test_provider_call_config_validation(kwargs):
    with pytest.raises((TypeError, ValueError)):
        ProviderCallConfig(**kwargs)


def test_completion_result_rejects_negative_tokens():
    with pytest.raises(ValueError):
        CompletionResult(
            provider=Provider.OPENAI,
            text="",
            tokens_used=-1,
            model="m",
            cost_estimate=0.0,
            execution_time_ms=0,
        )


def test_provider_outcome_views():
    completion = CompletionResult(
        provider=Provider.CLAUDE,
        text="t",
        tokens_used=1,
        model="m",
        cost_estimate=0.0,
        execution_time_ms=3,
    )
    ok = ProviderOutcome(Provider.CLAUDE, "r-1", Success(completion))
    error = ProviderHttpError("claude", "HTTP 500", status_code=500)
    failed = ProviderOutcome(Provider.CLAUDE, "r-2", Failure(error))

    assert (ok.status, ok.completion, ok.error) == ("success", completion, None)
    assert (failed.status, failed.completion, failed.error) == ("error", None, error)
    assert failed.is_rate_limit is False
