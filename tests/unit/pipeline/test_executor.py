"""CitationPipeline: acquisition, processing and per-provider outcomes."""

from collections.abc import Sequence
import itertools

import pytest

from citewatch.adapters.base import ProviderAdapter
from citewatch.client.rate_limiter import RateLimiter
from citewatch.client.retry import RetryingCaller
from citewatch.core.types import (
    AdapterResponse,
    CitationType,
    ClassificationContext,
    Competitor,
    CompletionResult,
    Provider,
    ProviderCallConfig,
)
from citewatch.exceptions import (
    ConfigurationError,
    ExhaustedRetries,
    ProviderHttpError,
    RateLimitExceeded,
)
from citewatch.pipeline.executor import (
    CitationPipeline,
    create_pipeline,
    summarize_outcomes,
)
from citewatch.pipeline.store import CitationRecord, InMemoryCitationStore

pytestmark = pytest.mark.unit

OPENAI_TEXT = "Acme is popular. Rival is cheap."
OPENAI_RAW = {
    "output": [
        {
            "type": "message",
            "content": [
                {
                    "type": "output_text",
                    "text": OPENAI_TEXT,
                    "annotations": [
                        {"type": "url_citation", "url": "https://acme.io/",
                         "start_index": 0, "end_index": 16},
                        {"type": "url_citation", "url": "https://www.acme.io",
                         "start_index": 0, "end_index": 16},
                        {"type": "url_citation", "url": "https://rival.com/plans",
                         "start_index": 17, "end_index": 32},
                    ],
                }
            ],
        }
    ]
}
PERPLEXITY_TEXT = "News covers CRM.[1]"
PERPLEXITY_RAW = {"citations": ["https://news.site/crm"]}


class StubAdapter(ProviderAdapter):
    """Replays scripted responses or errors, one per call."""

    def __init__(self, provider: Provider, *outcomes: AdapterResponse | Exception):
        self.provider = provider
        super().__init__()
        self.outcomes = list(outcomes)
        self.configs: list[ProviderCallConfig] = []
        self.closed = False

    async def complete(self, prompt: str, config: ProviderCallConfig) -> AdapterResponse:
        self.configs.append(config)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class FailingStore(InMemoryCitationStore):
    """Store whose reads and/or writes fail."""

    def __init__(self, *, fail_load: bool = False, fail_insert: bool = False):
        super().__init__()
        self.fail_load = fail_load
        self.fail_insert = fail_insert

    async def load_classification_context(self, project_id: str) -> ClassificationContext:
        if self.fail_load:
            raise ConnectionError("database unavailable")
        return await super().load_classification_context(project_id)

    async def insert_citations(self, records: Sequence[CitationRecord]) -> int:
        if self.fail_insert:
            raise ConnectionError("database unavailable")
        return await super().insert_citations(records)


async def _no_sleep(_seconds: float) -> None:
    return None


def _response(text: str, raw: dict, tokens: int = 100) -> AdapterResponse:
    return AdapterResponse(text=text, tokens_used=tokens, model="stub-model", raw=raw)


def _rate_limited(provider: str) -> RateLimitExceeded:
    return RateLimitExceeded(provider, "quota", retry_after_ms=10)


@pytest.fixture
def store() -> InMemoryCitationStore:
    store = InMemoryCitationStore()
    store.register_project(
        "proj-1", "https://acme.io", [Competitor(id="c-rival", domain="rival.com")]
    )
    return store


@pytest.fixture
def make_pipeline(make_settings):
    def _make(adapters, store=None, **settings_overrides) -> CitationPipeline:
        settings = make_settings(**settings_overrides)
        limiter = RateLimiter(settings.rate_limits(), sleep=_no_sleep)
        counter = itertools.count(1)
        return CitationPipeline(
            settings,
            store=store,
            adapters={a.provider: a for a in adapters},
            limiter=limiter,
            caller=RetryingCaller(limiter, max_retries=settings.max_retries, sleep=_no_sleep),
            response_id_factory=lambda: f"resp-{next(counter)}",
        )

    return _make


@pytest.mark.asyncio
async def test_complete_retries_rate_limits_then_returns_result(make_pipeline):
    adapter = StubAdapter(
        Provider.OPENAI, _rate_limited("openai"), _response(OPENAI_TEXT, OPENAI_RAW)
    )
    pipeline = make_pipeline([adapter])

    result = await pipeline.complete("openai", "best crm?", region="us")

    assert isinstance(result, CompletionResult)
    assert result.provider is Provider.OPENAI
    assert len(result.citations) == 3
    assert result.execution_time_ms >= 0
    assert len(adapter.configs) == 2
    assert adapter.configs[0].api_key == "sk-openai-test"
    assert adapter.configs[0].region == "us"


@pytest.mark.asyncio
async def test_complete_without_api_key_raises_configuration_error(make_pipeline):
    pipeline = make_pipeline([], openai_api_key=None)

    with pytest.raises(ConfigurationError):
        await pipeline.complete("openai", "q")


@pytest.mark.asyncio
async def test_run_records_independent_outcomes(make_pipeline, store):
    adapters = [
        StubAdapter(Provider.OPENAI, _response(OPENAI_TEXT, OPENAI_RAW)),
        StubAdapter(Provider.GEMINI, *(_rate_limited("gemini") for _ in range(3))),
        StubAdapter(
            Provider.CLAUDE,
            ProviderHttpError("claude", "HTTP 401: invalid x-api-key", status_code=401),
        ),
        StubAdapter(Provider.PERPLEXITY, _response(PERPLEXITY_TEXT, PERPLEXITY_RAW)),
    ]
    pipeline = make_pipeline(adapters, store=store)

    outcomes = await pipeline.run("best crm?", "proj-1")

    by_provider = {o.provider: o for o in outcomes}
    assert [o.provider for o in outcomes] == list(Provider)

    openai = by_provider[Provider.OPENAI]
    assert openai.status == "success"
    assert openai.citations_saved == 2
    types = {c.normalized_uri: (c.citation_type, c.competitor_id) for c in openai.citations}
    assert types == {
        "acme.io": (CitationType.BRAND, None),
        "rival.com/plans": (CitationType.COMPETITOR, "c-rival"),
    }

    gemini = by_provider[Provider.GEMINI]
    assert gemini.status == "error"
    assert isinstance(gemini.error, ExhaustedRetries)
    assert gemini.is_rate_limit is True
    assert gemini.completion is None

    claude = by_provider[Provider.CLAUDE]
    assert claude.status == "error"
    assert claude.error.status_code == 401
    assert claude.is_rate_limit is False

    perplexity = by_provider[Provider.PERPLEXITY]
    assert perplexity.status == "success"
    assert perplexity.citations[0].citation_type is CitationType.OTHER

    acme_row = next(
        r for r in store.rows_for(openai.response_id) if r["normalized_uri"] == "acme.io"
    )
    assert acme_row["metadata"]["occurrence_count"] == 2
    assert acme_row["citation_type"] == "brand"

    summary = summarize_outcomes(outcomes)
    assert summary.total == 4
    assert summary.succeeded == 2
    assert summary.failed == 2
    assert summary.rate_limited == 1
    assert summary.citations_saved == 3
    assert summary.status == "completed"


@pytest.mark.asyncio
async def test_run_fails_only_when_every_provider_fails(make_pipeline):
    adapters = [
        StubAdapter(Provider.OPENAI, ProviderHttpError("openai", "HTTP 500", status_code=500)),
        StubAdapter(Provider.CLAUDE, ProviderHttpError("claude", "HTTP 500", status_code=500)),
    ]
    pipeline = make_pipeline(adapters)

    outcomes = await pipeline.run("q", "proj-1", providers=["openai", "claude"])

    assert summarize_outcomes(outcomes).status == "failed"


@pytest.mark.asyncio
async def test_run_without_any_api_key_raises(make_pipeline):
    pipeline = make_pipeline(
        [],
        openai_api_key=None,
        gemini_api_key=None,
        claude_api_key=None,
        perplexity_api_key=None,
    )

    with pytest.raises(ConfigurationError):
        await pipeline.run("q", "proj-1")


@pytest.mark.asyncio
async def test_run_skips_requested_providers_without_keys(make_pipeline):
    adapter = StubAdapter(Provider.PERPLEXITY, _response(PERPLEXITY_TEXT, PERPLEXITY_RAW))
    pipeline = make_pipeline([adapter], claude_api_key=None)

    outcomes = await pipeline.run("q", "proj-1", providers=["claude", "perplexity"])

    assert [o.provider for o in outcomes] == [Provider.PERPLEXITY]
    assert outcomes[0].response_id == "resp-1"


@pytest.mark.asyncio
async def test_unexpected_adapter_errors_become_provider_failures(make_pipeline):
    adapter = StubAdapter(Provider.OPENAI, RuntimeError("boom"))
    pipeline = make_pipeline([adapter])

    (outcome,) = await pipeline.run("q", "proj-1", providers=[Provider.OPENAI])

    assert outcome.status == "error"
    assert "boom" in str(outcome.error)


@pytest.mark.asyncio
async def test_context_load_failure_classifies_everything_as_other(make_pipeline):
    store = FailingStore(fail_load=True)
    adapter = StubAdapter(Provider.OPENAI, _response(OPENAI_TEXT, OPENAI_RAW))
    pipeline = make_pipeline([adapter], store=store)

    (outcome,) = await pipeline.run("q", "proj-1", providers=["openai"])

    assert {c.citation_type for c in outcome.citations} == {CitationType.OTHER}
    assert outcome.citations_saved == 2


@pytest.mark.asyncio
async def test_store_write_failure_reports_zero_saved(make_pipeline):
    failing = FailingStore(fail_insert=True)
    failing.register_project("proj-1", "https://acme.io")
    adapter = StubAdapter(Provider.OPENAI, _response(OPENAI_TEXT, OPENAI_RAW))
    pipeline = make_pipeline([adapter], store=failing)

    (outcome,) = await pipeline.run("q", "proj-1", providers=["openai"])

    assert outcome.status == "success"
    assert outcome.citations_saved == 0
    assert len(outcome.citations) == 2


@pytest.mark.asyncio
async def test_process_completion_without_citations_skips_store(make_pipeline):
    store = FailingStore(fail_load=True, fail_insert=True)
    pipeline = make_pipeline([], store=store)
    completion = CompletionResult(
        provider=Provider.OPENAI,
        text="no sources",
        tokens_used=3,
        model="m",
        cost_estimate=0.0,
        execution_time_ms=1,
    )

    processed = await pipeline.process_completion("resp-x", "proj-1", completion)

    assert processed.citations == []
    assert processed.saved == 0


@pytest.mark.asyncio
async def test_aclose_closes_adapters(make_pipeline):
    adapter = StubAdapter(Provider.OPENAI)
    pipeline = make_pipeline([adapter])

    await pipeline.aclose()

    assert adapter.closed is True


def test_adapters_are_created_lazily_from_settings(make_pipeline):
    pipeline = make_pipeline([], request_timeout_seconds=12.5)

    adapter = pipeline.adapter_for("claude")

    assert adapter.provider is Provider.CLAUDE
    assert adapter.timeout == 12.5
    assert pipeline.adapter_for(Provider.CLAUDE) is adapter


def test_create_pipeline_resolves_configuration_from_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    monkeypatch.setenv("CITEWATCH_MAX_RETRIES", "5")

    pipeline = create_pipeline()

    assert pipeline.settings.available_providers() == (Provider.OPENAI,)
    assert pipeline.caller.max_retries == 5


def test_summarize_empty_run():
    summary = summarize_outcomes([])
    assert summary.total == 0
    assert summary.status == "completed"
