"""The primary entry point: acquire completions and process their citations.

`CitationPipeline` owns one `RateLimiter` and one `RetryingCaller` shared by
every call it makes, so concurrent runs for different prompts still respect
each provider's window. A multi-provider `run` records every provider's
outcome independently: one provider exhausting its retries never prevents
the others from completing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
import dataclasses
import logging
import time
from typing import TYPE_CHECKING, Literal, NamedTuple
import uuid

from citewatch.adapters import create_adapter
from citewatch.citations.classification import classify_all
from citewatch.citations.dedup import deduplicate
from citewatch.client.rate_limiter import RateLimiter
from citewatch.client.retry import RetryingCaller
from citewatch.config import resolve_config
from citewatch.core.types import (
    ClassificationContext,
    ClassifiedCitation,
    CompletionResult,
    Failure,
    Provider,
    ProviderOutcome,
    Success,
)
from citewatch.exceptions import ConfigurationError, ProviderError
from citewatch.pipeline.result_builder import ResultBuilder
from citewatch.pipeline.store import build_citation_records
from citewatch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from citewatch.adapters.base import ProviderAdapter
    from citewatch.config import CitewatchSettings
    from citewatch.pipeline.store import CitationStore
    from citewatch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

T_PIPELINE_PROCESS = "pipeline.process"


class ProcessedCitations(NamedTuple):
    """Classified citations of one response and how many rows were stored."""

    citations: list[ClassifiedCitation]
    saved: int


@dataclasses.dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregate view of a multi-provider run."""

    total: int
    succeeded: int
    failed: int
    rate_limited: int
    citations_saved: int
    status: Literal["completed", "failed"]


def summarize_outcomes(outcomes: Iterable[ProviderOutcome]) -> RunSummary:
    """Count outcomes; the run failed only when every provider failed."""
    items = list(outcomes)
    succeeded = sum(1 for o in items if o.status == "success")
    return RunSummary(
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        rate_limited=sum(1 for o in items if o.is_rate_limit),
        citations_saved=sum(o.citations_saved for o in items),
        status="failed" if items and succeeded == 0 else "completed",
    )


class CitationPipeline:
    """Acquires provider completions and turns them into stored citations."""

    def __init__(
        self,
        settings: CitewatchSettings | None = None,
        *,
        store: CitationStore | None = None,
        adapters: Mapping[Provider, ProviderAdapter] | None = None,
        limiter: RateLimiter | None = None,
        caller: RetryingCaller | None = None,
        result_builder: ResultBuilder | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        response_id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Wire the pipeline; anything not injected is built from ``settings``.

        Args:
            settings: Frozen settings; resolved from the environment and
                config files when omitted.
            store: Persistence for citations. Without one, citations are
                classified against an empty context and nothing is saved.
            adapters: Adapter per provider; missing ones are created lazily.
            limiter: Shared rate limiter (defaults to the configured ceilings).
            caller: Retrying caller (defaults to one around ``limiter``).
            result_builder: Converts adapter responses into results.
            telemetry: Telemetry context shared by every component.
            response_id_factory: Produces the id of each provider response.
        """
        self.settings = settings if settings is not None else resolve_config().to_frozen()
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()
        self.limiter = limiter or RateLimiter(
            self.settings.rate_limits(), telemetry=self._telemetry
        )
        self.caller = caller or RetryingCaller(
            self.limiter,
            max_retries=self.settings.max_retries,
            default_retry_after_ms=self.settings.default_retry_after_ms,
            telemetry=self._telemetry,
        )
        self.store = store
        self._adapters: dict[Provider, ProviderAdapter] = dict(adapters or {})
        self._builder = result_builder or ResultBuilder()
        self._new_response_id = response_id_factory or (lambda: uuid.uuid4().hex)

    def adapter_for(self, provider: Provider | str) -> ProviderAdapter:
        """Adapter for ``provider``, created on first use."""
        key = Provider.parse(provider)
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = self._adapters[key] = create_adapter(
                key, timeout=self.settings.request_timeout_seconds
            )
        return adapter

    async def complete(
        self,
        provider: Provider | str,
        prompt: str,
        *,
        region: str | None = None,
        max_retries: int | None = None,
    ) -> CompletionResult:
        """One rate-limited, retried completion from ``provider``.

        Raises:
            ConfigurationError: ``provider`` has no API key.
            ExhaustedRetries: Every attempt was rate limited.
            ProviderError: Any other provider failure.
        """
        key = Provider.parse(provider)
        config = self.settings.call_config_for(key, region)
        adapter = self.adapter_for(key)

        async def attempt() -> CompletionResult:
            started = time.perf_counter()
            response = await adapter.complete(prompt, config)
            elapsed_ms = round((time.perf_counter() - started) * 1000)
            return self._builder.build(key, response, elapsed_ms)

        return await self.caller.call(key, attempt, max_retries)

    async def process_completion(
        self, response_id: str, project_id: str, completion: CompletionResult
    ) -> ProcessedCitations:
        """Deduplicate, classify and store the citations of one completion.

        Never raises for store failures: a failed context read classifies
        against an empty context and a failed write reports zero saved rows.
        """
        with self._telemetry(T_PIPELINE_PROCESS, provider=completion.provider.value):
            raw = [c for c in completion.citations if c.url or c.uri]
            deduplicated = deduplicate(raw)
            if not deduplicated:
                logger.info("No citations in %s response %s", completion.provider.value, response_id)
                return ProcessedCitations([], 0)

            context = await self._load_context(project_id)
            classified = classify_all(deduplicated, context)
            saved = await self._save(response_id, project_id, classified)
            return ProcessedCitations(classified, saved)

    async def run(
        self,
        prompt: str,
        project_id: str,
        providers: Iterable[Provider | str] | None = None,
        *,
        region: str | None = None,
    ) -> list[ProviderOutcome]:
        """Run ``prompt`` against several providers concurrently.

        ``providers`` defaults to every provider with an API key; requested
        providers without a key are skipped with a warning.

        Raises:
            ConfigurationError: No requested provider has an API key.
        """
        requested = (
            list(dict.fromkeys(Provider.parse(p) for p in providers))
            if providers is not None
            else list(self.settings.available_providers())
        )
        selected = [p for p in requested if self.settings.api_key_for(p)]
        for skipped in (p for p in requested if p not in selected):
            logger.warning("Skipping %s: no API key configured", skipped.value)
        if not selected:
            raise ConfigurationError(
                "No AI providers available. Configure at least one provider API key."
            )

        logger.info(
            "Running prompt for project %s on %s",
            project_id,
            ", ".join(p.value for p in selected),
        )
        outcomes = await asyncio.gather(
            *(self._run_one(p, prompt, project_id, region) for p in selected)
        )
        return list(outcomes)

    async def aclose(self) -> None:
        """Release adapter resources."""
        for adapter in self._adapters.values():
            await adapter.aclose()

    # --- Internal helpers ---

    async def _run_one(
        self, provider: Provider, prompt: str, project_id: str, region: str | None
    ) -> ProviderOutcome:
        response_id = self._new_response_id()
        try:
            completion = await self.complete(provider, prompt, region=region)
        except ProviderError as e:
            logger.error(
                "%s failed for project %s: %s", provider.value, project_id, e,
                exc_info=True,
            )
            return ProviderOutcome(provider, response_id, Failure(e))
        except Exception as e:  # normalize unexpected failures
            logger.error(
                "%s failed unexpectedly for project %s", provider.value, project_id,
                exc_info=True,
            )
            error = ProviderError(provider.value, f"unexpected failure: {e}")
            return ProviderOutcome(provider, response_id, Failure(error))

        processed = await self.process_completion(response_id, project_id, completion)
        return ProviderOutcome(
            provider,
            response_id,
            Success(completion),
            citations=tuple(processed.citations),
            citations_saved=processed.saved,
        )

    async def _load_context(self, project_id: str) -> ClassificationContext:
        if self.store is None:
            return ClassificationContext()
        try:
            return await self.store.load_classification_context(project_id)
        except Exception:
            logger.warning(
                "Could not load classification context for project %s; "
                "classifying every citation as other",
                project_id,
                exc_info=True,
            )
            return ClassificationContext()

    async def _save(
        self, response_id: str, project_id: str, classified: list[ClassifiedCitation]
    ) -> int:
        if self.store is None:
            return 0
        records = build_citation_records(response_id, project_id, classified)
        try:
            saved = await self.store.insert_citations(records)
        except Exception:
            logger.error(
                "Failed to save %d citations for response %s",
                len(records),
                response_id,
                exc_info=True,
            )
            return 0
        logger.info("Saved %d citations for response %s", saved, response_id)
        return saved


def create_pipeline(
    settings: CitewatchSettings | None = None, **kwargs: object
) -> CitationPipeline:
    """Create a pipeline, resolving configuration when none is given.

    This is the only place where ambient configuration is resolved.
    """
    final_settings = settings if settings is not None else resolve_config().to_frozen()
    return CitationPipeline(final_settings, **kwargs)  # type: ignore[arg-type]
