"""Completion acquisition and citation processing pipeline."""

from citewatch.pipeline.executor import (
    CitationPipeline,
    ProcessedCitations,
    RunSummary,
    create_pipeline,
    summarize_outcomes,
)
from citewatch.pipeline.result_builder import ResultBuilder, estimate_cost
from citewatch.pipeline.store import (
    CitationRecord,
    CitationStore,
    InMemoryCitationStore,
    build_citation_records,
)

__all__ = [
    "CitationPipeline",
    "CitationRecord",
    "CitationStore",
    "InMemoryCitationStore",
    "ProcessedCitations",
    "ResultBuilder",
    "RunSummary",
    "build_citation_records",
    "create_pipeline",
    "estimate_cost",
    "summarize_outcomes",
]
