"""Persistence boundary for classified citations.

The pipeline reads a project's `ClassificationContext` once per batch and
writes one batch of rows keyed by ``(response_id, normalized_uri)``. Real
deployments implement `CitationStore` against their database;
`InMemoryCitationStore` is the process-local implementation used in tests
and small scripts.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging
from typing import Any, Protocol, TypedDict

from citewatch.constants import TEXT_FRAGMENT_SEPARATOR
from citewatch.core.types import (
    ClassificationContext,
    ClassifiedCitation,
    Competitor,
)

logger = logging.getLogger(__name__)


class CitationRecord(TypedDict):
    """One persisted citation row."""

    response_id: str
    project_id: str
    normalized_uri: str
    web_search_query: str | None
    uri: str
    url: str
    domain: str | None
    start_index: int | None
    end_index: int | None
    text: str | None
    metadata: dict[str, Any]
    citation_type: str
    competitor_id: str | None


def build_citation_records(
    response_id: str, project_id: str, classified: Iterable[ClassifiedCitation]
) -> list[CitationRecord]:
    """Flatten classified citations into rows.

    Fragments are joined with ``" [...] "`` and the first offset pair is kept
    as the row's span; the full lists go into metadata when there is more
    than one.
    """
    records: list[CitationRecord] = []
    for item in classified:
        citation = item.citation
        pairs = citation.index_pairs
        metadata: dict[str, Any] = {
            **citation.metadata,
            "occurrence_count": citation.occurrence_count,
        }
        if len(citation.text_fragments) > 1:
            metadata["all_text_fragments"] = list(citation.text_fragments)
        if len(pairs) > 1:
            metadata["all_indices"] = [
                {"start": start, "end": end} for start, end in pairs
            ]
        records.append(
            CitationRecord(
                response_id=response_id,
                project_id=project_id,
                normalized_uri=citation.normalized_uri,
                web_search_query=citation.web_search_query,
                uri=citation.uri,
                url=citation.url,
                domain=citation.domain,
                start_index=pairs[0][0] if pairs else None,
                end_index=pairs[0][1] if pairs else None,
                text=TEXT_FRAGMENT_SEPARATOR.join(citation.text_fragments) or None,
                metadata=metadata,
                citation_type=item.citation_type.value,
                competitor_id=item.competitor_id,
            )
        )
    return records


class CitationStore(Protocol):
    """Storage surface the pipeline depends on."""

    async def load_classification_context(
        self, project_id: str
    ) -> ClassificationContext:
        """Brand domain and active competitor domains for ``project_id``."""
        ...

    async def insert_citations(self, records: Sequence[CitationRecord]) -> int:
        """Insert one batch of rows; return how many were written."""
        ...


class InMemoryCitationStore:
    """Process-local `CitationStore`.

    Rows are keyed by ``(response_id, normalized_uri)``; re-inserting the same
    key replaces the row, so a retried batch does not duplicate citations.
    """

    def __init__(self) -> None:  # noqa: D107
        self._projects: dict[str, ClassificationContext] = {}
        self._rows: dict[tuple[str, str], CitationRecord] = {}

    def register_project(
        self,
        project_id: str,
        client_url: str | None,
        competitors: Iterable[Competitor | Mapping[str, Any]] = (),
    ) -> ClassificationContext:
        """Store the project's brand URL and competitors; return the context."""
        context = ClassificationContext.from_project(client_url, competitors)
        self._projects[project_id] = context
        return context

    async def load_classification_context(  # noqa: D102
        self, project_id: str
    ) -> ClassificationContext:
        context = self._projects.get(project_id)
        if context is None:
            raise KeyError(f"Unknown project: {project_id}")
        return context

    async def insert_citations(self, records: Sequence[CitationRecord]) -> int:  # noqa: D102
        for record in records:
            self._rows[(record["response_id"], record["normalized_uri"])] = record
        logger.debug("Stored %d citation rows", len(records))
        return len(records)

    @property
    def rows(self) -> list[CitationRecord]:
        """All stored rows in insertion order."""
        return list(self._rows.values())

    def rows_for(self, response_id: str) -> list[CitationRecord]:
        """Rows belonging to one response."""
        return [r for r in self._rows.values() if r["response_id"] == response_id]
