"""Citation rows and the in-memory store."""

import pytest

from citewatch.core.types import (
    CitationType,
    ClassifiedCitation,
    Competitor,
    DeduplicatedCitation,
)
from citewatch.pipeline.store import InMemoryCitationStore, build_citation_records

pytestmark = pytest.mark.unit


def _classified(**fields) -> ClassifiedCitation:
    citation = DeduplicatedCitation(
        normalized_uri="acme.io/crm",
        uri="https://acme.io/crm",
        url="https://acme.io/crm",
        domain="acme.io",
        **fields,
    )
    return ClassifiedCitation(citation, CitationType.COMPETITOR, competitor_id="c-1")


def test_single_occurrence_row():
    (record,) = build_citation_records(
        "resp-1",
        "proj-1",
        [
            _classified(
                text_fragments=["Acme leads."],
                start_indices=[0],
                end_indices=[11],
                metadata={"title": "Acme"},
            )
        ],
    )

    assert record["response_id"] == "resp-1"
    assert record["project_id"] == "proj-1"
    assert record["normalized_uri"] == "acme.io/crm"
    assert (record["start_index"], record["end_index"]) == (0, 11)
    assert record["text"] == "Acme leads."
    assert record["citation_type"] == "competitor"
    assert record["competitor_id"] == "c-1"
    assert record["metadata"] == {"title": "Acme", "occurrence_count": 1}


def test_multiple_occurrences_join_fragments_and_keep_all_indices():
    (record,) = build_citation_records(
        "resp-1",
        "proj-1",
        [
            _classified(
                text_fragments=["First.", "Second."],
                start_indices=[0, 10],
                end_indices=[6, 17],
                occurrence_count=2,
            )
        ],
    )

    assert record["text"] == "First. [...] Second."
    assert (record["start_index"], record["end_index"]) == (0, 6)
    assert record["metadata"]["all_text_fragments"] == ["First.", "Second."]
    assert record["metadata"]["all_indices"] == [
        {"start": 0, "end": 6},
        {"start": 10, "end": 17},
    ]
    assert record["metadata"]["occurrence_count"] == 2


def test_row_without_text_or_span():
    (record,) = build_citation_records("r", "p", [_classified()])

    assert record["text"] is None
    assert record["start_index"] is None
    assert record["end_index"] is None


@pytest.mark.asyncio
async def test_in_memory_store_round_trip():
    store = InMemoryCitationStore()
    context = store.register_project(
        "proj-1", "https://www.acme.io", [Competitor(id="c-1", domain="rival.com")]
    )

    assert await store.load_classification_context("proj-1") == context
    assert context.brand_domain == "acme.io"

    records = build_citation_records("resp-1", "proj-1", [_classified()])
    assert await store.insert_citations(records) == 1
    # Re-inserting the same (response_id, normalized_uri) replaces the row
    assert await store.insert_citations(records) == 1
    assert len(store.rows) == 1
    assert store.rows_for("resp-1") == records
    assert store.rows_for("other") == []


@pytest.mark.asyncio
async def test_unknown_project_raises_key_error():
    with pytest.raises(KeyError):
        await InMemoryCitationStore().load_classification_context("missing")
