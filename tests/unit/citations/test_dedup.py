"""URI normalization and folding of repeated citations."""

import pytest

from citewatch.citations.dedup import deduplicate, normalize_uri
from citewatch.core.types import RawCitation

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("uri", "expected"),
    [
        ("https://www.Acme.io/Pricing/", "acme.io/pricing"),
        ("http://acme.io/pricing#plans", "acme.io/pricing"),
        ("  acme.io/pricing//  ", "acme.io/pricing"),
        ("https://https://www.acme.io/", "acme.io"),
        ("https://acme.io/page?ref=1", "acme.io/page?ref=1"),
        ("#only-fragment", ""),
    ],
)
def test_normalize_uri(uri, expected):
    assert normalize_uri(uri) == expected


@pytest.mark.parametrize(
    "uri",
    [
        "https://www.www.acme.io/",
        "HTTP://WWW.ACME.IO/#x",
        "http://www.https://acme.io//",
        " https://acme.io/ /",
    ],
)
def test_normalize_uri_is_idempotent(uri):
    once = normalize_uri(uri)
    assert normalize_uri(once) == once


def test_variants_of_one_url_collapse_into_one_entry():
    citations = [
        RawCitation(url="https://www.acme.io/crm/", domain="acme.io", text="Acme leads.",
                    start_index=0, end_index=11, web_search_query="crm"),
        RawCitation(url="http://acme.io/crm#top", text="Acme is cheap.",
                    start_index=20, end_index=34),
        RawCitation(url="https://rival.com", domain="rival.com"),
    ]

    result = deduplicate(citations)

    assert [d.normalized_uri for d in result] == ["acme.io/crm", "rival.com"]
    acme = result[0]
    assert acme.occurrence_count == 2
    assert acme.url == "https://www.acme.io/crm/"
    assert acme.domain == "acme.io"
    assert acme.web_search_query == "crm"
    assert acme.text_fragments == ["Acme leads.", "Acme is cheap."]
    assert acme.index_pairs == [(0, 11), (20, 34)]
    assert result[1].occurrence_count == 1
    assert result[1].index_pairs == []


def test_identical_fragments_are_kept_once():
    citations = [
        RawCitation(url="https://acme.io", text="Same sentence.", start_index=0, end_index=14),
        RawCitation(url="https://acme.io/", text="Same sentence.", start_index=0, end_index=14),
    ]

    (entry,) = deduplicate(citations)

    assert entry.occurrence_count == 2
    assert entry.text_fragments == ["Same sentence."]
    assert entry.index_pairs == [(0, 14), (0, 14)]


def test_missing_end_index_falls_back_to_start():
    (entry,) = deduplicate([RawCitation(url="https://acme.io", start_index=7)])

    assert entry.index_pairs == [(7, 7)]


def test_later_metadata_wins_and_missing_fields_are_filled():
    citations = [
        RawCitation(uri="https://acme.io", metadata={"title": "Old", "rank": 1}),
        RawCitation(url="https://acme.io", domain="acme.io", web_search_query="q",
                    metadata={"title": "New"}),
    ]

    (entry,) = deduplicate(citations)

    assert entry.metadata == {"title": "New", "rank": 1}
    assert entry.domain == "acme.io"
    assert entry.web_search_query == "q"
    assert entry.uri == "https://acme.io"


def test_empty_input_and_unusable_locations():
    assert deduplicate([]) == []
    assert deduplicate([RawCitation(url="#fragment")]) == []


def test_deduplication_is_stable_under_reapplication():
    citations = [
        RawCitation(url="https://acme.io/a"),
        RawCitation(url="https://www.acme.io/a/"),
        RawCitation(url="https://acme.io/b"),
    ]

    first = deduplicate(citations)
    replayed = deduplicate(
        RawCitation(url=d.url, uri=d.uri, domain=d.domain) for d in first
    )

    assert [d.normalized_uri for d in replayed] == [d.normalized_uri for d in first]
