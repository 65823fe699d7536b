"""Citation extraction from Claude content blocks and Perplexity markers."""

import pytest

from citewatch.adapters.claude import joined_text
from citewatch.citations.extraction import extract_citations, sentence_span

pytestmark = pytest.mark.unit

CLAUDE_RAW = {
    "content": [
        {
            "type": "server_tool_use",
            "name": "web_search",
            "input": {"query": "top crm vendors"},
        },
        {"type": "web_search_tool_result", "content": []},
        {"type": "text", "text": "Here is a summary. "},
        {
            "type": "text",
            "text": "Acme leads the market.",
            "citations": [
                {
                    "type": "web_search_result_location",
                    "url": "https://acme.io/report",
                    "title": "Acme report",
                    "cited_text": "Acme holds 40% share",
                },
                {
                    "type": "web_search_result_location",
                    "url": "https://analyst.net/crm",
                    "title": "CRM survey",
                },
            ],
        },
    ]
}


class TestClaudeExtraction:
    """Citations attached to text blocks."""

    def test_offsets_are_positions_in_joined_text(self):
        text = joined_text(CLAUDE_RAW)

        citations = extract_citations("claude", CLAUDE_RAW, text)

        assert [c.domain for c in citations] == ["acme.io", "analyst.net"]
        first = citations[0]
        assert text[first.start_index : first.end_index] == "Acme leads the market."
        assert first.text == "Acme leads the market."
        assert first.web_search_query == "top crm vendors"
        assert first.metadata["cited_text"] == "Acme holds 40% share"
        assert first.metadata["title"] == "Acme report"

    def test_padded_block_offsets_match_cited_text(self):
        raw = {
            "content": [
                {"type": "text", "text": "Intro."},
                {
                    "type": "text",
                    "text": "\n  Rival ships faster.  ",
                    "citations": [{"url": "https://rival.com/blog"}],
                },
            ]
        }
        text = joined_text(raw)

        (citation,) = extract_citations("claude", raw, text)

        assert citation.text == "Rival ships faster."
        assert text[citation.start_index : citation.end_index] == citation.text

    def test_blocks_without_citations_yield_nothing(self):
        raw = {"content": [{"type": "text", "text": "No sources here."}]}
        assert extract_citations("claude", raw, "No sources here.") == []

    def test_malformed_content_yields_empty_list(self):
        assert extract_citations("claude", {"content": {"type": "text"}}, "") == []


PPLX_TEXT = "Acme is a CRM.[1] It is popular[2][9]. Other facts."


class TestPerplexityExtraction:
    """[n] markers mapped onto the citations list."""

    def test_markers_map_to_sentences(self):
        raw = {
            "citations": [
                "https://acme.io",
                "https://rival.com/page",
                "https://unused.org",
            ],
            "search_results": [{"url": "https://acme.io", "title": "Acme home"}],
        }

        citations = extract_citations("perplexity", raw, PPLX_TEXT)

        assert [c.url for c in citations] == [
            "https://acme.io",
            "https://rival.com/page",
            "https://unused.org",
        ]
        acme, rival, unused = citations
        assert acme.text == "Acme is a CRM."
        assert (acme.start_index, acme.end_index) == (0, 14)
        assert acme.metadata["title"] == "Acme home"
        assert acme.metadata["citation_number"] == 1
        assert rival.text == "It is popular[2][9]."
        assert rival.start_index == PPLX_TEXT.index("It is")
        # Listed but never referenced: kept, without a span
        assert unused.start_index is None
        assert unused.text is None
        assert unused.metadata["citation_number"] == 3

    def test_search_results_used_when_citations_missing(self):
        raw = {"search_results": [{"url": "https://acme.io", "title": "Acme"}]}

        (citation,) = extract_citations("perplexity", raw, "Acme.[1]")

        assert citation.url == "https://acme.io"
        assert citation.metadata["title"] == "Acme"

    def test_repeated_markers_produce_one_citation_each(self):
        raw = {"citations": ["https://acme.io"]}
        text = "First claim.[1] Second claim.[1] Done."

        citations = extract_citations("perplexity", raw, text)

        assert [c.text for c in citations] == ["First claim.", "Second claim."]


@pytest.mark.parametrize(
    ("text", "position", "expected"),
    [
        ("One. Two! Three?", 6, "Two!"),
        ("Line one\nLine two", 12, "Line two"),
        ("  padded sentence  ", 5, "padded sentence"),
    ],
)
def test_sentence_span(text, position, expected):
    start, end = sentence_span(text, position)
    assert text[start:end] == expected
