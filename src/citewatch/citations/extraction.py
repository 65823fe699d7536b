"""Per-provider citation extractors and the dispatcher that selects them.

Every provider embeds provenance differently:

- gemini: ``groundingSupports`` (segment + chunk indices) joined against
  ``groundingChunks``; queries in ``webSearchQueries``.
- openai: ``url_citation`` annotations with character offsets on the output
  text; queries on ``web_search_call`` items. Chat Completions bodies are
  read from ``choices[0].message``.
- claude: ``citations`` attached to text content blocks; offsets are
  positions in the concatenated text.
- perplexity: a flat ``citations`` URL list referenced by ``[n]`` markers.

Extractors raise `MalformedCitationSource` when the payload has an
unexpected shape. `extract_citations` recovers from that by logging and
returning an empty list, then drops denylisted domains.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
import re
from typing import Any

from citewatch.citations.domains import (
    extract_domain,
    is_ignored,
    resolve_grounding_url,
)
from citewatch.core.types import Provider, RawCitation
from citewatch.exceptions import MalformedCitationSource

logger = logging.getLogger(__name__)

type Extractor = Callable[[Mapping[str, Any], str], list[RawCitation]]

_EXTRACTORS: dict[Provider, Extractor] = {}


def register_extractor(provider: Provider) -> Callable[[Extractor], Extractor]:
    """Register ``func`` as the extractor for ``provider``."""

    def decorator(func: Extractor) -> Extractor:
        _EXTRACTORS[provider] = func
        return func

    return decorator


def extract_citations(
    provider: Provider | str,
    raw: Mapping[str, Any] | None,
    response_text: str,
) -> list[RawCitation]:
    """Extract raw citations from a provider response body.

    Never raises for malformed payloads; a response without usable
    citations yields ``[]``.
    """
    key = Provider.parse(provider)
    if not isinstance(raw, Mapping):
        logger.warning("No citation source for %s response", key.value)
        return []
    try:
        citations = _EXTRACTORS[key](raw, response_text or "")
    except MalformedCitationSource as e:
        logger.warning("Failed to extract %s citations: %s", key.value, e)
        return []
    except (TypeError, AttributeError, KeyError, ValueError):
        logger.warning(
            "Unexpected %s citation payload; continuing without citations",
            key.value,
            exc_info=True,
        )
        return []

    kept = [c for c in citations if not is_ignored(c.url or c.uri, c.domain)]
    if len(kept) != len(citations):
        logger.debug(
            "Dropped %d denylisted %s citations", len(citations) - len(kept), key.value
        )
    logger.info("Extracted %d citations from %s response", len(kept), key.value)
    return kept


# --- Shape helpers ---


def _get(data: Mapping[str, Any], camel: str, snake: str) -> Any:
    value = data.get(camel)
    return data.get(snake) if value is None else value


def _as_list(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedCitationSource(
            f"{where}: expected a list, got {type(value).__name__}"
        )
    return value


def _as_dict(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedCitationSource(
            f"{where}: expected an object, got {type(value).__name__}"
        )
    return value


def _str(value: Any, where: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    raise MalformedCitationSource(
        f"{where}: expected a string, got {type(value).__name__}"
    )


def _index(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return None


def _slice(text: str, start: int | None, end: int | None) -> str | None:
    if start is None or end is None or start > end:
        return None
    return text[start:end] or None


def make_citation(
    *,
    url: str | None = None,
    uri: str | None = None,
    domain: str | None = None,
    start_index: Any = None,
    end_index: Any = None,
    text: str | None = None,
    web_search_query: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> RawCitation | None:
    """Build a `RawCitation`, or None when neither url nor uri is usable.

    Invalid offsets are dropped (an inverted pair loses both) while the
    citation itself is kept.
    """
    url = url.strip() if isinstance(url, str) and url.strip() else None
    uri = uri.strip() if isinstance(uri, str) and uri.strip() else None
    if url is None and uri is None:
        return None
    start, end = _index(start_index), _index(end_index)
    if start is not None and end is not None and start > end:
        logger.debug("Dropping inverted offsets %d > %d for %s", start, end, url or uri)
        start = end = None
    return RawCitation(
        url=url,
        uri=uri,
        domain=domain or extract_domain(url or uri),
        start_index=start,
        end_index=end,
        text=text if isinstance(text, str) and text else None,
        web_search_query=web_search_query,
        metadata={k: v for k, v in (metadata or {}).items() if v is not None},
    )


# --- Gemini ---


@register_extractor(Provider.GEMINI)
def extract_gemini_citations(
    raw: Mapping[str, Any], response_text: str
) -> list[RawCitation]:
    """One citation per (supported segment, grounding chunk) pair."""
    candidates = _as_list(raw.get("candidates"), "candidates")
    if not candidates:
        return []
    candidate = _as_dict(candidates[0], "candidates[0]")
    metadata = _get(candidate, "groundingMetadata", "grounding_metadata")
    if metadata is None:
        return []
    metadata = _as_dict(metadata, "groundingMetadata")

    chunks = _as_list(
        _get(metadata, "groundingChunks", "grounding_chunks"), "groundingChunks"
    )
    supports = _as_list(
        _get(metadata, "groundingSupports", "grounding_supports"), "groundingSupports"
    )
    queries = [
        q
        for q in _as_list(
            _get(metadata, "webSearchQueries", "web_search_queries"),
            "webSearchQueries",
        )
        if isinstance(q, str) and q.strip()
    ]
    query = queries[0].strip() if queries else None

    citations: list[RawCitation] = []
    for support in supports:
        support = _as_dict(support, "groundingSupports[]")
        segment = support.get("segment")
        chunk_indices = _as_list(
            _get(support, "groundingChunkIndices", "grounding_chunk_indices"),
            "groundingChunkIndices",
        )
        if not segment or not chunk_indices:
            continue
        segment = _as_dict(segment, "segment")
        start = _get(segment, "startIndex", "start_index")
        end = _get(segment, "endIndex", "end_index")
        if start is None and end is not None:
            start = 0  # zero offsets are omitted from the JSON encoding

        for chunk_index in chunk_indices:
            if _index(chunk_index) is None or chunk_index >= len(chunks):
                continue
            web = _as_dict(chunks[chunk_index], "groundingChunks[]").get("web")
            if not isinstance(web, Mapping):
                continue
            uri = _str(web.get("uri"), "web.uri")
            title = _str(web.get("title"), "web.title")
            url = resolve_grounding_url(uri, title)
            if url is None:
                logger.debug("Skipping grounding chunk %d without a usable URL", chunk_index)
                continue
            citation = make_citation(
                url=url,
                uri=uri,
                domain=extract_domain(url, title),
                start_index=start,
                end_index=end,
                text=segment.get("text"),
                web_search_query=query,
                metadata={
                    "chunk_index": chunk_index,
                    "title": title,
                    "platform": Provider.GEMINI.value,
                },
            )
            if citation is not None:
                citations.append(citation)
    return citations


# --- OpenAI ---

_UNICODE_ESCAPE_RE = re.compile(r"\\u([0-9a-fA-F]{4})")
_TRAILING_REMARK_RE = re.compile(r"\s*[(\[].*[)\]]\s*$")


def sanitize_query(query: Any) -> str | None:
    """Clean a model-written search query.

    Decodes literal ``\\uXXXX`` escapes, cuts trailing "Note:" commentary,
    strips one pair of surrounding quotes and a trailing parenthesised or
    bracketed remark. Returns None when nothing is left.
    """
    if not isinstance(query, str):
        return None
    s = _UNICODE_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), query)

    escaped_note = s.find("\\n\\nNote:")
    if escaped_note != -1:
        s = s[:escaped_note]
    else:
        lowered = s.lower()
        blank_line_note = lowered.find("\n\nnote:")
        if blank_line_note != -1:
            s = s[:blank_line_note]
        else:
            inline_note = lowered.find(" note:")
            if inline_note != -1:
                s = s[:inline_note]

    s = s.strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in "\"'":
        s = s[1:-1]
    s = _TRAILING_REMARK_RE.sub("", s).strip()
    return s or None


def _openai_queries(output: list[Any]) -> list[str]:
    queries: list[str] = []
    for item in output:
        if not isinstance(item, Mapping) or item.get("type") != "web_search_call":
            continue
        action = item.get("action")
        candidates = [action.get("query")] if isinstance(action, Mapping) else []
        candidates.append(item.get("query"))
        for candidate in candidates:
            cleaned = sanitize_query(candidate)
            if cleaned and cleaned not in queries:
                queries.append(cleaned)
    return queries


def _url_citation_fields(annotation: Mapping[str, Any]) -> Mapping[str, Any]:
    nested = annotation.get("url_citation")
    return nested if isinstance(nested, Mapping) else annotation


@register_extractor(Provider.OPENAI)
def extract_openai_citations(
    raw: Mapping[str, Any], response_text: str
) -> list[RawCitation]:
    """Responses API annotations, or Chat Completions message citations."""
    output = _as_list(raw.get("output"), "output")
    if output:
        return _extract_openai_responses(output, response_text)
    return _extract_openai_chat(raw, response_text)


def _extract_openai_responses(
    output: list[Any], response_text: str
) -> list[RawCitation]:
    queries = _openai_queries(output)
    query = queries[0] if queries else None

    citations: list[RawCitation] = []
    for item in output:
        if not isinstance(item, Mapping) or item.get("type") != "message":
            continue
        for part in _as_list(item.get("content"), "message.content"):
            if not isinstance(part, Mapping) or part.get("type") != "output_text":
                continue
            source_text = _str(part.get("text"), "output_text.text") or response_text
            for annotation in _as_list(part.get("annotations"), "annotations"):
                annotation = _as_dict(annotation, "annotations[]")
                if annotation.get("type") != "url_citation":
                    continue
                fields = _url_citation_fields(annotation)
                url = _str(fields.get("url"), "url_citation.url")
                title = _str(fields.get("title"), "url_citation.title")
                start = _index(fields.get("start_index"))
                end = _index(fields.get("end_index"))
                citation = make_citation(
                    url=url,
                    domain=extract_domain(url, title),
                    start_index=start,
                    end_index=end,
                    text=_slice(source_text, start, end),
                    web_search_query=query,
                    metadata={
                        "title": title,
                        "platform": Provider.OPENAI.value,
                        "api_type": "responses",
                    },
                )
                if citation is not None:
                    citations.append(citation)
    return citations


def _extract_openai_chat(
    raw: Mapping[str, Any], response_text: str
) -> list[RawCitation]:
    choices = _as_list(raw.get("choices"), "choices")
    if not choices:
        return []
    message = _as_dict(choices[0], "choices[0]").get("message")
    if not isinstance(message, Mapping) or not message.get("content"):
        return []

    entries: list[Mapping[str, Any]] = [
        _as_dict(c, "message.citations[]")
        for c in _as_list(message.get("citations"), "message.citations")
    ]
    entries.extend(
        _url_citation_fields(a)
        for a in _as_list(message.get("annotations"), "message.annotations")
        if isinstance(a, Mapping) and a.get("type") == "url_citation"
    )

    citations: list[RawCitation] = []
    for fields in entries:
        url = _str(fields.get("url"), "citation.url")
        title = _str(fields.get("title"), "citation.title")
        start = _index(fields.get("start_index"))
        end = _index(fields.get("end_index"))
        citation = make_citation(
            url=url,
            domain=extract_domain(url, title),
            start_index=start,
            end_index=end,
            text=fields.get("text") or _slice(response_text, start, end),
            metadata={
                "title": title,
                "platform": Provider.OPENAI.value,
                "api_type": "chat_completions",
            },
        )
        if citation is not None:
            citations.append(citation)
    return citations


# --- Claude ---


@register_extractor(Provider.CLAUDE)
def extract_claude_citations(
    raw: Mapping[str, Any], response_text: str
) -> list[RawCitation]:
    """Citations attached to text blocks, spanning the trimmed cited block."""
    content = _as_list(raw.get("content"), "content")

    query: str | None = None
    citations: list[RawCitation] = []
    offset = 0
    for block in content:
        block = _as_dict(block, "content[]")
        kind = block.get("type")
        if kind == "server_tool_use" and query is None:
            tool_input = block.get("input")
            if isinstance(tool_input, Mapping):
                query = sanitize_query(tool_input.get("query"))
            continue
        if kind != "text":
            continue

        text = _str(block.get("text"), "content[].text") or ""
        block_start = offset
        offset += len(text)
        cited = text.strip()
        start = block_start + len(text) - len(text.lstrip())
        end = start + len(cited)
        for entry in _as_list(block.get("citations"), "content[].citations"):
            entry = _as_dict(entry, "citations[]")
            url = _str(entry.get("url"), "citations[].url")
            title = _str(entry.get("title"), "citations[].title")
            citation = make_citation(
                url=url,
                domain=extract_domain(url, title),
                start_index=start,
                end_index=end,
                text=cited or None,
                web_search_query=query,
                metadata={
                    "title": title,
                    "cited_text": entry.get("cited_text"),
                    "citation_type": entry.get("type"),
                    "platform": Provider.CLAUDE.value,
                },
            )
            if citation is not None:
                citations.append(citation)
    return citations


# --- Perplexity ---

_MARKER_RE = re.compile(r"\[(\d+)\]")
_BOUNDARY_RE = re.compile(r"[.!?](?:\[\d+\])*\s+|\n+")


def sentence_span(text: str, position: int) -> tuple[int, int]:
    """Bounds of the sentence containing ``position``, whitespace trimmed.

    Markers directly after the closing punctuation belong to that sentence.
    """
    start, end = 0, len(text)
    for boundary in _BOUNDARY_RE.finditer(text):
        if boundary.end() <= position:
            start = boundary.end()
            continue
        end = boundary.start()
        if text[end] in ".!?":
            end += 1
        break
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


@register_extractor(Provider.PERPLEXITY)
def extract_perplexity_citations(
    raw: Mapping[str, Any], response_text: str
) -> list[RawCitation]:
    """Map ``[n]`` markers to ``citations[n-1]``; unreferenced sources keep no span."""
    search_results = [
        r
        for r in _as_list(raw.get("search_results"), "search_results")
        if isinstance(r, Mapping)
    ]
    urls: list[str | None] = []
    for entry in _as_list(raw.get("citations"), "citations"):
        if isinstance(entry, str):
            urls.append(entry)
        elif isinstance(entry, Mapping):
            urls.append(_str(entry.get("url"), "citations[].url"))
        else:
            urls.append(None)
    if not urls:
        urls = [_str(r.get("url"), "search_results[].url") for r in search_results]
    titles = {
        r["url"]: _str(r.get("title"), "search_results[].title")
        for r in search_results
        if isinstance(r.get("url"), str) and r["url"]
    }

    def build(number: int, span: tuple[int, int] | None) -> RawCitation | None:
        url = urls[number - 1]
        start, end = span if span is not None else (None, None)
        return make_citation(
            url=url,
            domain=extract_domain(url),
            start_index=start,
            end_index=end,
            text=_slice(response_text, start, end),
            metadata={
                "title": titles.get(url),
                "citation_number": number,
                "platform": Provider.PERPLEXITY.value,
            },
        )

    citations: list[RawCitation] = []
    referenced: set[int] = set()
    for marker in _MARKER_RE.finditer(response_text):
        number = int(marker.group(1))
        if not 1 <= number <= len(urls):
            continue
        referenced.add(number)
        citation = build(number, sentence_span(response_text, marker.start()))
        if citation is not None:
            citations.append(citation)

    for number in range(1, len(urls) + 1):
        if number not in referenced:
            citation = build(number, None)
            if citation is not None:
                citations.append(citation)
    return citations
