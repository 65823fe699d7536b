"""Merging of raw citations that point at the same resource."""

from __future__ import annotations

from collections.abc import Iterable
import logging
import re

from citewatch.core.types import DeduplicatedCitation, RawCitation

logger = logging.getLogger(__name__)

_PROTOCOL_RE = re.compile(r"^https?://")


def normalize_uri(uri: str) -> str:
    """Canonical key for a URL or URI.

    Lowercases, trims, drops the fragment, the ``http(s)://`` prefix, a
    leading ``www.`` and trailing slashes. Applied until stable, so the
    result is a fixed point: ``normalize_uri(normalize_uri(x)) == normalize_uri(x)``.
    """
    current = uri
    while True:
        value = current.strip().lower().split("#", 1)[0]
        value = _PROTOCOL_RE.sub("", value)
        value = value.removeprefix("www.")
        value = value.rstrip("/").strip()
        if value == current:
            return value
        current = value


def deduplicate(citations: Iterable[RawCitation]) -> list[DeduplicatedCitation]:
    """Collapse citations to one entry per normalized URI, in first-seen order.

    Distinct text fragments are kept in insertion order, every offset pair is
    accumulated, and metadata is merged with later occurrences winning.
    Citations without a usable location are skipped.
    """
    groups: dict[str, DeduplicatedCitation] = {}
    skipped = 0
    for citation in citations:
        location = citation.url or citation.uri
        key = normalize_uri(location) if location else ""
        if not key:
            skipped += 1
            continue

        entry = groups.get(key)
        if entry is None:
            entry = groups[key] = DeduplicatedCitation(
                normalized_uri=key,
                uri=citation.uri or citation.url or key,
                url=citation.url or citation.uri or key,
                domain=citation.domain,
                web_search_query=citation.web_search_query,
                occurrence_count=0,
            )
        entry.occurrence_count += 1
        if entry.domain is None:
            entry.domain = citation.domain
        if entry.web_search_query is None:
            entry.web_search_query = citation.web_search_query
        if citation.text and citation.text not in entry.text_fragments:
            entry.text_fragments.append(citation.text)
        if citation.start_index is not None:
            entry.start_indices.append(citation.start_index)
            entry.end_indices.append(
                citation.end_index
                if citation.end_index is not None
                else citation.start_index
            )
        entry.metadata.update(citation.metadata)

    if skipped:
        logger.debug("Skipped %d citations without url/uri", skipped)
    return list(groups.values())
