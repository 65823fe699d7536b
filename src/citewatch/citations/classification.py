"""Brand / competitor / other labelling of deduplicated citations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import re
from typing import Any

from citewatch.core.types import (
    CitationType,
    ClassificationContext,
    ClassifiedCitation,
    Competitor,
    DeduplicatedCitation,
)

logger = logging.getLogger(__name__)

_PROTOCOL_RE = re.compile(r"^https?://")


def normalize_domain(domain: str | None) -> str | None:
    """Bare lowercase host: no protocol, ``www.``, path or port.

    Unlike `citewatch.citations.dedup.normalize_uri` this discards the path,
    so it also works on a domain that was extracted up front.
    """
    if not domain:
        return None
    value = _PROTOCOL_RE.sub("", domain.strip().lower())
    value = value.removeprefix("www.")
    value = value.split("/", 1)[0].split(":", 1)[0].strip()
    return value or None


def build_context(
    client_url: str | None,
    competitors: Iterable[Competitor | Mapping[str, Any]] = (),
) -> ClassificationContext:
    """Normalize a project's brand URL and competitor domains.

    Competitors without a usable domain are left out.
    """
    normalized: list[Competitor] = []
    for item in competitors:
        if isinstance(item, Competitor):
            competitor_id, raw_domain = item.id, item.domain
        else:
            competitor_id, raw_domain = item.get("id"), item.get("domain")
        domain = normalize_domain(raw_domain)
        if competitor_id is None or domain is None:
            continue
        normalized.append(Competitor(id=str(competitor_id), domain=domain))
    return ClassificationContext(
        brand_domain=normalize_domain(client_url), competitors=tuple(normalized)
    )


def citation_domain(citation: DeduplicatedCitation) -> str | None:
    """Normalized domain of a citation, derived from its URL when absent."""
    return normalize_domain(citation.domain or citation.url or citation.uri)


def classify(
    citation: DeduplicatedCitation, context: ClassificationContext
) -> ClassifiedCitation:
    """Label one citation; the first matching rule wins.

    No domain gives ``other``; the brand domain gives ``brand``; a registered
    competitor domain gives ``competitor`` with its id; anything else is
    ``other``.
    """
    domain = citation_domain(citation)
    if domain is None:
        return ClassifiedCitation(citation, CitationType.OTHER)
    if domain == normalize_domain(context.brand_domain):
        return ClassifiedCitation(citation, CitationType.BRAND)
    for competitor in context.competitors:
        if domain == normalize_domain(competitor.domain):
            return ClassifiedCitation(
                citation, CitationType.COMPETITOR, competitor_id=competitor.id
            )
    return ClassifiedCitation(citation, CitationType.OTHER)


def classify_all(
    citations: Iterable[DeduplicatedCitation], context: ClassificationContext
) -> list[ClassifiedCitation]:
    """Classify every citation against the same context."""
    classified = [classify(c, context) for c in citations]
    if classified:
        counts = {t: 0 for t in CitationType}
        for item in classified:
            counts[item.citation_type] += 1
        logger.info(
            "Classified %d citations: %d brand, %d competitor, %d other",
            len(classified),
            counts[CitationType.BRAND],
            counts[CitationType.COMPETITOR],
            counts[CitationType.OTHER],
        )
    return classified
