"""Citation extraction, deduplication and classification."""

from citewatch.citations.classification import (
    build_context,
    classify,
    classify_all,
    normalize_domain,
)
from citewatch.citations.dedup import deduplicate, normalize_uri
from citewatch.citations.extraction import extract_citations, sanitize_query

__all__ = [
    "build_context",
    "classify",
    "classify_all",
    "deduplicate",
    "extract_citations",
    "normalize_domain",
    "normalize_uri",
    "sanitize_query",
]
