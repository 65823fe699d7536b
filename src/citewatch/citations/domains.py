"""Shared URL and domain rules used by every citation extractor."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from citewatch.constants import (
    GEMINI_REDIRECT_HOST,
    IGNORED_DOMAINS,
    IGNORED_URL_MARKERS,
)

_DOMAIN_FALLBACK_RE = re.compile(r"(?:https?://)?(?:www\.)?([^/]+)", re.IGNORECASE)


def _strip_www(host: str) -> str:
    return host[4:] if host.lower().startswith("www.") else host


def domain_from_url(url: str | None) -> str | None:
    """Host of ``url`` without a leading ``www.``.

    Strings that do not parse as absolute URLs fall back to the text before
    the first ``/`` (after an optional scheme and ``www.``).
    """
    if not isinstance(url, str) or not url.strip():
        return None
    url = url.strip()
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    if host:
        return _strip_www(host)
    match = _DOMAIN_FALLBACK_RE.match(url)
    if match and match.group(1):
        return _strip_www(match.group(1))
    return None


def domain_from_title(title: str | None) -> str | None:
    """Treat a grounding title such as ``"example.com"`` as a bare domain."""
    if not isinstance(title, str) or not title.strip():
        return None
    bare = re.sub(r"^https?://", "", title.strip(), flags=re.IGNORECASE)
    return _strip_www(bare.split("/")[0]) or None


def extract_domain(url: str | None, title: str | None = None) -> str | None:
    """Domain from the URL, else from the title."""
    return domain_from_url(url) or domain_from_title(title)


def url_from_title(title: str | None) -> str | None:
    """Synthesize a URL from a human-readable title (``https://`` if absent)."""
    if not isinstance(title, str) or not title.strip():
        return None
    clean = title.strip()
    if clean.lower().startswith("http"):
        return clean
    return f"https://{clean}"


def is_redirect_uri(uri: str) -> bool:
    """True for grounding redirect URIs and anything that is not http(s)."""
    lowered = uri.strip().lower()
    if not lowered.startswith(("http://", "https://")):
        return True
    return GEMINI_REDIRECT_HOST in lowered


def resolve_grounding_url(uri: str | None, title: str | None) -> str | None:
    """Real URL for a grounding chunk, or None when it cannot be recovered.

    Opaque redirect URIs are replaced by a URL synthesized from the title;
    without a title the chunk is unusable.
    """
    if isinstance(uri, str) and uri and not is_redirect_uri(uri):
        return uri.strip()
    return url_from_title(title)


def is_ignored(url: str | None, domain: str | None = None) -> bool:
    """True for schema namespaces, placeholder domains and localhost."""
    if isinstance(url, str) and url:
        lowered = url.lower()
        if any(marker in lowered for marker in IGNORED_URL_MARKERS):
            return True
    host = (domain or domain_from_url(url) or "").lower().split(":")[0]
    if not host:
        return False
    return any(
        host == ignored or host.endswith(f".{ignored}") for ignored in IGNORED_DOMAINS
    )
