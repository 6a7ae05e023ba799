"""site_audit.utils: URL helpers shared by discovery, crawling and the analyzers."""

from __future__ import annotations

import posixpath
from typing import Collection, List, Sequence
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlparse, urlunparse

from site_audit.logger import logger

__all__: Sequence[str] = (
    "normalize_url",
    "is_http_url",
    "extract_host",
    "origin_of",
    "same_host",
    "remove_duplicates",
)


def normalize_url(url: str) -> str:
    """Canonical form used to compare crawled URLs.

    Lower-cases scheme and host, resolves dot segments, sorts query parameters
    and drops the fragment.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    path = unquote(parsed.path or "/")
    norm = posixpath.normpath(path)
    if parsed.path.endswith("/") and not norm.endswith("/"):
        norm += "/"
    if not norm.startswith("/"):
        norm = "/" + norm
    norm = quote(norm, safe="/")
    qs = parse_qsl(parsed.query, keep_blank_values=True)
    qs.sort()
    query = urlencode(qs, doseq=True)
    return urlunparse((scheme, netloc, norm, "", query, ""))


def is_http_url(url: object) -> bool:
    """True for non-empty strings starting with http:// or https://."""
    return isinstance(url, str) and url.startswith(("http://", "https://"))


def extract_host(url: str) -> str:
    """Hostname of the URL, lower-cased, without port; empty string if unparseable."""
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def origin_of(url: str) -> str:
    """scheme://netloc of the URL."""
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, "", "", "", ""))


def same_host(url: str, host: str, *, ignore_www: bool = False) -> bool:
    """Check that *url* lives on *host*.

    With ``ignore_www`` a leading ``www.`` on either side is disregarded.
    """
    candidate = extract_host(url)
    if not candidate:
        return False
    expected = host.lower()
    if ignore_www:
        candidate = candidate.removeprefix("www.")
        expected = expected.removeprefix("www.")
    return candidate == expected


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Drop duplicate URLs, keeping order."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate URLs", removed)
    return unique
