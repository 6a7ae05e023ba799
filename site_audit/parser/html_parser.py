"""HTML parsing utilities for SiteAudit.

A small :func:`parse_html` helper and the :class:`ParsedPage` dataclass give the
crawler, the duplicate analyzer and the noindex checker one stable view of a
document:

* title       : document <title> text or ``""`` if absent.
* links       : absolute URLs found in <a href="…"> tags.
* text        : visible text (script/style/noscript/template removed).
* meta_robots : ``content`` of ``<meta name="robots">``, lower-cased.
* meta_googlebot: ``content`` of ``<meta name="googlebot">``, lower-cased.

Markdown or plain text goes through the same path; BeautifulSoup leaves text
without markup untouched.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

__all__: Sequence[str] = ("ParsedPage", "parse_html", "extract_text", "meta_content")

_INVISIBLE_TAGS = ["script", "style", "noscript", "template"]


@dataclass(slots=True)
class ParsedPage:
    """Lightweight representation of an HTML page."""

    url: str
    title: str
    links: list[str]
    text: str
    meta_robots: Optional[str] = None
    meta_googlebot: Optional[str] = None


def meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    """Lower-cased ``content`` of the first ``<meta name=…>`` (name matched case-insensitively)."""
    for tag in soup.find_all("meta"):
        if not isinstance(tag, Tag):
            continue
        tag_name = tag.get("name")
        if isinstance(tag_name, str) and tag_name.strip().lower() == name:
            content = tag.get("content")
            if isinstance(content, str):
                return content.strip().lower()
            return None
    return None


def _links(soup: BeautifulSoup, base_url: str) -> list[str]:
    seen: set[str] = set()
    links: list[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href = tag.get("href")
        if not isinstance(href, str):
            continue
        href = href.strip()
        if href.startswith(("mailto:", "javascript:", "tel:", "#")):
            continue
        try:
            abs_url = urljoin(base_url, href).split("#", 1)[0]
            scheme = urlparse(abs_url).scheme
        except ValueError:
            # e.g. "http://[broken/" (unterminated IPv6 literal)
            continue
        if scheme not in ("http", "https"):
            continue
        if abs_url not in seen:
            seen.add(abs_url)
            links.append(abs_url)
    return links


def _visible_text(soup: BeautifulSoup) -> str:
    for element in soup(_INVISIBLE_TAGS):
        element.decompose()
    return " ".join(t.strip() for t in soup.stripped_strings)


def parse_html(page: Any) -> ParsedPage:
    """Parse raw HTML (string) or a :class:`~site_audit.crawler.models.CrawledPage`.

    Parameters
    ----------
    page
        Either a *str* (markup) **or** an object with ``url`` and ``content``
        attributes.
    """
    if hasattr(page, "content") and hasattr(page, "url"):
        html = page.content
        base_url = str(page.url)
    else:
        html = str(page)
        base_url = ""

    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    meta_robots = meta_content(soup, "robots")
    meta_googlebot = meta_content(soup, "googlebot")
    links = _links(soup, base_url)
    text = _visible_text(soup)

    return ParsedPage(
        url=base_url,
        title=title,
        links=links,
        text=text,
        meta_robots=meta_robots,
        meta_googlebot=meta_googlebot,
    )


def extract_text(content: str) -> str:
    """Visible text of markup, or the input itself when it carries none."""
    return _visible_text(BeautifulSoup(content, "html.parser"))
