# File: site_audit/parser/sitemap_parser.py
"""site_audit.parser.sitemap_parser: parsing of sitemap.xml documents and sitemap indexes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from lxml import etree

__all__ = ["CHANGEFREQ_VALUES", "SitemapEntry", "SitemapDocument", "parse_sitemap", "parse_document"]

CHANGEFREQ_VALUES = frozenset({"always", "hourly", "daily", "weekly", "monthly", "yearly", "never"})


@dataclass(frozen=True, slots=True)
class SitemapEntry:
    """One <url> record of a sitemap."""

    loc: str
    lastmod: Optional[datetime] = None
    changefreq: Optional[str] = None
    priority: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "loc": self.loc,
            "lastmod": self.lastmod.isoformat() if self.lastmod else None,
            "changefreq": self.changefreq,
            "priority": self.priority,
        }


@dataclass(slots=True)
class SitemapDocument:
    """Parsed sitemap: either an index (child sitemaps) or a list of URL entries."""

    is_index: bool = False
    entries: List[SitemapEntry] = field(default_factory=list)
    child_sitemaps: List[str] = field(default_factory=list)


def _parse_root(xml_content: Union[str, bytes]) -> Optional[Any]:
    data = xml_content.encode("utf-8") if isinstance(xml_content, str) else xml_content
    if not data.strip():
        return None
    parser = etree.XMLParser(ns_clean=True, recover=True, resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError:
        return None


def _child_text(element: Any, name: str) -> Optional[str]:
    child = element.find(f"{{*}}{name}")
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def _parse_lastmod(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _parse_priority(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        priority = float(value)
    except ValueError:
        return None
    return priority if 0.0 <= priority <= 1.0 else None


def _parse_changefreq(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.lower()
    return value if value in CHANGEFREQ_VALUES else None


def parse_document(xml_content: Union[str, bytes]) -> SitemapDocument:
    """Parse a sitemap or a sitemap index.

    The document counts as an index when its root is ``<sitemapindex>`` or when
    it contains ``<sitemap>`` entries but no ``<url>`` entries. Namespaces are
    ignored; malformed XML is parsed in recovery mode and yields an empty
    document rather than an exception.
    """
    root = _parse_root(xml_content)
    doc = SitemapDocument()
    if root is None or not isinstance(root.tag, str):
        return doc

    url_elements = list(root.iter("{*}url"))
    sitemap_elements = list(root.iter("{*}sitemap"))
    doc.is_index = etree.QName(root).localname == "sitemapindex" or (
        bool(sitemap_elements) and not url_elements
    )

    if doc.is_index:
        for element in sitemap_elements:
            loc = _child_text(element, "loc")
            if loc:
                doc.child_sitemaps.append(loc)
        return doc

    for element in url_elements:
        loc = _child_text(element, "loc")
        if not loc:
            continue
        doc.entries.append(
            SitemapEntry(
                loc=loc,
                lastmod=_parse_lastmod(_child_text(element, "lastmod")),
                changefreq=_parse_changefreq(_child_text(element, "changefreq")),
                priority=_parse_priority(_child_text(element, "priority")),
            )
        )
    return doc


def parse_sitemap(xml_content: Union[str, bytes]) -> List[str]:
    """Return the page URLs (``<url><loc>``) of a regular sitemap.

    Example:
    ```python
    from site_audit.parser.sitemap_parser import parse_sitemap

    with open('sitemap.xml', encoding='utf-8') as f:
        urls = parse_sitemap(f.read())
    ```
    """
    return [entry.loc for entry in parse_document(xml_content).entries]
