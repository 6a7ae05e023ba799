# site_audit/crawler/models.py
"""
Data models shared by the scrapers and the crawl orchestrator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional

PageSource = Literal["sitemap", "crawl"]
CrawlSource = Literal["sitemap", "crawl", "sitemap+crawl"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class CrawledPage:
    """Content of one fetched page together with its provenance."""

    url: str
    content: str
    fetched_at: datetime = field(default_factory=utcnow)
    source: PageSource = "crawl"
    title: Optional[str] = None


@dataclass(slots=True)
class CrawlResult:
    """Final page set of one orchestrated crawl."""

    pages: List[CrawledPage]
    source: CrawlSource
    sitemap_url: Optional[str] = None
    sitemap_urls_found: int = 0
