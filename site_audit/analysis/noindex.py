"""site_audit.analysis.noindex: find sitemap-listed pages that ask not to be indexed.

A page listed in the sitemap but carrying ``noindex`` (``<meta name="robots">``,
``<meta name="googlebot">`` or an ``X-Robots-Tag`` response header) sends
search engines contradictory signals. The checker walks the sitemap, fetches
every listed page with GET and scores the share of such pages.
"""
from __future__ import annotations

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence

from aiohttp import ClientSession

from site_audit.config import AuditConfig
from site_audit.crawler.fetcher import Fetcher
from site_audit.crawler.sitemap import SitemapResolver
from site_audit.parser.html_parser import parse_html
from site_audit.utils import extract_host, remove_duplicates, same_host

__all__ = ["NoindexPage", "NoindexAnalysisResult", "NoindexCrawler", "noindex_score"]

logger = logging.getLogger("SiteAudit")

NoindexSource = Literal["meta", "header", "both"]

QUICK_CHECK_TIMEOUT = 5.0


@dataclass(frozen=True, slots=True)
class NoindexPage:
    url: str
    source: NoindexSource
    meta_robots: Optional[str] = None
    x_robots_tag: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"url": self.url, "source": self.source}
        if self.meta_robots:
            data["metaRobots"] = self.meta_robots
        if self.x_robots_tag:
            data["xRobotsTag"] = self.x_robots_tag
        return data


@dataclass(slots=True)
class NoindexAnalysisResult:
    total_pages_checked: int = 0
    noindex_pages: List[NoindexPage] = field(default_factory=list)
    noindex_count: int = 0
    noindex_percent: int = 0
    issues: List[str] = field(default_factory=list)
    score: int = 0
    sitemap_url: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "totalPagesChecked": self.total_pages_checked,
            "noindexPages": [page.as_dict() for page in self.noindex_pages],
            "noindexCount": self.noindex_count,
            "noindexPercent": self.noindex_percent,
            "issues": list(self.issues),
            "score": self.score,
        }
        if self.sitemap_url:
            data["sitemapUrl"] = self.sitemap_url
        return data


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def noindex_score(noindex_count: int, total: int) -> tuple[int, int, List[str]]:
    """(percent, score, issues) for ``noindex_count`` noindex pages out of ``total`` checked."""
    percent = _round_half_up(noindex_count / total * 100) if total else 0
    issues: List[str] = []
    if noindex_count > 0:
        issues.append(f"Found {noindex_count} pages with noindex in the sitemap")
        issues.append("Pages with noindex should not be listed in the sitemap")

    if percent > 20:
        issues.append("Critical: more than 20% of sitemap pages have noindex")
        return percent, 0, issues
    if percent > 10:
        issues.append("Critical: more than 10% of sitemap pages have noindex")
        return percent, 30, issues
    if percent > 5:
        return percent, 60, issues
    if noindex_count > 0:
        return percent, 80, issues
    return percent, 100, issues


def _has_noindex(value: Optional[str]) -> bool:
    return bool(value) and "noindex" in value


def _robots_meta(url: str, text: str) -> tuple[Optional[str], Optional[str]]:
    """(robots, googlebot) meta contents; (None, None) when the markup cannot be parsed."""
    try:
        parsed = parse_html(text)
    except Exception as exc:
        logger.warning("Unparseable page %s, meta tags ignored: %s", url, exc)
        return None, None
    return parsed.meta_robots, parsed.meta_googlebot


class NoindexCrawler:
    """Checks the pages listed in a site's sitemap for noindex directives."""

    def __init__(self, config: Optional[AuditConfig] = None, session: Optional[ClientSession] = None) -> None:
        self.config = config or AuditConfig()
        self._session = session
        self.resolver = SitemapResolver(self.config, session)

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[ClientSession]:
        if self._session is not None and not self._session.closed:
            yield self._session
            return
        async with ClientSession(headers={"User-Agent": self.config.user_agent}) as session:
            yield session

    async def discover(self, session: ClientSession, base_url: str, max_pages: int) -> tuple[Optional[str], List[str]]:
        """Sitemap URL used and up to ``max_pages`` same-host page URLs listed in it."""
        base = base_url.rstrip("/")
        host = extract_host(base_url)
        timeout = self.config.noindex_sitemap_timeout
        fetcher = Fetcher(session, timeout=timeout, retry_times=0)

        for candidate in (f"{base}/sitemap.xml", f"{base}/sitemap_index.xml"):
            logger.info("Fetching sitemap from %s", candidate)
            content = await self.resolver.fetch_sitemap(fetcher, candidate)
            if content is None:
                continue
            entries = await self.resolver.collect_entries(
                session,
                candidate,
                content,
                max_child_sitemaps=self.config.max_child_sitemaps,
                max_urls=max_pages,
                host=host,
                timeout=timeout,
            )
            urls = remove_duplicates([loc for loc in entries if same_host(loc, host)])
            if urls:
                logger.info("Found %d URLs in sitemap %s", len(urls), candidate)
                return candidate, urls[:max_pages]
            logger.info("No URLs found in %s", candidate)
        return None, []

    async def check_page(self, fetcher: Fetcher, url: str) -> Optional[NoindexPage]:
        """NoindexPage when ``url`` carries a noindex directive; None otherwise or on failure."""
        result = await fetcher.get(url)
        if result is None or not result.ok:
            logger.debug("Page not checked (unreachable or non-2xx): %s", url)
            return None

        header = ", ".join(result.header_values("X-Robots-Tag")).lower() or None
        meta_robots, meta_googlebot = _robots_meta(url, result.text)
        header_noindex = _has_noindex(header)
        meta_noindex = _has_noindex(meta_robots) or _has_noindex(meta_googlebot)
        if not header_noindex and not meta_noindex:
            return None

        if header_noindex and meta_noindex:
            source: NoindexSource = "both"
        elif header_noindex:
            source = "header"
        else:
            source = "meta"
        return NoindexPage(
            url=url,
            source=source,
            meta_robots=meta_robots or meta_googlebot or None,
            x_robots_tag=header,
        )

    async def analyze(self, base_url: str, max_pages: int = 50) -> NoindexAnalysisResult:
        logger.info("Starting noindex analysis for %s", base_url)
        async with self._session_scope() as session:
            sitemap_url, urls = await self.discover(session, base_url, max_pages)
            if not urls:
                logger.info("No sitemap URLs for %s", base_url)
                return NoindexAnalysisResult(
                    total_pages_checked=0,
                    issues=["Sitemap.xml not found or empty"],
                    score=0,
                )

            fetcher = Fetcher(session, timeout=self.config.timeout, retry_times=0)
            batch_size = self.config.noindex_batch_size
            noindex_pages: List[NoindexPage] = []
            for start in range(0, len(urls), batch_size):
                batch = urls[start : start + batch_size]
                results = await asyncio.gather(
                    *(self.check_page(fetcher, url) for url in batch), return_exceptions=True
                )
                for url, outcome in zip(batch, results):
                    if isinstance(outcome, Exception):
                        logger.warning("Noindex check of %s failed: %s", url, outcome)
                    elif outcome is not None:
                        noindex_pages.append(outcome)
                if start + batch_size < len(urls):
                    await asyncio.sleep(self.config.noindex_batch_delay)

        percent, score, issues = noindex_score(len(noindex_pages), len(urls))
        logger.info(
            "Noindex analysis complete: %d noindex pages found out of %d", len(noindex_pages), len(urls)
        )
        return NoindexAnalysisResult(
            total_pages_checked=len(urls),
            noindex_pages=noindex_pages,
            noindex_count=len(noindex_pages),
            noindex_percent=percent,
            issues=issues,
            score=score,
            sitemap_url=sitemap_url,
        )

    async def quick_check(self, urls: Sequence[str]) -> List[NoindexPage]:
        """Header-only check with HEAD requests; misses pages that only use meta tags."""
        found: List[NoindexPage] = []
        async with self._session_scope() as session:
            fetcher = Fetcher(session, timeout=QUICK_CHECK_TIMEOUT, retry_times=0)
            for url in urls:
                result = await fetcher.get(url, method="HEAD")
                if result is None:
                    continue
                header = ", ".join(result.header_values("X-Robots-Tag")).lower()
                if "noindex" in header:
                    found.append(NoindexPage(url=url, source="header", x_robots_tag=header))
        return found
