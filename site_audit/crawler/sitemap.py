# site_audit/crawler/sitemap.py
"""
Sitemap discovery: robots.txt ``Sitemap:`` directives, then well-known
locations, then recursive expansion of sitemap indexes.

The resolver never raises for network trouble. A location that times out or
answers with an error status is simply "not found here"; the overall outcome
is reported through :class:`SitemapResult`.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set
from urllib.parse import urljoin

from aiohttp import ClientSession

from site_audit.config import AuditConfig
from site_audit.crawler.fetcher import Fetcher
from site_audit.parser.robots_parser import fetch_robots, parse_robots
from site_audit.parser.sitemap_parser import SitemapDocument, SitemapEntry, parse_document
from site_audit.utils import extract_host, is_http_url, origin_of, same_host

__all__ = ("SITEMAP_LOCATIONS", "SitemapResult", "SitemapResolver")

logger = logging.getLogger("SiteAudit")

SITEMAP_LOCATIONS: Sequence[str] = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/sitemaps.xml",
    "/sitemap1.xml",
    "/sitemap/sitemap.xml",
    "/wp-sitemap.xml",  # WordPress
    "/yoast-sitemap.xml",  # Yoast SEO
    "/news-sitemap.xml",
    "/page-sitemap.xml",
)

_ACCEPT_HEADERS = {"Accept": "application/xml, text/xml, */*"}


@dataclass(slots=True)
class SitemapResult:
    """Outcome of sitemap discovery for one site."""

    success: bool
    urls: List[SitemapEntry] = field(default_factory=list)
    sitemap_url: str = ""
    total_found: int = 0
    error: Optional[str] = None

    @property
    def locs(self) -> List[str]:
        return [entry.loc for entry in self.urls]

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "urls": [entry.as_dict() for entry in self.urls],
            "sitemapUrl": self.sitemap_url,
            "totalFound": self.total_found,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


class SitemapResolver:
    """Finds and expands a site's sitemap into a deduplicated same-host URL list."""

    def __init__(self, config: Optional[AuditConfig] = None, session: Optional[ClientSession] = None) -> None:
        self.config = config or AuditConfig()
        self._session = session

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[ClientSession]:
        if self._session is not None and not self._session.closed:
            yield self._session
            return
        async with ClientSession(headers={"User-Agent": self.config.user_agent}) as session:
            yield session

    def _fetcher(self, session: ClientSession, timeout: Optional[float] = None) -> Fetcher:
        return Fetcher(session, timeout=timeout or self.config.sitemap_timeout, retry_times=0)

    async def fetch_sitemap(self, fetcher: Fetcher, url: str) -> Optional[str]:
        """Body of a sitemap URL, or None unless it answers 2xx with an XML/text content type."""
        result = await fetcher.get(url, headers=_ACCEPT_HEADERS)
        if result is None:
            logger.debug("Sitemap fetch failed: %s", url)
            return None
        if not result.ok:
            logger.debug("Sitemap %s -> HTTP %s", url, result.status)
            return None
        ctype = result.content_type
        if "xml" not in ctype and "text" not in ctype:
            logger.debug("Sitemap %s has unexpected content type %r", url, ctype)
            return None
        return result.text

    async def find_from_robots(self, session: ClientSession, origin: str) -> List[str]:
        """Sitemap URLs declared in robots.txt, in file order."""
        text = await fetch_robots(session, origin, self.config.sitemap_timeout)
        if not text:
            return []
        return parse_robots(text, self.config.user_agent, origin + "/").sitemaps

    async def locate(self, session: ClientSession, base_url: str) -> tuple[str, str] | None:
        """First reachable sitemap as (url, content): robots.txt first, then well-known paths."""
        fetcher = self._fetcher(session)
        origin = origin_of(base_url)

        for candidate in await self.find_from_robots(session, origin):
            logger.info("Found sitemap in robots.txt: %s", candidate)
            content = await self.fetch_sitemap(fetcher, candidate)
            if content is not None:
                return candidate, content

        for location in SITEMAP_LOCATIONS:
            candidate = urljoin(origin + "/", location.lstrip("/"))
            logger.debug("Trying sitemap location %s", candidate)
            content = await self.fetch_sitemap(fetcher, candidate)
            if content is not None:
                logger.info("Found sitemap at %s", candidate)
                return candidate, content
        return None

    async def collect_entries(
        self,
        session: ClientSession,
        sitemap_url: str,
        content: str,
        *,
        max_child_sitemaps: int,
        max_urls: Optional[int] = None,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, SitemapEntry]:
        """Expand a sitemap (index) tree into entries keyed by ``loc``.

        Child sitemaps are fetched breadth-first, at most ``max_child_sitemaps``
        in total and each URL only once; children that fail are skipped.
        Fetching stops early once ``max_urls`` entries on ``host`` are known.
        Later entries with the same ``loc`` replace earlier ones.
        """
        fetcher = self._fetcher(session, timeout)
        entries: Dict[str, SitemapEntry] = {}
        visited: Set[str] = {sitemap_url}
        pending: List[str] = []

        def absorb(doc: SitemapDocument, source: str) -> None:
            if doc.is_index:
                logger.info("Sitemap index %s lists %d child sitemaps", source, len(doc.child_sitemaps))
                pending.extend(child for child in doc.child_sitemaps if child not in visited)
                return
            logger.debug("Parsed %d URLs from %s", len(doc.entries), source)
            for entry in doc.entries:
                entries[entry.loc] = entry

        def enough() -> bool:
            if max_urls is None:
                return False
            if host is None:
                return len(entries) >= max_urls
            return sum(1 for loc in entries if same_host(loc, host)) >= max_urls

        absorb(parse_document(content), sitemap_url)
        fetched = 0
        while pending and fetched < max_child_sitemaps and not enough():
            child = pending.pop(0)
            if child in visited:
                continue
            visited.add(child)
            fetched += 1
            child_content = await self.fetch_sitemap(fetcher, child)
            if child_content is None:
                logger.warning("Skipping unreachable child sitemap %s", child)
                continue
            absorb(parse_document(child_content), child)
        return entries

    async def resolve(
        self,
        base_url: str,
        max_urls: Optional[int] = None,
        max_child_sitemaps: Optional[int] = None,
    ) -> SitemapResult:
        """Discover, parse and filter the sitemap of ``base_url``."""
        max_urls = self.config.max_sitemap_urls if max_urls is None else max_urls
        if max_child_sitemaps is None:
            max_child_sitemaps = self.config.max_child_sitemaps

        host = extract_host(base_url) if is_http_url(base_url) else ""
        if not host:
            return SitemapResult(success=False, error="Invalid URL format")

        logger.info("Starting sitemap discovery for %s", base_url)
        async with self._session_scope() as session:
            located = await self.locate(session, base_url)
            if located is None:
                logger.info("No sitemap found for %s", base_url)
                return SitemapResult(success=False, error="No sitemap found at common locations")
            sitemap_url, content = located
            entries = await self.collect_entries(
                session,
                sitemap_url,
                content,
                max_child_sitemaps=max_child_sitemaps,
                max_urls=max_urls,
                host=host,
            )

        same_domain = [entry for entry in entries.values() if same_host(entry.loc, host)]
        if not same_domain:
            error = "Sitemap contains no URLs" if not entries else "Sitemap contains no URLs for this host"
            logger.info("%s: %s", error, sitemap_url)
            return SitemapResult(success=False, sitemap_url=sitemap_url, error=error)

        limited = same_domain[:max_urls]
        logger.info("Total unique sitemap URLs: %d, returning: %d", len(same_domain), len(limited))
        return SitemapResult(
            success=True,
            urls=limited,
            sitemap_url=sitemap_url,
            total_found=len(same_domain),
        )
