from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Set, Tuple
from urllib.parse import urlparse

from aiohttp import ClientSession

from site_audit.config import AuditConfig
from site_audit.crawler.fetcher import Fetcher
from site_audit.crawler.models import CrawledPage
from site_audit.parser.html_parser import parse_html
from site_audit.parser.robots_parser import RobotsRules, fetch_robots, parse_robots
from site_audit.utils import normalize_url, origin_of

__all__ = ("AsyncCrawler",)


class AsyncCrawler:
    """Breadth-first same-host crawler honouring robots.txt, rate limit and retries."""

    def __init__(self, config: AuditConfig, base_url: str, max_pages: int) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.config = config
        self.base_url = base_url
        self.max_pages = max_pages
        self.concurrency: int = max(1, min(config.scrape_batch_size, int(round(config.rate_limit)) or 1))
        self.visited: Set[str] = set()
        self.disallowed_pages: List[str] = []
        self.session: Optional[ClientSession] = None
        self.fetcher: Optional[Fetcher] = None
        self.logger = logging.getLogger("SiteAudit")
        self.robots_rules: Optional[RobotsRules] = None
        self._host = urlparse(normalize_url(base_url)).netloc

    async def __aenter__(self) -> AsyncCrawler:
        self.session = ClientSession(headers={"User-Agent": self.config.user_agent})
        await self._load_robots()
        rate_limit = self.config.rate_limit
        if self.robots_rules is not None and self.robots_rules.crawl_delay:
            rate_limit = min(rate_limit, 1.0 / self.robots_rules.crawl_delay)
        self.fetcher = Fetcher(
            self.session,
            timeout=self.config.timeout,
            retry_times=self.config.retry_times,
            rate_limit=rate_limit,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def crawl(self) -> List[CrawledPage]:
        self.logger.info("Crawl started: %s (max %d pages)", self.base_url, self.max_pages)
        start = time.monotonic()
        queue: asyncio.Queue[Tuple[str, int]] = asyncio.Queue()
        root = normalize_url(self.base_url)
        self.visited.add(root)
        await queue.put((root, 0))
        results: List[CrawledPage] = []
        workers = [asyncio.create_task(self._worker(queue, results)) for _ in range(self.concurrency)]
        try:
            await queue.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
        duration = time.monotonic() - start
        self.logger.info(
            "Crawl finished: %d pages in %.2f s (%.2f pages/s)",
            len(results),
            duration,
            len(results) / duration if duration else 0,
        )
        if self.disallowed_pages:
            self.logger.info("Blocked by robots.txt: %d", len(self.disallowed_pages))
        return results[: self.max_pages]

    async def _worker(self, queue: asyncio.Queue[Tuple[str, int]], results: List[CrawledPage]) -> None:
        while True:
            url, depth = await queue.get()
            try:
                await self._process(queue, results, url, depth)
            except Exception as exc:
                self.logger.warning("Skipping %s: %s", url, exc)
            finally:
                queue.task_done()

    async def _process(
        self, queue: asyncio.Queue[Tuple[str, int]], results: List[CrawledPage], url: str, depth: int
    ) -> None:
        if depth > self.config.max_depth or len(results) >= self.max_pages:
            return
        page = await self._fetch(url)
        if page is None or len(results) >= self.max_pages:
            return
        results.append(page)
        if depth < self.config.max_depth:
            for link in self._extract(page):
                if link not in self.visited:
                    self.visited.add(link)
                    await queue.put((link, depth + 1))

    async def _fetch(self, url: str) -> Optional[CrawledPage]:
        if self.fetcher is None:
            raise RuntimeError("Session not initialized")
        if self.robots_rules is not None and not self.robots_rules.can_fetch(urlparse(url).path or "/"):
            self.disallowed_pages.append(url)
            return None
        return await self.fetcher.fetch_page(url, source="crawl")

    def _extract(self, page: CrawledPage) -> List[str]:
        links: List[str] = []
        for link in parse_html(page).links:
            full = normalize_url(link)
            if urlparse(full).netloc == self._host:
                links.append(full)
        return links

    async def _load_robots(self) -> None:
        if not self.session:
            return
        origin = origin_of(self.base_url)
        text = await fetch_robots(self.session, origin, self.config.sitemap_timeout)
        self.robots_rules = parse_robots(text, self.config.user_agent, origin + "/") if text else None
