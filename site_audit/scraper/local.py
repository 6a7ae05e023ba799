# site_audit/scraper/local.py
"""
Built-in page provider: fetches pages directly with aiohttp, no third-party API.

``batch_scrape_urls`` fetches an explicit URL list in fixed-size parallel
batches; ``crawl_site_content`` runs :class:`~site_audit.crawler.crawler.AsyncCrawler`.
Single page failures are dropped, never raised.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from aiohttp import ClientSession

from site_audit.config import AuditConfig
from site_audit.crawler.crawler import AsyncCrawler
from site_audit.crawler.fetcher import Fetcher
from site_audit.crawler.models import CrawledPage
from site_audit.scraper import ScraperError
from site_audit.utils import is_http_url

logger = logging.getLogger("SiteAudit")


class LocalScraper:
    """Scraper implementation backed by the package's own crawler."""

    def __init__(self, config: Optional[AuditConfig] = None) -> None:
        self.config = config or AuditConfig()

    async def batch_scrape_urls(self, urls: List[str], api_key: Optional[str] = None) -> List[CrawledPage]:
        size = self.config.scrape_batch_size
        pages: List[CrawledPage] = []
        async with ClientSession(headers={"User-Agent": self.config.user_agent}) as session:
            fetcher = Fetcher(
                session,
                timeout=self.config.timeout,
                retry_times=self.config.retry_times,
                rate_limit=self.config.rate_limit,
            )
            for start in range(0, len(urls), size):
                batch = urls[start : start + size]
                results = await asyncio.gather(*(fetcher.fetch_page(url) for url in batch), return_exceptions=True)
                for url, outcome in zip(batch, results):
                    if isinstance(outcome, Exception):
                        logger.warning("Local scraper: dropping %s: %s", url, outcome)
                    elif outcome is not None:
                        pages.append(outcome)
        logger.info("Local scraper: fetched %d of %d URLs", len(pages), len(urls))
        return pages

    async def crawl_site_content(self, url: str, limit: int, api_key: Optional[str] = None) -> List[CrawledPage]:
        if not is_http_url(url):
            raise ScraperError(f"Invalid URL: {url}")
        if limit < 1:
            raise ScraperError("Limit must be at least 1")
        async with AsyncCrawler(self.config, url, max_pages=limit) as crawler:
            return await crawler.crawl()
