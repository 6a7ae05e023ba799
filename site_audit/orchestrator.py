"""site_audit.orchestrator: sitemap-first page collection with crawl fallback and merge.

Strategy for one run:

1. sitemap discovery, then a batch scrape of the sitemap URLs;
2. a bounded supplementary crawl when the sitemap gave only a handful of pages;
3. a full crawl when the sitemap path gave nothing;
4. ``NO_PAGES`` when every strategy came back empty.
"""
from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

from site_audit.config import AuditConfig
from site_audit.crawler.models import CrawledPage, CrawlResult, CrawlSource, PageSource
from site_audit.crawler.sitemap import SitemapResolver
from site_audit.errors import ErrorCode, NoPagesError, ProviderError, ValidationError
from site_audit.scraper import Scraper, classify_error
from site_audit.utils import extract_host, is_http_url, same_host

__all__ = ["CrawlOrchestrator", "validate_url", "validate_limit"]

logger = logging.getLogger("SiteAudit")


def validate_url(url: object) -> str:
    if not url or not isinstance(url, str):
        raise ValidationError("URL is required", ErrorCode.MISSING_URL)
    if not is_http_url(url):
        raise ValidationError("URL must start with http:// or https://", ErrorCode.INVALID_URL)
    return url


def validate_limit(limit: object, maximum: int, *, name: str = "Limit", code: ErrorCode = ErrorCode.INVALID_LIMIT) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1 or limit > maximum:
        raise ValidationError(f"{name} must be between 1 and {maximum}", code)
    return limit


class CrawlOrchestrator:
    """Combines :class:`SitemapResolver` and a :class:`Scraper` into one page set."""

    def __init__(
        self,
        scraper: Scraper,
        config: Optional[AuditConfig] = None,
        resolver: Optional[SitemapResolver] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or AuditConfig()
        self.scraper = scraper
        self.resolver = resolver or SitemapResolver(self.config)
        self._clock = clock

    @property
    def soft_deadline(self) -> float:
        """Seconds after which the supplementary crawl is no longer started."""
        return self.config.duplicate_check_ceiling * self.config.soft_deadline_fraction

    async def run(
        self,
        base_url: str,
        page_limit: int,
        api_key: Optional[str] = None,
        use_sitemap: bool = True,
    ) -> CrawlResult:
        validate_url(base_url)
        validate_limit(page_limit, self.config.max_page_limit)
        started = self._clock()
        host = extract_host(base_url)

        sitemap_url: Optional[str] = None
        sitemap_found = 0
        pages: List[CrawledPage] = []

        if use_sitemap:
            sitemap = await self.resolver.resolve(base_url, max_urls=page_limit)
            sitemap_url = sitemap.sitemap_url or None
            sitemap_found = sitemap.total_found
            if sitemap.success and sitemap.urls:
                targets = sitemap.locs[: min(len(sitemap.urls), page_limit)]
                logger.info("Scraping %d sitemap URLs", len(targets))
                try:
                    scraped = await self.scraper.batch_scrape_urls(targets, api_key)
                except Exception as exc:
                    logger.warning("Batch scrape of sitemap URLs failed, falling back to crawl: %s", exc)
                    scraped = []
                pages = self._merge([], scraped, "sitemap", host, page_limit)
            else:
                logger.info("Sitemap unavailable (%s), falling back to crawl", sitemap.error)

        if pages:
            source: CrawlSource = "sitemap"
            if len(pages) < self.config.supplement_threshold and len(pages) < page_limit:
                elapsed = self._clock() - started
                if elapsed >= self.soft_deadline:
                    logger.warning(
                        "Skipping supplementary crawl: %.1fs elapsed, soft deadline %.1fs", elapsed, self.soft_deadline
                    )
                else:
                    extra_limit = min(page_limit - len(pages), self.config.supplement_max_pages)
                    logger.info("Only %d sitemap pages, supplementing with a crawl of %d", len(pages), extra_limit)
                    try:
                        extra = await self.scraper.crawl_site_content(base_url, extra_limit, api_key)
                    except Exception as exc:
                        logger.warning("Supplementary crawl failed, keeping sitemap pages: %s", exc)
                    else:
                        pages = self._merge(pages, extra, "crawl", host, page_limit)
                        source = "sitemap+crawl"
            return CrawlResult(pages=pages, source=source, sitemap_url=sitemap_url, sitemap_urls_found=sitemap_found)

        logger.info("Crawling %s (limit %d)", base_url, page_limit)
        try:
            crawled = await self.scraper.crawl_site_content(base_url, page_limit, api_key)
        except Exception as exc:
            code = classify_error(exc)
            logger.error("Crawl failed (%s): %s", code.value, exc)
            raise ProviderError(self._provider_message(code, exc), code) from exc

        pages = self._merge([], crawled, "crawl", host, page_limit)
        if not pages:
            raise NoPagesError()
        return CrawlResult(pages=pages, source="crawl", sitemap_url=sitemap_url, sitemap_urls_found=sitemap_found)

    @staticmethod
    def _provider_message(code: ErrorCode, exc: BaseException) -> str:
        if code is ErrorCode.FIRECRAWL_PAYMENT_REQUIRED:
            return (
                "Firecrawl API: Payment required - Check your subscription. "
                "Please provide a valid API key or check your Firecrawl account."
            )
        if code is ErrorCode.MISSING_API_KEY:
            return (
                "Firecrawl API key is required. Please provide it in the request "
                "or set FIRECRAWL_API_KEY in environment variables."
            )
        return f"Failed to crawl website: {exc}"

    @staticmethod
    def _merge(
        existing: List[CrawledPage],
        incoming: Iterable[CrawledPage],
        source: PageSource,
        host: str,
        page_limit: int,
    ) -> List[CrawledPage]:
        """Append pages whose URL is new and on ``host``, relabelled with ``source``."""
        merged: Dict[str, CrawledPage] = {page.url: page for page in existing}
        for page in incoming:
            if len(merged) >= page_limit:
                break
            if page.url in merged:
                continue
            if not same_host(page.url, host, ignore_www=True):
                logger.debug("Dropping off-site page %s", page.url)
                continue
            merged[page.url] = page if page.source == source else dataclasses.replace(page, source=source)
        return list(merged.values())
