# File: tests/conftest.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Awaitable, Callable, List, Optional

import pytest
import pytest_asyncio
from aiohttp import web

from site_audit.config import AuditConfig
from site_audit.crawler.models import CrawledPage


def pytest_configure(config):
    """Register custom markers so that `--strict-markers` does not fail."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )


ServeApp = Callable[[web.Application], Awaitable[str]]


@pytest_asyncio.fixture
async def serve_app(unused_tcp_port_factory) -> AsyncIterator[ServeApp]:
    """Start aiohttp apps on free ports; yields a coroutine returning the base URL."""
    runners: List[web.AppRunner] = []

    async def _serve(app: web.Application) -> str:
        runner = web.AppRunner(app)
        await runner.setup()
        port = unused_tcp_port_factory()
        site = web.TCPSite(runner, "localhost", port)
        await site.start()
        runners.append(runner)
        return f"http://localhost:{port}"

    try:
        yield _serve
    finally:
        for runner in runners:
            await runner.cleanup()


@pytest.fixture()
def basic_config() -> AuditConfig:
    """Small, fast configuration for network tests."""
    return AuditConfig(
        user_agent="TestAgent/1.0",
        timeout=2.0,
        sitemap_timeout=2.0,
        noindex_sitemap_timeout=2.0,
        retry_times=0,
        rate_limit=50.0,
        max_depth=1,
        noindex_batch_delay=0.0,
    )


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_page(url: str, content: str, minutes: int = 0, title: Optional[str] = None) -> CrawledPage:
    return CrawledPage(url=url, content=content, fetched_at=BASE_TIME + timedelta(minutes=minutes), title=title)


class FakeScraper:
    """Scripted Scraper: returns canned pages or raises, and records its calls."""

    def __init__(
        self,
        batch: Optional[List[CrawledPage]] = None,
        crawl: Optional[List[CrawledPage]] = None,
        batch_error: Optional[Exception] = None,
        crawl_error: Optional[Exception] = None,
    ) -> None:
        self.batch = batch or []
        self.crawl = crawl or []
        self.batch_error = batch_error
        self.crawl_error = crawl_error
        self.batch_calls: List[List[str]] = []
        self.crawl_calls: List[tuple] = []

    async def batch_scrape_urls(self, urls, api_key=None):
        self.batch_calls.append(list(urls))
        if self.batch_error is not None:
            raise self.batch_error
        return [page for page in self.batch if page.url in urls]

    async def crawl_site_content(self, url, limit, api_key=None):
        self.crawl_calls.append((url, limit, api_key))
        if self.crawl_error is not None:
            raise self.crawl_error
        return self.crawl[:limit]


@pytest.fixture()
def fake_scraper_factory():
    return FakeScraper
