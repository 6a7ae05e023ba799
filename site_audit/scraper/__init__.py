"""site_audit.scraper: page content providers used by the crawl orchestrator.

A provider implements :class:`Scraper`. It is treated as an untrusted black
box: any method may raise, and :func:`classify_error` maps what it raised onto
the boundary error codes.
"""
from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from site_audit.config import AuditConfig
from site_audit.crawler.models import CrawledPage
from site_audit.errors import ErrorCode


class ScraperError(Exception):
    """Generic provider failure."""


class PaymentRequiredError(ScraperError):
    """The provider refuses service until the subscription is settled (HTTP 402)."""


class MissingApiKeyError(ScraperError):
    """No credential was supplied or configured."""


@runtime_checkable
class Scraper(Protocol):
    async def batch_scrape_urls(self, urls: List[str], api_key: Optional[str] = None) -> List[CrawledPage]:
        ...

    async def crawl_site_content(self, url: str, limit: int, api_key: Optional[str] = None) -> List[CrawledPage]:
        ...


def classify_error(exc: BaseException) -> ErrorCode:
    """Error code for a provider exception.

    Typed errors are mapped directly; foreign exceptions are matched on their
    message the same way the provider phrases them.
    """
    if isinstance(exc, PaymentRequiredError):
        return ErrorCode.FIRECRAWL_PAYMENT_REQUIRED
    if isinstance(exc, MissingApiKeyError):
        return ErrorCode.MISSING_API_KEY
    message = str(exc)
    if "Payment required" in message or "subscription" in message:
        return ErrorCode.FIRECRAWL_PAYMENT_REQUIRED
    if "API key" in message or "FIRECRAWL_API_KEY" in message:
        return ErrorCode.MISSING_API_KEY
    return ErrorCode.CRAWL_ERROR


def build_scraper(config: AuditConfig) -> Scraper:
    """Provider selected by ``config.scraper``."""
    if config.scraper == "local":
        from site_audit.scraper.local import LocalScraper

        return LocalScraper(config)
    from site_audit.scraper.firecrawl import FirecrawlScraper

    return FirecrawlScraper(config)


__all__ = [
    "Scraper",
    "ScraperError",
    "PaymentRequiredError",
    "MissingApiKeyError",
    "classify_error",
    "build_scraper",
]
