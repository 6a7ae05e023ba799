# File: site_audit/engine.py
"""site_audit.engine: boundary layer that runs an audit and shapes the response.

Used by the HTTP server, the task runner and the CLI. Every call returns an
:class:`AuditResponse`; errors never escape past this layer.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from site_audit.analysis.duplicates import DuplicateContentAnalyzer
from site_audit.analysis.noindex import NoindexCrawler
from site_audit.config import AuditConfig
from site_audit.errors import AnalysisError, AuditError, ErrorCode
from site_audit.logger import logger
from site_audit.orchestrator import CrawlOrchestrator, validate_limit, validate_url
from site_audit.scraper import Scraper, build_scraper

__all__ = ["AuditResponse", "AuditService"]


@dataclass(slots=True)
class AuditResponse:
    """Response body plus the HTTP status it maps to."""

    status: int
    body: Dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))


def _elapsed(started: float) -> int:
    return round(time.monotonic() - started)


def _error_response(exc: BaseException, started: float) -> AuditResponse:
    if isinstance(exc, AuditError):
        body = exc.as_dict()
        status = exc.status
    else:
        body = {"success": False, "error": str(exc) or "An unexpected error occurred", "code": ErrorCode.UNEXPECTED_ERROR.value}
        status = 500
    body["executionTime"] = _elapsed(started)
    return AuditResponse(status=status, body=body)


class AuditService:
    """Facade for the server, the CLI and tests: validation, crawl, analysis and error mapping."""

    def __init__(self, config: Optional[AuditConfig] = None, scraper: Optional[Scraper] = None) -> None:
        self.config = config or AuditConfig()
        self.scraper = scraper or build_scraper(self.config)
        self.analyzer = DuplicateContentAnalyzer.from_config(self.config)

    def orchestrator(self) -> CrawlOrchestrator:
        return CrawlOrchestrator(self.scraper, self.config)

    def noindex_crawler(self) -> NoindexCrawler:
        return NoindexCrawler(self.config)

    async def duplicate_check(
        self,
        url: Any,
        limit: Any = None,
        api_key: Optional[str] = None,
        use_sitemap: bool = True,
    ) -> AuditResponse:
        """Collect up to ``limit`` pages of ``url`` and cluster duplicate content."""
        started = time.monotonic()
        try:
            url = validate_url(url)
            limit = self.config.default_page_limit if limit is None else limit
            limit = validate_limit(limit, self.config.max_page_limit)

            logger.info("Duplicate check for %s (limit: %d, sitemap: %s)", url, limit, use_sitemap)
            crawl = await self.orchestrator().run(url, limit, api_key=api_key, use_sitemap=use_sitemap)
            logger.info("Collected %d pages (source: %s)", len(crawl.pages), crawl.source)

            try:
                analysis = await asyncio.to_thread(self.analyzer.analyze, crawl.pages)
            except Exception as exc:
                logger.error("Duplicate analysis failed: %s", exc)
                raise AnalysisError(f"Failed to analyze content: {exc}") from exc
        except AuditError as exc:
            logger.warning("Duplicate check failed for %s: [%s] %s", url, exc.code.value, exc.message)
            return _error_response(exc, started)
        except Exception as exc:
            logger.exception("Unexpected error during duplicate check: %s", exc)
            return _error_response(exc, started)

        body: Dict[str, Any] = {
            "success": True,
            "data": analysis.as_dict(),
            "crawledPages": len(crawl.pages),
            "executionTime": _elapsed(started),
            "source": crawl.source,
        }
        if crawl.sitemap_url:
            body["sitemapUrl"] = crawl.sitemap_url
        logger.info(
            "Duplicate check complete: %d clusters in %ss", len(analysis.clusters), body["executionTime"]
        )
        return AuditResponse(status=200, body=body)

    async def noindex_check(self, url: Any, max_pages: Any = None) -> AuditResponse:
        """Check the sitemap-listed pages of ``url`` for noindex directives."""
        started = time.monotonic()
        try:
            url = validate_url(url)
            max_pages = self.config.default_page_limit if max_pages is None else max_pages
            max_pages = validate_limit(
                max_pages, self.config.max_page_limit, name="maxPages", code=ErrorCode.INVALID_MAX_PAGES
            )
            logger.info("Noindex check for %s (maxPages: %d)", url, max_pages)
            result = await self.noindex_crawler().analyze(url, max_pages)
        except AuditError as exc:
            logger.warning("Noindex check failed for %s: [%s] %s", url, exc.code.value, exc.message)
            return _error_response(exc, started)
        except Exception as exc:
            logger.exception("Unexpected error during noindex check: %s", exc)
            return _error_response(exc, started)

        body = {"success": True, "data": result.as_dict(), "executionTime": _elapsed(started)}
        logger.info("Noindex check complete: %d noindex pages in %ss", result.noindex_count, body["executionTime"])
        return AuditResponse(status=200, body=body)
