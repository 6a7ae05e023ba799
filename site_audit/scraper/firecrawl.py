# site_audit/scraper/firecrawl.py
"""
Firecrawl API client implementing the :class:`~site_audit.scraper.Scraper` protocol.

Both operations start an asynchronous job on the provider side and poll it
until it completes:

* ``crawl_site_content``: ``POST /crawl`` then ``GET /crawl/{id}``
* ``batch_scrape_urls`` : ``POST /batch/scrape`` then ``GET /batch/scrape/{id}``

Provider payloads are validated with pydantic before they are turned into
:class:`~site_audit.crawler.models.CrawledPage` objects; malformed documents
are dropped.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from site_audit.config import AuditConfig
from site_audit.crawler.models import CrawledPage, utcnow
from site_audit.scraper import MissingApiKeyError, PaymentRequiredError, ScraperError
from site_audit.utils import is_http_url

__all__ = ("FirecrawlScraper", "FirecrawlDocument")

logger = logging.getLogger("SiteAudit")

API_KEY_ENV = "FIRECRAWL_API_KEY"
_EXCEPTION_ID_RE = re.compile(r"exception ID is ([a-f0-9]+)", re.IGNORECASE)


class FirecrawlMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None
    sourceURL: Optional[str] = None
    title: Optional[str] = None
    statusCode: Optional[int] = None


class FirecrawlDocument(BaseModel):
    """One scraped page as returned by the provider."""
    model_config = ConfigDict(extra="allow")

    markdown: Optional[str] = None
    html: Optional[str] = None
    content: Optional[str] = None
    metadata: FirecrawlMetadata = Field(default_factory=FirecrawlMetadata)

    def to_page(self) -> Optional[CrawledPage]:
        url = self.metadata.sourceURL or self.metadata.url
        body = self.markdown or self.html or self.content
        if not url or not body:
            return None
        return CrawledPage(url=url, content=body, fetched_at=utcnow(), title=self.metadata.title or None)


class _JobStarted(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = False
    id: Optional[str] = None
    error: Optional[str] = None


class _JobStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str = "unknown"
    data: List[Any] = Field(default_factory=list)
    next: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


class FirecrawlScraper:
    """Firecrawl-backed page provider."""

    def __init__(self, config: Optional[AuditConfig] = None, session: Optional[ClientSession] = None) -> None:
        self.config = config or AuditConfig()
        self.settings = self.config.firecrawl
        self._session = session

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    async def crawl_site_content(self, url: str, limit: int, api_key: Optional[str] = None) -> List[CrawledPage]:
        """Crawl the site starting at ``url`` and return up to ``limit`` pages."""
        if not is_http_url(url):
            raise ScraperError(f"Invalid URL: {url}")
        if limit < 1 or limit > self.config.max_page_limit:
            raise ScraperError(f"Limit must be between 1 and {self.config.max_page_limit}")
        key = self._resolve_api_key(api_key)

        logger.info("Firecrawl: starting crawl for %s (limit: %d)", url, limit)
        payload = {"url": url, "limit": limit, "scrapeOptions": {"formats": ["markdown"]}}
        async with self._session_scope() as session:
            documents = await self._run_job(session, "/crawl", payload, key)
        pages = self._to_pages(documents)[:limit]
        logger.info("Firecrawl: crawl completed with %d pages", len(pages))
        return pages

    async def batch_scrape_urls(self, urls: List[str], api_key: Optional[str] = None) -> List[CrawledPage]:
        """Scrape an explicit URL list, ``batch_size`` URLs per provider job."""
        if not urls:
            return []
        key = self._resolve_api_key(api_key)
        size = self.settings.batch_size
        pages: List[CrawledPage] = []
        async with self._session_scope() as session:
            for start in range(0, len(urls), size):
                chunk = urls[start : start + size]
                logger.info("Firecrawl: batch %d (%d URLs)", start // size + 1, len(chunk))
                payload = {"urls": chunk, "formats": ["markdown"]}
                documents = await self._run_job(session, "/batch/scrape", payload, key)
                pages.extend(self._to_pages(documents))
        return pages

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _resolve_api_key(self, api_key: Optional[str]) -> str:
        if api_key and api_key.strip():
            return api_key.strip()
        if self.settings.api_key:
            return self.settings.api_key
        env_key = os.environ.get(API_KEY_ENV)
        if not env_key:
            raise MissingApiKeyError(f"{API_KEY_ENV} is not set in environment variables")
        return env_key

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[ClientSession]:
        if self._session is not None and not self._session.closed:
            yield self._session
            return
        async with ClientSession() as session:
            yield session

    @staticmethod
    def _to_pages(documents: List[Any]) -> List[CrawledPage]:
        pages: List[CrawledPage] = []
        for raw in documents:
            try:
                page = FirecrawlDocument.model_validate(raw).to_page()
            except PydanticValidationError as exc:
                logger.warning("Firecrawl: dropping malformed document: %s", exc.errors()[:1])
                continue
            if page is not None:
                pages.append(page)
        return pages

    async def _request(
        self,
        session: ClientSession,
        method: str,
        endpoint: str,
        api_key: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = endpoint if endpoint.startswith(("http://", "https://")) else f"{self.settings.api_url}{endpoint}"
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"}
        try:
            async with session.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=ClientTimeout(total=self.settings.request_timeout),
            ) as resp:
                text = await resp.text(errors="replace")
                if resp.status >= 400:
                    raise self._http_error(resp.status, text)
        except (ClientError, asyncio.TimeoutError) as exc:
            raise ScraperError(f"Firecrawl API request failed: {exc or type(exc).__name__}") from exc

        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ScraperError("Firecrawl API: invalid JSON response") from exc
        if not isinstance(data, dict):
            raise ScraperError("Firecrawl API: unexpected response shape")
        return data

    @staticmethod
    def _http_error(status: int, text: str) -> ScraperError:
        details: Dict[str, Any] = {}
        try:
            parsed = json.loads(text)
            if isinstance(parsed, dict):
                details = parsed
        except ValueError:
            pass

        if status == 401:
            return ScraperError("Firecrawl API: Unauthorized - Invalid API key")
        if status == 402:
            return PaymentRequiredError("Firecrawl API: Payment required - Check your subscription")
        if status == 429:
            return ScraperError("Firecrawl API: Rate limit exceeded - Please try again later")

        message = details.get("error") or details.get("message")
        if status >= 500:
            message = message or "An unexpected server error occurred"
            full = f"Firecrawl API: Server error ({status}) - {message}"
            match = _EXCEPTION_ID_RE.search(text)
            if match:
                full += f" [Exception ID: {match.group(1)}]"
            else:
                full += f" [Error Code: {details.get('code') or 'UNKNOWN_ERROR'}]"
            return ScraperError(full)

        message = message or text[:200]
        code = f" [Code: {details['code']}]" if details.get("code") else ""
        return ScraperError(f"Firecrawl API error ({status}): {message}{code}")

    async def _run_job(
        self,
        session: ClientSession,
        endpoint: str,
        payload: Dict[str, Any],
        api_key: str,
    ) -> List[Any]:
        """Start a job at ``endpoint`` and poll ``endpoint/{id}`` until it settles."""
        started = _JobStarted.model_validate(await self._request(session, "POST", endpoint, api_key, payload))
        if not started.success or not started.id:
            raise ScraperError(started.error or f"Failed to start {endpoint} job")
        job_id = started.id
        logger.info("Firecrawl: job %s started", job_id)

        start = time.monotonic()
        poll_count = 0
        consecutive_errors = 0
        while True:
            if time.monotonic() - start > self.settings.poll_timeout:
                raise ScraperError(
                    f"Crawl timeout after {self.settings.poll_timeout:g} seconds. Job ID: {job_id}"
                )
            if poll_count > 0:
                await asyncio.sleep(self.settings.poll_interval)
            poll_count += 1

            try:
                raw = await self._request(session, "GET", f"{endpoint}/{job_id}", api_key)
                status = _JobStatus.model_validate(raw)
            except (PaymentRequiredError, MissingApiKeyError):
                raise
            except (ScraperError, PydanticValidationError) as exc:
                consecutive_errors += 1
                if consecutive_errors > self.settings.max_poll_errors:
                    logger.error("Firecrawl: too many polling errors, giving up on %s", job_id)
                    if isinstance(exc, ScraperError):
                        raise
                    raise ScraperError(f"Firecrawl API: malformed status response for job {job_id}") from exc
                logger.warning("Firecrawl: error checking status (attempt %d): %s", poll_count, exc)
                continue
            consecutive_errors = 0

            logger.debug("Firecrawl: poll #%d of %s: %s", poll_count, job_id, status.status)
            if status.status == "completed":
                return await self._collect(session, status, api_key)
            if status.status == "failed":
                raise ScraperError(f"Firecrawl crawl failed: {status.error or status.message or 'Crawl failed'}")
            if status.status not in ("active", "scraping"):
                logger.warning("Firecrawl: unknown status %r, continuing to poll", status.status)

    def _follows(self, next_url: str) -> bool:
        """Only result pages served under the configured API root carry the key."""
        return next_url.startswith(self.settings.api_url + "/")

    async def _collect(self, session: ClientSession, status: _JobStatus, api_key: str) -> List[Any]:
        documents = list(status.data)
        next_url = status.next
        followed = 0
        while next_url:
            if not self._follows(next_url):
                logger.warning("Firecrawl: not following result page outside the API root: %s", next_url)
                break
            if followed >= self.settings.max_result_pages:
                logger.warning("Firecrawl: stopping after %d result pages", followed)
                break
            followed += 1
            try:
                page = _JobStatus.model_validate(await self._request(session, "GET", next_url, api_key))
            except (ScraperError, PydanticValidationError) as exc:
                logger.error("Firecrawl: pagination failed: %s", exc)
                break
            documents.extend(page.data)
            next_url = page.next
        if not documents:
            logger.warning("Firecrawl: job completed but no data returned")
        return documents
