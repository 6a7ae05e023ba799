# site_audit/crawler/fetcher.py
"""
Fetcher module: HTTP GET/HEAD with per-call timeout, optional rate limiting and retry/backoff.

Fetch failures never raise: a timeout, a connection error or an exhausted
retry budget all come back as ``None`` so callers can treat the URL as
"not available" and carry on.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Mapping, Optional, Sequence
from urllib.parse import urlparse

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_audit.crawler.models import CrawledPage, PageSource, utcnow
from site_audit.parser.html_parser import parse_html
from site_audit.parser.robots_parser import RobotsRules

logger = logging.getLogger("SiteAudit")

RETRY_STATUS: Sequence[int] = tuple(range(500, 600)) + (429,)


@dataclass(slots=True)
class FetchResult:
    """Response of a single request, read completely."""

    url: str
    status: int
    headers: Mapping[str, str]
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "").lower()

    def header_values(self, name: str) -> list[str]:
        getall = getattr(self.headers, "getall", None)
        if getall is not None:
            return list(getall(name, []))
        value = self.headers.get(name)
        return [value] if value is not None else []


class Fetcher:
    """Handles HTTP fetching with rate limit, retries/backoff, and timeout."""

    def __init__(
        self,
        session: ClientSession,
        *,
        timeout: float,
        retry_times: int = 0,
        rate_limit: Optional[float] = None,
        retry_status: Sequence[int] = RETRY_STATUS,
        backoff: float = 1.0,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self.retry_times = retry_times
        self.rate_limit = rate_limit
        self._retry_status = retry_status
        self._backoff = backoff
        self._req_times: Deque[float] = deque()
        self._rate_lock = asyncio.Lock()

    async def get(
        self,
        url: str,
        *,
        timeout: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
        method: str = "GET",
    ) -> FetchResult | None:
        """
        Request the URL, following redirects.

        Returns FetchResult for any final status (retryable statuses are retried
        first), or None on timeout / network failure.
        """
        client_timeout = ClientTimeout(total=timeout or self.timeout)
        attempts = 0
        while True:
            await self._wait_for_rate_limit()
            try:
                async with self.session.request(
                    method,
                    url,
                    timeout=client_timeout,
                    headers=headers,
                    allow_redirects=True,
                    raise_for_status=False,
                ) as resp:
                    if resp.status in self._retry_status and attempts < self.retry_times:
                        raise ClientError(f"Retryable status {resp.status}")
                    text = "" if method == "HEAD" else await resp.text(errors="replace")
                    return FetchResult(str(resp.url), resp.status, resp.headers, text)
            except asyncio.TimeoutError:
                # no retry on timeout
                logger.debug("Timeout fetching %s", url)
                return None
            except ClientError as exc:
                attempts += 1
                if attempts > self.retry_times:
                    logger.debug("Failed %s: %s", url, exc)
                    return None
                delay = min(self._backoff * 2**attempts, 60)
                logger.debug("Retry %d/%d for %s after %.2f s", attempts, self.retry_times, url, delay)
                await asyncio.sleep(delay)

    async def fetch_page(
        self,
        url: str,
        robots: Optional[RobotsRules] = None,
        source: PageSource = "crawl",
    ) -> CrawledPage | None:
        """
        Fetch an HTML page if robots.txt allows it.

        Returns CrawledPage on HTTP 200 with an HTML content type, otherwise None.
        """
        if robots is not None and not robots.can_fetch(urlparse(url).path or "/"):
            logger.debug("Blocked by robots.txt: %s", url)
            return None
        result = await self.get(url)
        if result is None or result.status != 200:
            return None
        if "html" not in result.content_type:
            return None
        try:
            title = parse_html(result.text).title or None
        except Exception as exc:
            logger.warning("Unparseable page %s: %s", url, exc)
            return None
        return CrawledPage(url=result.url, content=result.text, fetched_at=utcnow(), source=source, title=title)

    async def _wait_for_rate_limit(self) -> None:
        if not self.rate_limit:
            return
        async with self._rate_lock:
            now = time.monotonic()
            # remove timestamps older than 1 second
            while self._req_times and now - self._req_times[0] > 1.0:
                self._req_times.popleft()
            if len(self._req_times) >= self.rate_limit:
                sleep_for = 1.0 - (now - self._req_times[0])
                if sleep_for > 0:
                    await asyncio.sleep(sleep_for)
            self._req_times.append(time.monotonic())
