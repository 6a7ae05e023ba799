# File: tests/test_server.py
from __future__ import annotations

import asyncio

import pytest
from aiohttp import ClientSession

from conftest import FakeScraper, make_page
from site_audit.config import AuditConfig
from site_audit.engine import AuditResponse, AuditService
from site_audit.server import create_app

TEXT = "a short page body that appears twice on the audited website"


class SlowService:
    def __init__(self, config: AuditConfig) -> None:
        self.config = config

    async def duplicate_check(self, url, limit=None, api_key=None, use_sitemap=True):
        await asyncio.sleep(5)
        return AuditResponse(200, {"success": True})

    async def noindex_check(self, url, max_pages=None):
        await asyncio.sleep(5)
        return AuditResponse(200, {"success": True})


@pytest.fixture()
def no_sitemap(monkeypatch):
    from site_audit.crawler.sitemap import SitemapResolver, SitemapResult

    async def resolve(self, base_url, max_urls=None, max_child_sitemaps=None):
        return SitemapResult(success=False, error="No sitemap found at common locations")

    monkeypatch.setattr(SitemapResolver, "resolve", resolve)


@pytest.fixture()
def service() -> AuditService:
    scraper = FakeScraper(crawl=[make_page("https://example.com/a", TEXT), make_page("https://example.com/b", TEXT)])
    return AuditService(AuditConfig(scraper="local"), scraper)


@pytest.mark.asyncio()
async def test_duplicate_check_endpoint(serve_app, service, no_sitemap):
    base = await serve_app(create_app(service=service))
    async with ClientSession() as session:
        async with session.post(f"{base}/duplicate-check", json={"url": "https://example.com", "limit": 5}) as resp:
            assert resp.status == 200
            body = await resp.json()
    assert body["success"] is True
    assert body["data"]["duplicatesFound"] == 2
    assert body["source"] == "crawl"


@pytest.mark.parametrize(
    "payload,status,code",
    [
        ({}, 400, "MISSING_URL"),
        ({"url": "example.com"}, 400, "INVALID_URL"),
        ({"url": "https://example.com", "limit": 500}, 400, "INVALID_LIMIT"),
    ],
)
@pytest.mark.asyncio()
async def test_duplicate_check_validation(serve_app, service, payload, status, code):
    base = await serve_app(create_app(service=service))
    async with ClientSession() as session:
        async with session.post(f"{base}/duplicate-check", json=payload) as resp:
            assert resp.status == status
            body = await resp.json()
    assert set(body) == {"success", "error", "code", "executionTime"}
    assert body["success"] is False
    assert body["code"] == code


@pytest.mark.asyncio()
async def test_noindex_validation(serve_app, service):
    base = await serve_app(create_app(service=service))
    async with ClientSession() as session:
        async with session.post(f"{base}/noindex-check", json={"url": "https://example.com", "maxPages": 0}) as resp:
            assert resp.status == 400
            assert (await resp.json())["code"] == "INVALID_MAX_PAGES"


@pytest.mark.asyncio()
async def test_invalid_json_body(serve_app, service):
    base = await serve_app(create_app(service=service))
    async with ClientSession() as session:
        async with session.post(f"{base}/duplicate-check", data="{not json") as resp:
            assert resp.status == 500
            assert (await resp.json())["code"] == "UNEXPECTED_ERROR"


@pytest.mark.asyncio()
async def test_undecodable_body(serve_app, service):
    base = await serve_app(create_app(service=service))
    async with ClientSession() as session:
        async with session.post(
            f"{base}/duplicate-check", data=b'{"url": "\xff\xfe"}', headers={"Content-Type": "application/json"}
        ) as resp:
            assert resp.status == 500
            body = await resp.json()
    assert body["success"] is False
    assert body["code"] == "UNEXPECTED_ERROR"
    assert body["error"]


@pytest.mark.asyncio()
async def test_ceiling_answers_504(serve_app):
    config = AuditConfig(duplicate_check_ceiling=0.2, noindex_check_ceiling=0.2)
    base = await serve_app(create_app(config, service=SlowService(config)))
    async with ClientSession() as session:
        async with session.post(f"{base}/duplicate-check", json={"url": "https://example.com"}) as resp:
            assert resp.status == 504
            body = await resp.json()
        async with session.post(f"{base}/noindex-check", json={"url": "https://example.com"}) as resp:
            assert resp.status == 504
    assert body["code"] == "UNEXPECTED_ERROR"
    assert body["success"] is False


@pytest.mark.asyncio()
async def test_background_task_endpoints(serve_app, service, no_sitemap):
    base = await serve_app(create_app(service=service))
    async with ClientSession() as session:
        async with session.post(f"{base}/tasks/duplicate-check", json={"url": "https://example.com"}) as resp:
            assert resp.status == 202
            started = await resp.json()
        task_id = started["taskId"]
        assert started["status"] == "pending"

        for _ in range(50):
            async with session.get(f"{base}/tasks/{task_id}") as resp:
                assert resp.status == 200
                task = (await resp.json())["task"]
            if task["status"] in ("completed", "failed"):
                break
            await asyncio.sleep(0.05)

        assert task["status"] == "completed"
        assert task["result"]["data"]["duplicatesFound"] == 2

        async with session.get(f"{base}/tasks/unknown") as resp:
            assert resp.status == 404
            assert (await resp.json())["code"] == "TASK_NOT_FOUND"
