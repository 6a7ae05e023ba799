# File: tests/test_tasks.py
from __future__ import annotations

import asyncio

import pytest

from site_audit.engine import AuditResponse
from site_audit.tasks import AuditTaskRunner, InMemoryTaskStore, TaskStatus


class StubService:
    def __init__(self, response: AuditResponse | None = None, gate: asyncio.Event | None = None, error=None):
        self.response = response or AuditResponse(200, {"success": True, "data": {}})
        self.gate = gate
        self.error = error

    async def _respond(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response

    async def duplicate_check(self, url, limit=None, api_key=None, use_sitemap=True):
        return await self._respond()

    async def noindex_check(self, url, max_pages=None):
        return await self._respond()


@pytest.mark.asyncio()
async def test_task_lifecycle():
    gate = asyncio.Event()
    runner = AuditTaskRunner(StubService(gate=gate))

    task_id = await runner.start_duplicate_check("https://example.com", 10)
    await asyncio.sleep(0)
    task = await runner.get(task_id)
    assert task is not None
    assert task.status in (TaskStatus.PENDING, TaskStatus.RUNNING)
    assert task.kind == "duplicate-check"

    gate.set()
    task = await runner.wait(task_id, timeout=1)
    assert task.status is TaskStatus.COMPLETED
    assert task.result == {"success": True, "data": {}}
    assert task.as_dict()["status"] == "completed"


@pytest.mark.asyncio()
async def test_failed_response_marks_task_failed():
    body = {"success": False, "error": "URL is required", "code": "MISSING_URL"}
    runner = AuditTaskRunner(StubService(AuditResponse(400, body)))

    task_id = await runner.start_noindex_check("", None)
    task = await runner.wait(task_id, timeout=1)

    assert task.status is TaskStatus.FAILED
    assert task.error == "URL is required"
    assert task.kind == "noindex-check"


@pytest.mark.asyncio()
async def test_crash_marks_task_failed():
    runner = AuditTaskRunner(StubService(error=RuntimeError("exploded")))

    task_id = await runner.start_duplicate_check("https://example.com")
    task = await runner.wait(task_id, timeout=1)

    assert task.status is TaskStatus.FAILED
    assert task.error == "exploded"


@pytest.mark.asyncio()
async def test_unknown_task():
    runner = AuditTaskRunner(StubService())
    assert await runner.get("missing") is None


@pytest.mark.asyncio()
async def test_shutdown_cancels_running_tasks():
    runner = AuditTaskRunner(StubService(gate=asyncio.Event()))
    task_id = await runner.start_duplicate_check("https://example.com")
    await asyncio.sleep(0)

    await runner.shutdown()

    task = await runner.get(task_id)
    assert task.status is TaskStatus.FAILED


@pytest.mark.asyncio()
async def test_store_evicts_oldest_finished():
    store = InMemoryTaskStore(max_tasks=2)
    runner = AuditTaskRunner(StubService(), store)
    ids = []
    for _ in range(3):
        ids.append(await runner.start_noindex_check("https://example.com"))
        await runner.wait(ids[-1], timeout=1)

    assert len(store) == 2
    assert await store.get(ids[0]) is None
    assert await store.get(ids[2]) is not None
