"""Background execution of audits.

:class:`AuditTaskRunner` starts a check as an asyncio task and returns an id
right away; callers poll :meth:`AuditTaskRunner.get` until the task reaches
``completed`` or ``failed``. Task records live in a :class:`TaskStore`;
:class:`InMemoryTaskStore` keeps them for the lifetime of the process.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Protocol, Set

from site_audit.crawler.models import utcnow
from site_audit.engine import AuditResponse, AuditService

__all__ = ["TaskStatus", "AuditTask", "TaskStore", "InMemoryTaskStore", "AuditTaskRunner"]

logger = logging.getLogger("SiteAudit")

TaskKind = Literal["duplicate-check", "noindex-check"]


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class AuditTask:
    id: str
    kind: TaskKind
    params: Dict[str, Any]
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def finished(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "status": self.status.value,
            "params": dict(self.params),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


class TaskStore(Protocol):
    async def save(self, task: AuditTask) -> None:
        ...

    async def get(self, task_id: str) -> Optional[AuditTask]:
        ...


class InMemoryTaskStore:
    """Process-local task store; the oldest finished tasks are evicted past ``max_tasks``."""

    def __init__(self, max_tasks: int = 1000) -> None:
        self.max_tasks = max_tasks
        self._tasks: Dict[str, AuditTask] = {}

    async def save(self, task: AuditTask) -> None:
        self._tasks[task.id] = task
        if len(self._tasks) > self.max_tasks:
            self._evict()

    async def get(self, task_id: str) -> Optional[AuditTask]:
        return self._tasks.get(task_id)

    def __len__(self) -> int:
        return len(self._tasks)

    def _evict(self) -> None:
        finished = sorted((t for t in self._tasks.values() if t.finished), key=lambda t: t.updated_at)
        for task in finished[: len(self._tasks) - self.max_tasks]:
            del self._tasks[task.id]


class AuditTaskRunner:
    """Runs audits of an :class:`AuditService` in the background."""

    def __init__(self, service: AuditService, store: Optional[TaskStore] = None) -> None:
        self.service = service
        self.store: TaskStore = store or InMemoryTaskStore()
        self._running: Set[asyncio.Task] = set()

    async def start_duplicate_check(
        self,
        url: Any,
        limit: Any = None,
        api_key: Optional[str] = None,
        use_sitemap: bool = True,
    ) -> str:
        params = {"url": url, "limit": limit, "useSitemap": use_sitemap}
        return await self._start(
            "duplicate-check",
            params,
            lambda: self.service.duplicate_check(url, limit, api_key=api_key, use_sitemap=use_sitemap),
        )

    async def start_noindex_check(self, url: Any, max_pages: Any = None) -> str:
        params = {"url": url, "maxPages": max_pages}
        return await self._start("noindex-check", params, lambda: self.service.noindex_check(url, max_pages))

    async def get(self, task_id: str) -> Optional[AuditTask]:
        return await self.store.get(task_id)

    async def wait(self, task_id: str, timeout: Optional[float] = None) -> Optional[AuditTask]:
        """Wait for the background task of ``task_id`` (if still running) and return its record."""
        pending = [t for t in self._running if t.get_name() == task_id]
        if pending:
            await asyncio.wait(pending, timeout=timeout)
        return await self.store.get(task_id)

    async def shutdown(self) -> None:
        """Cancel tasks that are still running."""
        for task in list(self._running):
            task.cancel()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    async def _start(
        self,
        kind: TaskKind,
        params: Dict[str, Any],
        call: Callable[[], Awaitable[AuditResponse]],
    ) -> str:
        record = AuditTask(id=uuid.uuid4().hex, kind=kind, params=params)
        await self.store.save(record)
        task = asyncio.create_task(self._execute(record, call), name=record.id)
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        logger.info("Started %s task %s for %s", kind, record.id, params.get("url"))
        return record.id

    async def _update(self, record: AuditTask, status: TaskStatus, **changes: Any) -> None:
        record.status = status
        for name, value in changes.items():
            setattr(record, name, value)
        record.updated_at = utcnow()
        await self.store.save(record)

    async def _execute(self, record: AuditTask, call: Callable[[], Awaitable[AuditResponse]]) -> None:
        await self._update(record, TaskStatus.RUNNING)
        try:
            response = await call()
        except asyncio.CancelledError:
            await self._update(record, TaskStatus.FAILED, error="Task was cancelled")
            raise
        except Exception as exc:
            logger.exception("Task %s crashed: %s", record.id, exc)
            await self._update(record, TaskStatus.FAILED, error=str(exc) or type(exc).__name__)
            return

        if response.success:
            await self._update(record, TaskStatus.COMPLETED, result=response.body)
            logger.info("Task %s completed", record.id)
        else:
            await self._update(record, TaskStatus.FAILED, result=response.body, error=response.body.get("error"))
            logger.info("Task %s failed: %s", record.id, response.body.get("code"))
