# site_audit/server.py
"""
HTTP interface (aiohttp.web).

Routes:
  POST /duplicate-check        run a duplicate content check and wait for it
  POST /noindex-check          run a noindex check and wait for it
  POST /tasks/duplicate-check  start a duplicate content check in the background
  POST /tasks/noindex-check    start a noindex check in the background
  GET  /tasks/{task_id}        poll a background check

Synchronous checks are bounded by the per-endpoint ceilings of the config;
hitting one answers 504.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Dict, Optional, Type, TypeVar

from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from site_audit.config import AuditConfig
from site_audit.engine import AuditResponse, AuditService
from site_audit.errors import ErrorCode
from site_audit.logger import logger
from site_audit.tasks import AuditTaskRunner

__all__ = ["create_app", "run_server", "SERVICE_KEY", "RUNNER_KEY"]

SERVICE_KEY = web.AppKey("service", AuditService)
RUNNER_KEY = web.AppKey("runner", AuditTaskRunner)
CONFIG_KEY = web.AppKey("config", AuditConfig)

_Body = TypeVar("_Body", bound=BaseModel)


class DuplicateCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # url and limit stay untyped: their validation maps to specific error codes
    url: Any = None
    limit: Any = None
    api_key: Optional[str] = Field(None, alias="apiKeyFirecrawl")
    use_sitemap: bool = Field(True, alias="useSitemap")


class NoindexCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: Any = None
    max_pages: Any = Field(None, alias="maxPages")


class _BadRequest(Exception):
    pass


def _error(message: str, code: ErrorCode, status: int, started: Optional[float] = None) -> web.Response:
    body: Dict[str, Any] = {"success": False, "error": message, "code": code.value}
    if started is not None:
        body["executionTime"] = round(time.monotonic() - started)
    return web.json_response(body, status=status)


async def _read_body(request: web.Request, model: Type[_Body]) -> _Body:
    try:
        raw = await request.json()
    except ValueError as exc:  # JSONDecodeError, UnicodeDecodeError
        raise _BadRequest(f"Invalid JSON body: {exc}") from exc
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise _BadRequest(f"Invalid request body: {exc.errors()[0]['msg']}") from exc


async def _bounded(call: Awaitable[AuditResponse], ceiling: float, started: float) -> web.Response:
    try:
        response = await asyncio.wait_for(call, timeout=ceiling)
    except asyncio.TimeoutError:
        logger.error("Request exceeded the %gs ceiling", ceiling)
        return _error(f"Request timed out after {ceiling:g} seconds", ErrorCode.UNEXPECTED_ERROR, 504, started)
    return web.json_response(response.body, status=response.status)


async def duplicate_check(request: web.Request) -> web.Response:
    started = time.monotonic()
    try:
        body = await _read_body(request, DuplicateCheckRequest)
    except _BadRequest as exc:
        logger.warning("Rejected duplicate check request: %s", exc)
        return _error(str(exc), ErrorCode.UNEXPECTED_ERROR, 500, started)
    service = request.app[SERVICE_KEY]
    return await _bounded(
        service.duplicate_check(body.url, body.limit, api_key=body.api_key, use_sitemap=body.use_sitemap),
        request.app[CONFIG_KEY].duplicate_check_ceiling,
        started,
    )


async def noindex_check(request: web.Request) -> web.Response:
    started = time.monotonic()
    try:
        body = await _read_body(request, NoindexCheckRequest)
    except _BadRequest as exc:
        logger.warning("Rejected noindex check request: %s", exc)
        return _error(str(exc), ErrorCode.UNEXPECTED_ERROR, 500, started)
    service = request.app[SERVICE_KEY]
    return await _bounded(
        service.noindex_check(body.url, body.max_pages),
        request.app[CONFIG_KEY].noindex_check_ceiling,
        started,
    )


async def start_duplicate_task(request: web.Request) -> web.Response:
    try:
        body = await _read_body(request, DuplicateCheckRequest)
    except _BadRequest as exc:
        return _error(str(exc), ErrorCode.UNEXPECTED_ERROR, 500)
    task_id = await request.app[RUNNER_KEY].start_duplicate_check(
        body.url, body.limit, api_key=body.api_key, use_sitemap=body.use_sitemap
    )
    return web.json_response({"success": True, "taskId": task_id, "status": "pending"}, status=202)


async def start_noindex_task(request: web.Request) -> web.Response:
    try:
        body = await _read_body(request, NoindexCheckRequest)
    except _BadRequest as exc:
        return _error(str(exc), ErrorCode.UNEXPECTED_ERROR, 500)
    task_id = await request.app[RUNNER_KEY].start_noindex_check(body.url, body.max_pages)
    return web.json_response({"success": True, "taskId": task_id, "status": "pending"}, status=202)


async def get_task(request: web.Request) -> web.Response:
    task_id = request.match_info["task_id"]
    task = await request.app[RUNNER_KEY].get(task_id)
    if task is None:
        return _error(f"Task {task_id} not found", ErrorCode.TASK_NOT_FOUND, 404)
    return web.json_response({"success": True, "task": task.as_dict()})


async def _shutdown_runner(app: web.Application) -> None:
    await app[RUNNER_KEY].shutdown()


def create_app(
    config: Optional[AuditConfig] = None,
    service: Optional[AuditService] = None,
    runner: Optional[AuditTaskRunner] = None,
) -> web.Application:
    config = config or (service.config if service is not None else AuditConfig())
    service = service or AuditService(config)
    app = web.Application()
    app[CONFIG_KEY] = config
    app[SERVICE_KEY] = service
    app[RUNNER_KEY] = runner or AuditTaskRunner(service)
    app.add_routes(
        [
            web.post("/duplicate-check", duplicate_check),
            web.post("/noindex-check", noindex_check),
            web.post("/tasks/duplicate-check", start_duplicate_task),
            web.post("/tasks/noindex-check", start_noindex_task),
            web.get("/tasks/{task_id}", get_task),
        ]
    )
    app.on_cleanup.append(_shutdown_runner)
    return app


def run_server(config: AuditConfig, host: str = "127.0.0.1", port: int = 8080) -> None:
    logger.info("Serving SiteAudit on http://%s:%d", host, port)
    web.run_app(create_app(config), host=host, port=port, print=None)
