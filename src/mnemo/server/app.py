"""HTTP API — a thin aiohttp shim over ``mnemo.core.Mnemo``.

Handlers parse transport input, run the synchronous core operation in a
worker thread and format JSON. Errors are mapped to status codes in one
middleware.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from aiohttp import web

from mnemo.errors import (
    DecryptionError,
    KeyFileError,
    MnemoError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from mnemo.memory.store import DEFAULT_TIMELINE_DAYS, bounded
from mnemo.server.ratelimit import RateLimiter, rate_limit_middleware

if TYPE_CHECKING:
    from mnemo.core import Mnemo

logger = logging.getLogger(__name__)

MNEMO = web.AppKey("mnemo", object)

_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    DecryptionError: 422,
    KeyFileError: 422,
    StorageError: 500,
}


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except MnemoError as e:
        status = next((code for cls, code in _STATUS.items() if isinstance(e, cls)), 500)
        if status >= 500:
            logger.error("[%s %s] %s", request.method, request.path, e)
        return web.json_response({"error": str(e)}, status=status)
    except Exception:
        logger.exception("[%s %s] unhandled error", request.method, request.path)
        return web.json_response({"error": "Internal server error"}, status=500)


def _core(request: web.Request) -> Mnemo:
    return request.app[MNEMO]


async def _json_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Request body must be JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _pick(source, *names, default=None):
    for name in names:
        value = source.get(name)
        if value is not None:
            return value
    return default


def _query_options(params) -> dict:
    return {
        "agent_id": _pick(params, "agentId", "agent_id"),
        "content_type": _pick(params, "type", "content_type"),
        "min_importance": _pick(params, "minImportance", "min_importance", default=0),
        "limit": _pick(params, "limit"),
        "days": _pick(params, "days"),
    }


def _write_options(body: dict) -> dict:
    return {
        "project": _pick(body, "project", default="general"),
        "agent_id": _pick(body, "agentId", "agent_id", default="default"),
        "content_type": _pick(body, "type", "content_type", default="insight"),
        "importance": body.get("importance"),
        "metadata": body.get("metadata"),
        "source": body.get("source"),
    }


def _required_q(request: web.Request) -> str:
    q = request.query.get("q")
    if q is None:
        raise ValidationError('Query parameter "q" required')
    return q


# ── Status ───────────────────────────────────────────────────


async def health(request: web.Request) -> web.Response:
    return web.json_response(await asyncio.to_thread(_core(request).health))


async def projects(request: web.Request) -> web.Response:
    core = _core(request)
    names = await asyncio.to_thread(core.list_projects)
    return web.json_response({"projects": names, "data_lake": str(core.config.data_lake)})


# ── Plaintext memories ───────────────────────────────────────


async def store(request: web.Request) -> web.Response:
    body = await _json_body(request)
    result = await asyncio.to_thread(
        _core(request).store, body.get("content"), **_write_options(body)
    )
    return web.json_response(result.to_dict())


async def query(request: web.Request) -> web.Response:
    q = _required_q(request)
    project = request.query.get("project", "general")
    results = await asyncio.to_thread(
        _core(request).query, q, project=project, **_query_options(request.query)
    )
    return web.json_response(
        {
            "query": q,
            "project": project,
            "count": len(results),
            "results": [r.to_dict() for r in results],
        }
    )


async def query_all(request: web.Request) -> web.Response:
    q = _required_q(request)
    options = _query_options(request.query)
    options["per_project_limit"] = _pick(request.query, "perProjectLimit", "per_project_limit")
    core = _core(request)
    searched = await asyncio.to_thread(core.list_projects)
    results = await asyncio.to_thread(core.query_all, q, **options)
    return web.json_response(
        {
            "query": q,
            "projects_searched": searched,
            "count": len(results),
            "results": [r.to_dict() for r in results],
        }
    )


async def timeline(request: web.Request) -> web.Response:
    core = _core(request)
    project = request.query.get("project", "general")
    days = bounded(
        request.query.get("days"), DEFAULT_TIMELINE_DAYS, core.config.limits.max_timeline_days, "days"
    )
    grouped = await asyncio.to_thread(
        core.timeline,
        project=project,
        agent_id=_pick(request.query, "agentId", "agent_id"),
        days=days,
    )
    return web.json_response(
        {
            "project": project,
            "days": days,
            "timeline": {date: [m.to_dict() for m in items] for date, items in grouped.items()},
        }
    )


async def get_memory(request: web.Request) -> web.Response:
    memory = await asyncio.to_thread(
        _core(request).get,
        request.match_info["memory_id"],
        request.query.get("project", "general"),
    )
    return web.json_response(memory.to_dict())


# ── Encrypted memories ───────────────────────────────────────


async def encrypted_store(request: web.Request) -> web.Response:
    body = await _json_body(request)
    result = await asyncio.to_thread(
        _core(request).encrypt_store, body.get("content"), **_write_options(body)
    )
    data = result.to_dict()
    data.pop("content", None)
    return web.json_response(data)


async def encrypted_query(request: web.Request) -> web.Response:
    q = _required_q(request)
    project = request.query.get("project", "general")
    results = await asyncio.to_thread(
        _core(request).encrypt_query, q, project=project, **_query_options(request.query)
    )
    return web.json_response(
        {
            "query": q,
            "project": project,
            "count": len(results),
            "results": [r.to_dict() for r in results],
        }
    )


async def key_status(request: web.Request) -> web.Response:
    return web.json_response(await asyncio.to_thread(_core(request).key_status))


# ── Maintenance ──────────────────────────────────────────────


async def maintenance(request: web.Request) -> web.Response:
    body = await _json_body(request) if request.can_read_body else {}
    core = _core(request)
    action = body.get("action", "all")
    project = body.get("project")

    if action == "all":
        targets = [project] if project else None
        report = await asyncio.to_thread(core.maintenance, targets)
        return web.json_response(report.to_dict())
    if not project:
        raise ValidationError(f'"project" is required for action "{action}"')
    if action == "cleanup":
        removed = await asyncio.to_thread(
            core.cleanup, project, body.get("days"), _pick(body, "maxImportance", "max_importance")
        )
        return web.json_response({"project": project, "removed": removed})
    if action == "compress":
        compressed = await asyncio.to_thread(
            core.compress, project, body.get("days"), _pick(body, "maxLength", "max_length")
        )
        return web.json_response({"project": project, "compressed": compressed})
    raise ValidationError("Invalid action. Use: all, cleanup, compress")


async def not_found(request: web.Request) -> web.Response:
    return web.json_response({"error": "Not found"}, status=404)


def create_app(mnemo: Mnemo, limiter: RateLimiter | None = None) -> web.Application:
    """Build the aiohttp application for ``mnemo``."""
    server = mnemo.config.server
    limiter = limiter or RateLimiter(server.rate_limit, server.rate_window)
    app = web.Application(
        middlewares=[error_middleware, rate_limit_middleware(limiter)],
        client_max_size=server.max_body_bytes,
    )
    app[MNEMO] = mnemo

    app.router.add_get("/api/health", health)
    app.router.add_get("/api/projects", projects)
    app.router.add_post("/api/memory/store", store)
    app.router.add_get("/api/memory/query", query)
    app.router.add_get("/api/memory/query-all", query_all)
    app.router.add_get("/api/memory/timeline", timeline)
    app.router.add_post("/api/memory/encrypted/store", encrypted_store)
    app.router.add_get("/api/memory/encrypted/query", encrypted_query)
    app.router.add_get("/api/memory/{memory_id}", get_memory)
    app.router.add_get("/api/crypto/status", key_status)
    app.router.add_post("/api/maintenance", maintenance)
    app.router.add_route("*", "/{tail:.*}", not_found)
    return app


async def start_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    """Start serving ``app``; the caller owns ``runner.cleanup()``."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("mnemo API listening on http://%s:%d", host, port)
    return runner
