"""HTTP status endpoints.

Public API:
    create_app(cache, ttl_ms)  - FastAPI application over a SnapshotCache

Routes:
    GET /, GET /status  - latest snapshot (503 until the first refresh lands)
    GET /health         - liveness, independent of the cache
    OPTIONS *           - 204 for CORS preflight
    anything else       - 404

Handlers only read the cache reference; they never run a probe.
"""

from __future__ import annotations

import math
import time
from typing import Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from ..observe import SnapshotCache, format_uptime

logger = structlog.get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

COLD_START_ERROR = "starting up, no data yet"

_OTHER_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]
_ROUTED_METHODS = frozenset(_OTHER_METHODS) | {"OPTIONS"}


def create_app(
    cache: SnapshotCache,
    ttl_ms: int = 10_000,
    started_at: Optional[float] = None,
) -> FastAPI:
    """Build the status application.

    Args:
        cache: Snapshot cache filled by the refresh scheduler.
        ttl_ms: Refresh period, advertised as Cache-Control max-age.
        started_at: time.monotonic() value uptime is measured from
            (default: now).
    """
    app = FastAPI(title="botstatus", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.cache = cache
    app.state.started_at = time.monotonic() if started_at is None else started_at
    max_age = math.ceil(ttl_ms / 1000)

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        if request.method in _ROUTED_METHODS:
            response = await call_next(request)
        else:
            # Methods no route accepts (TRACE, PROPFIND, ...) are 404, not 405
            response = PlainTextResponse("Not Found", status_code=404)
        response.headers.update(CORS_HEADERS)
        return response

    @app.options("/{path:path}")
    async def preflight(path: str):
        return Response(status_code=204)

    @app.get("/")
    @app.get("/status")
    async def status():
        snapshot = cache.get()
        if snapshot is None:
            return JSONResponse(status_code=503, content={"error": COLD_START_ERROR})
        return JSONResponse(
            content=snapshot.to_dict(),
            headers={"Cache-Control": f"public, max-age={max_age}"},
        )

    @app.get("/health")
    async def health():
        uptime_seconds = time.monotonic() - app.state.started_at
        return {"status": "ok", "uptime": format_uptime(uptime_seconds)}

    @app.api_route("/{path:path}", methods=_OTHER_METHODS)
    async def not_found(path: str):
        return PlainTextResponse("Not Found", status_code=404)

    return app
