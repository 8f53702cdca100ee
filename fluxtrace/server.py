"""HTTP surface: ``GET|POST /api/analyze`` served with Starlette and uvicorn."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .service import INTERNAL_ERROR, TraceService

logger = logging.getLogger(__name__)


async def _request_params(request: Request) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if request.method == "POST":
        body = await request.body()
        if body:
            try:
                payload = json.loads(body)
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                params.update(payload)
    # Query parameters take precedence over the body
    params.update(request.query_params)
    return params


def create_app(service: TraceService) -> Starlette:
    """Create the Starlette ASGI application."""

    async def analyze(request: Request) -> JSONResponse:
        try:
            params = await _request_params(request)
            status, body = await run_in_threadpool(service.handle, params)
        except Exception:
            logger.exception("Unhandled error in /api/analyze")
            return JSONResponse(dict(INTERNAL_ERROR), status_code=500)
        return JSONResponse(body, status_code=status)

    async def health(request: Request) -> JSONResponse:
        graph = service.graph
        return JSONResponse({
            "status": "ok",
            "projectRoot": str(service.project_root),
            "graph": {"ready": graph.ready, "source": graph.source, "modules": len(graph)},
            "circuit": service.analyst.breaker.state.value,
        })

    return Starlette(
        routes=[
            Route("/api/analyze", analyze, methods=["GET", "POST"]),
            Route("/api/health", health, methods=["GET"]),
        ],
        middleware=[Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])],
    )


def run_server(service: TraceService, host: str = "127.0.0.1", port: int = 7001, log_level: str = "info") -> None:
    import uvicorn

    app = create_app(service)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
