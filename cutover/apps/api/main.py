from __future__ import annotations

import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cutover.apps.api.errors import (
    cutover_exception_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from cutover.apps.api.response import API_VERSION, request_id_for
from cutover.apps.api.routes.failover import router as failover_router
from cutover.apps.api.routes.health import router as health_router
from cutover.apps.api.routes.ops import router as ops_router
from cutover.apps.api.routes.regions import router as regions_router
from cutover.core.errors import CutoverError
from cutover.core.logging import configure_logging
from cutover.services.telemetry import record_request


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Cutover Failover Control Plane", version=API_VERSION)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request_id_for(request)
        start = time.monotonic()
        response = await call_next(request)
        record_request(
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=(time.monotonic() - start) * 1000.0,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(CutoverError)
    async def _cutover_exception_handler(request: Request, exc: CutoverError):
        return await cutover_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(failover_router, prefix=f"/{API_VERSION}")
    app.include_router(regions_router, prefix=f"/{API_VERSION}")
    app.include_router(ops_router, prefix=f"/{API_VERSION}")

    return app


app = create_app()
