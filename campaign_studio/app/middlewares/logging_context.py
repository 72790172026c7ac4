"""Binds per-request context (correlation id, method, path) into structlog and logs one line per request."""

import time

import structlog
from asgi_correlation_id import correlation_id
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import RequestResponseEndpoint

access_logger = structlog.stdlib.get_logger('campaign-studio.access')


def add_logging_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def logging_context(request: Request, call_next: RequestResponseEndpoint) -> Response:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=correlation_id.get(),
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            access_logger.info('request finished', status_code=status_code, duration_ms=round(elapsed_ms, 2))
