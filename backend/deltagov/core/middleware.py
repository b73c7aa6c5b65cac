"""
FastAPI exception handlers and middleware.

Converts all AppError subclasses and unexpected exceptions into
consistent JSON responses. Injects correlation IDs into every request.
"""

from __future__ import annotations

import re
import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from deltagov.core.errors import AppError, ErrorCode
from deltagov.core.metrics import HTTP_REQUEST_SECONDS, HTTP_REQUESTS

_log = structlog.get_logger(__name__)

# Inbound IDs end up in every log line; anything else is replaced
_CORRELATION_ID = re.compile(r"[A-Za-z0-9._:-]{1,64}")


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Injects a correlation ID into every request/response cycle.

    The ID is taken from the ``X-Correlation-ID`` request header when it
    is a short token; otherwise a new UUID4 is generated. It is bound to
    the structlog context for the duration of the request. Requests are counted
    under their route template (``/api/v1/bills/{bill_id}``), never the raw path.
    """

    HEADER = "X-Correlation-ID"

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        inbound = request.headers.get(self.HEADER, "")
        correlation_id = inbound if _CORRELATION_ID.fullmatch(inbound) else str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )
        request.state.correlation_id = correlation_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        route = _route_template(request)
        HTTP_REQUESTS.labels(request.method, route, str(response.status_code)).inc()
        HTTP_REQUEST_SECONDS.labels(request.method, route).observe(elapsed)
        response.headers[self.HEADER] = correlation_id
        _log.info(
            "request_completed",
            route=route,
            status_code=response.status_code,
            duration_ms=int(elapsed * 1000),
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security-relevant HTTP response headers to every response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers.setdefault("Cache-Control", "no-store")
        return response


# ── Exception handlers ────────────────────────────────────────────────── #


def _error_headers(request: Request, exc: AppError | None = None) -> dict[str, str]:
    headers = {"X-Correlation-ID": getattr(request.state, "correlation_id", "")}
    if exc is not None and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Convert a domain AppError to a structured JSON response."""
    _log.warning(
        "application_error",
        error_code=exc.code.value,
        message=exc.message,
        http_status=exc.http_status,
        retryable=exc.retryable,
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
        headers=_error_headers(request, exc),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions.

    Never leaks internal detail to the client.
    """
    _log.exception("unhandled_exception", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected internal error occurred.",
                "detail": {},
            }
        },
        headers=_error_headers(request),
    )
