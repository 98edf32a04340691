"""Request tracing middleware and structured exception handlers.

Every request gets an id (from X-Request-ID or generated) bound to
structlog contextvars, so all log lines of one request correlate.
CaselawError subclasses become structured ErrorResponse JSON; stack
traces never reach the client.
"""

import time
import uuid
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from caselaw.core.exceptions import (
    CaselawError,
    InvalidRequestError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    SourceError,
    SourceUnavailableError,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
)


def _endpoint_label(request: Request) -> str:
    # Route templates keep label cardinality bounded ("/cases/{source}/{case_id}").
    route = request.scope.get("route")
    path: str | None = getattr(route, "path", None)
    return path or request.url.path


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, bind structured log context, and record metrics."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_seconds=round(time.perf_counter() - start, 4),
            )
            response = JSONResponse(
                status_code=500,
                content=_error_body("internal_server_error", "An unexpected error occurred."),
            )

        duration = time.perf_counter() - start
        endpoint = _endpoint_label(request)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(duration)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(duration, 4),
        )
        return response


# ---------------------------------------------------------------------------
# Exception → JSON response handlers
# ---------------------------------------------------------------------------


def _request_id() -> str | None:
    """Pull the current request ID from structlog context, if bound."""
    ctx: dict[str, str] = structlog.contextvars.get_contextvars()
    return ctx.get("request_id")


def _error_body(error: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "error": error,
        "message": message,
        "details": details or {},
        "request_id": _request_id(),
    }


def _retry_headers(retry_after: float | None) -> dict[str, str]:
    if retry_after is None:
        return {}
    return {"Retry-After": str(int(retry_after))}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach structured error handlers to the app."""

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", exc.message, exc.details),
        )

    @app.exception_handler(InvalidRequestError)
    async def _invalid(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=_error_body("invalid_request", exc.message, exc.details),
        )

    @app.exception_handler(QuotaExceededError)
    async def _quota(request: Request, exc: QuotaExceededError) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content=_error_body("quota_exceeded", exc.message, {"source": exc.source}),
            headers=_retry_headers(exc.retry_after),
        )

    @app.exception_handler(RateLimitError)
    async def _rate_limit(request: Request, exc: RateLimitError) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content=_error_body("rate_limit_exceeded", exc.message, {"source": exc.source}),
            headers=_retry_headers(exc.retry_after),
        )

    @app.exception_handler(SourceUnavailableError)
    async def _unavailable(request: Request, exc: SourceUnavailableError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content=_error_body("source_unavailable", exc.message, {"source": exc.source}),
        )

    @app.exception_handler(SourceError)
    async def _source(request: Request, exc: SourceError) -> JSONResponse:
        logger.warning(
            "source_error",
            error_type=type(exc).__name__,
            source=exc.source,
            message=exc.message,
        )
        return JSONResponse(
            status_code=502,
            content=_error_body("source_error", exc.message, {"source": exc.source, **exc.details}),
        )

    @app.exception_handler(CaselawError)
    async def _caselaw(request: Request, exc: CaselawError) -> JSONResponse:
        logger.error(
            "caselaw_error",
            error_type=type(exc).__name__,
            message=exc.message,
            details=exc.details,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(type(exc).__name__, exc.message, exc.details),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", error_type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_server_error", "An unexpected error occurred."),
        )
