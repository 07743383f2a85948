"""Per-request correlation ids and the ``request.*`` access log."""

from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from orgauthz.common.logging import bind_request_context, clear_request_context, log_context
from orgauthz.settings import DEFAULT_ORGANIZATION_HEADER

__all__ = ["REQUEST_ID_HEADER", "RequestContextMiddleware", "register_middleware"]

REQUEST_ID_HEADER = "X-Request-ID"

_access_log = logging.getLogger("orgauthz.request")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id for the request and log its outcome with the caller and tenant."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.correlation_id = correlation_id
        bind_request_context(correlation_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            _log_outcome(request, started, status_code=None)
            clear_request_context()
            raise

        _log_outcome(request, started, status_code=response.status_code)
        clear_request_context()
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response


def _organization_header(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    return getattr(settings, "organization_header", None) or DEFAULT_ORGANIZATION_HEADER


def _log_outcome(request: Request, started: float, *, status_code: int | None) -> None:
    extra = log_context(
        user_id=getattr(request.state, "caller_id", None),
        organization_id=request.headers.get(_organization_header(request)),
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
    )
    if status_code is None:
        _access_log.error("request.error", extra=extra)
    else:
        _access_log.info("request.complete", extra=extra)


def register_middleware(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
