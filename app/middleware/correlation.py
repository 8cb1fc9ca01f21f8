"""
Request ID middleware.

Takes ``X-Request-ID`` from the caller (or mints one), exposes it through a
context variable for log records and problem documents, and echoes it on the
response.
"""

import uuid
import logging
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_id() -> str:
    """Short unique id, readable in log lines."""
    return uuid.uuid4().hex[:12]


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the current request context."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_id()
        token = request_id_ctx.set(request_id)
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_request_id() -> str:
    """Request id of the request being served, or "unknown" outside one."""
    return request_id_ctx.get() or "unknown"


class CorrelationLogFilter(logging.Filter):
    """Adds ``request_id`` to every log record so the format string can use it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True
