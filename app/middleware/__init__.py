"""
Middleware modules for the newsletter API.

- Request ID binding for log correlation and problem documents
"""

from .correlation import CorrelationIdMiddleware, CorrelationLogFilter, request_id_ctx

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "request_id_ctx",
]
