"""
RFC 7807 Problem Details exception handling.

Every JSON error the API returns is shaped as a problem document
(``application/problem+json``). Public HTML pages and the tracking pixel
never go through these handlers.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.scuoladilongboard.it/problems"


def _get_trace_id() -> str:
    """Reuse the request id from the correlation middleware when there is one."""
    from app.middleware.correlation import get_request_id

    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Authentication & Authorization
    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"

    # Validation
    VALIDATION_ERROR = "VAL_001"
    INVALID_PAYLOAD = "VAL_002"

    # Resource
    NOT_FOUND = "RES_001"
    CONFLICT = "RES_003"

    # Business Logic
    BUSINESS_RULE_VIOLATION = "BIZ_001"

    # External Services
    EXTERNAL_SERVICE_ERROR = "EXT_001"
    EMAIL_PROVIDER_ERROR = "EXT_002"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}

STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    500: ErrorCode.INTERNAL_ERROR,
    502: ErrorCode.EXTERNAL_SERVICE_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def _problem_type(code: ErrorCode) -> str:
    return f"{PROBLEM_TYPE_BASE}/{code.value.lower().replace('_', '-')}"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: Request path that produced the problem
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Identifier to grep for in the logs
        errors: Field-level validation errors
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None


class APIException(HTTPException):
    """
    Base exception for the API with RFC 7807 support.

    Usage:
        raise APIException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Campaign not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or STATUS_TITLES.get(status_code, "Error")
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance or instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


# Convenience exception classes

class NotFoundError(APIException):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
        )


class InvalidPayloadError(APIException):
    """Malformed request body (400) with per-field errors."""

    def __init__(self, detail: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            status_code=400,
            code=ErrorCode.INVALID_PAYLOAD,
            detail=detail,
            errors=errors,
        )


class UnauthorizedError(APIException):
    """Authentication required (401)."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(APIException):
    """Permission denied (403)."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=403,
            code=ErrorCode.FORBIDDEN,
            detail=detail,
        )


class ConflictError(APIException):
    """Resource conflict (409)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=409,
            code=ErrorCode.CONFLICT,
            detail=detail,
        )


class BusinessRuleError(APIException):
    """Business rule violation (400)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=400,
            code=ErrorCode.BUSINESS_RULE_VIOLATION,
            detail=detail,
        )


class ExternalServiceError(APIException):
    """Upstream provider failed (502)."""

    def __init__(self, service: str, detail: str):
        super().__init__(
            status_code=502,
            code=ErrorCode.EMAIL_PROVIDER_ERROR,
            detail=f"{service} service error: {detail}",
        )


class ServiceUnavailableError(APIException):
    """Feature disabled by missing configuration (503)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=503,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            detail=detail,
        )


# Exception handlers for FastAPI

def _with_cors(response: JSONResponse, request: Request, allowed_origins: Optional[List[str]]) -> JSONResponse:
    """Error responses skip CORSMiddleware when raised early, so mirror its headers."""
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
    return response


def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=STATUS_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    response = JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )
    return _with_cors(response, request, allowed_origins)


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(APIException, handlers["api"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
        logger.warning(
            f"APIException: {exc.code.value} - {exc.detail}",
            extra={"trace_id": exc.trace_id, "status_code": exc.status_code, "path": request.url.path},
        )
        response = JSONResponse(
            status_code=exc.status_code,
            content=exc.to_problem_detail(instance=str(request.url.path)).model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=exc.headers,
        )
        return _with_cors(response, request, allowed_origins)

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Plain HTTPException (auth dependencies, routing 404/405)."""
        code = STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        return create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
            headers=getattr(exc, "headers", None),
        )

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Pydantic validation errors with field-level details."""
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        trace_id = str(uuid.uuid4())[:12]
        logger.error(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        # Don't expose internal details in production
        from app.config import settings
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "api": handle_api_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
