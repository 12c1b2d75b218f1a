import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("errors")


class ApiError(HTTPException):
    """Base class for errors that are reported to the client as-is."""

    default_status = 500
    default_message = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(
            status_code=status_code or self.default_status,
            detail=self.message,
            headers=headers,
        )


class ValidationError(ApiError):
    default_status = 400
    default_message = "Invalid request"


class AuthError(ApiError):
    default_status = 401
    default_message = "Unauthorized request"

    def __init__(self, message: Optional[str] = None, errors=None):
        super().__init__(message, errors, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ApiError):
    default_status = 403
    default_message = "You are not authorized to perform this action"


class NotFoundError(ApiError):
    default_status = 404
    default_message = "Resource not found"


class ConflictError(ApiError):
    default_status = 409
    default_message = "Resource already exists"


class UploadError(ApiError):
    # 400 for a missing/unusable file; callers pass 500 when the media
    # service itself fails
    default_status = 400
    default_message = "File upload failed"


class InternalError(ApiError):
    default_status = 500
    default_message = "Internal server error"


def error_body(status_code: int, message: str, errors: Optional[List[Any]] = None) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "data": None,
        "message": message,
        "success": False,
        "errors": errors or [],
    }


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    errors = getattr(exc, "errors", None)
    if errors is None and not isinstance(exc.detail, str):
        errors = [exc.detail]
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message, errors),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body(400, "Invalid request", errors))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Rate limit error handler with retry information."""
    retry_after = getattr(exc, "retry_after", None) or 60
    return JSONResponse(
        status_code=429,
        content=error_body(
            429,
            f"Too many requests. Please try again in {retry_after} seconds.",
            [{"limit": str(exc.detail), "type": "rate_limit_exceeded"}],
        ),
        headers={"Retry-After": str(retry_after)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=error_body(500, "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
