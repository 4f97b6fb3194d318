"""Exception taxonomy and global error handling for consistent envelopes."""

import logging
import time
import traceback
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    Services raise subclasses of this class for business-rule failures.
    Route handlers translate them into a ``success=false`` envelope; anything
    that escapes to the middleware is rendered with ``status_code``.
    Subclasses only pick the status, the error type and a default message.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "An error occurred"

    def __init__(self, message: str | None = None, details: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def response_headers(self) -> dict[str, str] | None:
        """Extra headers to send with the rendered error."""
        return None


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class ValidationError(APIError):
    """Malformed or expired token, bad input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "validation_error"
    default_message = "Validation error"


class ConflictError(APIError):
    """Limit exceeded, duplicate email, invalid state transition."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"
    default_message = "Conflict"


class InfrastructureError(APIError):
    """Persistence or transaction failure."""

    error_type = "infrastructure_error"
    default_message = "A persistence error occurred"


class AuthenticationError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_error"
    default_message = "Authentication required"


class AuthorizationError(APIError):
    """Cross-tenant access or role violation."""

    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization_error"
    default_message = "Access denied"


class RateLimitError(APIError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_type = "rate_limit_exceeded"
    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: str | None = None,
        retry_after: int = 60,
        limit: int | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after
        self.limit = limit

    def response_headers(self) -> dict[str, str]:
        headers = {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + self.retry_after),
        }
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        return headers


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Args:
        error_type: Error category for client handling.
        message: Human-readable error description.
        status_code: HTTP status code.
        details: Optional error details.
        request_id: Optional request ID for tracing.
        headers: Optional extra response headers.

    Returns:
        JSONResponse: Formatted error response.
    """
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    content = error_response.model_dump(mode="json", exclude_none=True)
    # The envelope always carries a data key, even when empty
    content["data"] = None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Catch whatever escapes the route handlers and render it as an envelope.

    Business failures normally never reach this point because routes wrap
    service calls in ``enveloped``. What does arrive here is the rate limiter
    (raised from a dependency), stray ``HTTPException``s and genuine bugs.
    Internal details of infrastructure and unexpected errors are logged,
    never returned.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        if isinstance(e, InfrastructureError):
            logger.error("Infrastructure error: %s", e.message, extra={"request_id": request_id})
            message, details = "An unexpected error occurred", None
        else:
            logger.warning(
                "API error: %s - %s",
                e.error_type,
                e.message,
                extra={"request_id": request_id, "status_code": e.status_code},
            )
            message, details = e.message, e.details
        return create_error_response(
            error_type=e.error_type,
            message=message,
            status_code=e.status_code,
            details=details,
            request_id=request_id,
            headers=e.response_headers(),
        )

    except HTTPException as e:
        logger.warning("HTTP exception: %s - %s", e.status_code, e.detail, extra={"request_id": request_id})
        return create_error_response(
            error_type="http_error",
            message=str(e.detail),
            status_code=e.status_code,
            request_id=request_id,
            headers=e.headers,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render 401/403/404 raised by dependencies in the envelope shape."""
    return create_error_response(
        error_type="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
        request_id=request.headers.get("X-Request-ID"),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body/path/query validation failures as 400."""
    details = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", "Invalid value"),
            "type": err.get("type", "value_error"),
        }
        for err in exc.errors()
    ]
    return create_error_response(
        error_type="validation_error",
        message="Request validation failed",
        status_code=status.HTTP_400_BAD_REQUEST,
        details=details,
        request_id=request.headers.get("X-Request-ID"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope-rendering exception handlers to an app."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
