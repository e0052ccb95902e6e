"""Error handling middleware.

Every failure leaves the service as ``{error, message, error_details}``.
"""

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coach_assignment.core.exceptions import AppException
from coach_assignment.schemas.common import ErrorResponse

logger = structlog.get_logger()

_HTTP_ERROR_CODES = {
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMIT_ERROR",
    status.HTTP_504_GATEWAY_TIMEOUT: "GATEWAY_ERROR",
}


def error_response(
    status_code: int,
    error: str,
    message: str,
    details: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the structured error body."""
    body = ErrorResponse(error=error, message=message, error_details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle custom application exceptions.

    Args:
        request: Request object
        exc: Application exception

    Returns:
        JSON error response
    """
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        error=exc.error_code,
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
    )
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle HTTP exceptions such as unknown routes or methods.

    Args:
        request: Request object
        exc: HTTP exception

    Returns:
        JSON error response
    """
    if exc.status_code < 500:
        code = _HTTP_ERROR_CODES.get(exc.status_code, "VALIDATION_ERROR")
    else:
        code = _HTTP_ERROR_CODES.get(exc.status_code, "INTERNAL_ERROR")

    return error_response(
        exc.status_code,
        code,
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle request validation errors.

    Args:
        request: Request object
        exc: Validation exception

    Returns:
        JSON error response with validation details
    """
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        details,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Args:
        request: Request object
        exc: Exception

    Returns:
        JSON error response
    """
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )
