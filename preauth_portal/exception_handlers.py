"""
Exception handlers for the Preauth Portal API.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import LoginError, PortalError

logger = logging.getLogger(__name__)


def create_error_response(
    error: str,
    message: str,
    status_code: int,
    details: dict = None,
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "error": error,
        "message": message,
    }
    if details:
        content["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def login_exception_handler(request: Request, exc: LoginError) -> JSONResponse:
    """
    Render a failed login. Only the public reason and a generic message
    leave the process; the full reason is already in the audit log.
    """
    logger.info(
        f"Login rejected: {exc.reason.value}",
        extra={"path": request.url.path, "public_reason": exc.public_reason.value},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict())


async def portal_exception_handler(request: Request, exc: PortalError) -> JSONResponse:
    """
    Handle all other PortalError exceptions (admin/config errors).
    """
    logger.warning(
        f"Business error: {exc.code}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "path": request.url.path,
        },
    )

    return create_error_response(
        error=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details if exc.details else None,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Input values are left out of the response: a login body carries a
    password.
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append(
            {
                "field": field,
                "message": error["msg"],
                "type": error["type"],
            }
        )

    logger.info(
        f"Validation error on {request.url.path}",
        extra={"errors": errors},
    )

    return create_error_response(
        error="VALIDATION_ERROR",
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"validation_errors": errors},
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle standard HTTP exceptions.
    """
    error_code_map = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        501: "NOT_IMPLEMENTED",
        503: "SERVICE_UNAVAILABLE",
    }

    return create_error_response(
        error=error_code_map.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.
    """
    logger.error(
        f"Unhandled exception: {exc}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
        exc_info=True,
    )

    return create_error_response(
        error="INTERNAL_ERROR",
        message="An unexpected error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(LoginError, login_exception_handler)
    app.add_exception_handler(PortalError, portal_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
