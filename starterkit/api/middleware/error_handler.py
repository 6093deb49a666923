"""Exception handlers for the FastAPI application.

This module is the single place where errors become HTTP responses:

- :class:`~starterkit.core.exceptions.ValidationError` → 400
- :class:`~starterkit.core.exceptions.NotFoundError` → 404
- :class:`~starterkit.core.exceptions.InternalError` → 500, generic message
- ``RequestValidationError`` → 400
- Starlette ``HTTPException`` → its own status (unknown route, wrong method)

Every body is ``{"error": "<message>"}``. No catch-all ``Exception`` handler is
registered: unexpected exceptions are contained by the recovery middleware.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from starterkit.api.constants import INTERNAL_ERROR_MESSAGE
from starterkit.api.schemas.errors import ErrorResponse
from starterkit.api.utils.responses import ORJSONResponse
from starterkit.core.context import context_from_scope
from starterkit.core.error_context import sanitize_error_context
from starterkit.core.exceptions import NotFoundError, StarterkitError, ValidationError

if TYPE_CHECKING:
    from loguru import Logger


def _request_logger(request: Request) -> Logger:
    context = context_from_scope(request.scope)
    return context.logger if context else logger


def _error_response(
    status_code: int, message: str, headers: Mapping[str, str] | None = None
) -> Response:
    return ORJSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(mode="json"),
        headers=headers,
    )


async def starterkit_error_handler(request: Request, exc: Exception) -> Response:
    """Handle StarterkitError exceptions.

    Args:
        request: The FastAPI request that caused the exception
        exc: The StarterkitError exception to handle

    Returns:
        Response: ORJSONResponse with the error message

    Raises:
        TypeError: If exc is not a StarterkitError instance
    """
    # Type narrowing - this handler only receives StarterkitError
    if not isinstance(exc, StarterkitError):
        raise TypeError(f"Expected StarterkitError, got {type(exc).__name__}")

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": request.url.path,
            "error_code": exc.error_code,
            **exc.context,
        },
    )

    request_logger = _request_logger(request)
    if exc.is_expected:
        request_logger.info(
            "Handling {exception_type}: {message}",
            exception_type=type(exc).__name__,
            message=exc.message,
            **error_context,
        )
    else:
        request_logger.error(
            "Handling {exception_type}: {message}",
            exception_type=type(exc).__name__,
            message=exc.message,
            **error_context,
        )

    # Internal details stay in the logs
    message = (
        INTERNAL_ERROR_MESSAGE
        if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        else exc.message
    )
    return _error_response(status_code, message)


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError exceptions.

    The first failing field is named in the message, e.g.
    ``invalid limit parameter``.

    Args:
        request: The FastAPI request that caused the exception
        exc: The RequestValidationError exception to handle

    Returns:
        Response: ORJSONResponse with a 400 status

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    errors = exc.errors()
    field_name = "request"
    if errors:
        location = [str(loc) for loc in errors[0].get("loc", ()) if loc != "__root__"]
        if location:
            field_name = location[-1]

    _request_logger(request).info(
        "Request validation failed",
        path=request.url.path,
        method=request.method,
        field=field_name,
        status_code=status.HTTP_400_BAD_REQUEST,
    )

    return _error_response(
        status.HTTP_400_BAD_REQUEST, f"invalid {field_name} parameter"
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException.

    Args:
        request: The FastAPI request that caused the exception
        exc: The HTTPException to handle

    Returns:
        Response: ORJSONResponse with the exception's status and headers

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    _request_logger(request).info(
        "HTTP exception",
        status=exc.status_code,
        method=request.method,
        path=request.url.path,
        detail=exc.detail,
    )

    return _error_response(exc.status_code, str(exc.detail), headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(StarterkitError, starterkit_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    logger.debug("Exception handlers registered")
