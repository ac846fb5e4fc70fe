"""
Error handling decorators and utilities for API endpoints.

Centralizes the mapping from application exceptions to the JSON error
bodies the client expects: ``{"error": ..., "hint": ..., "details": ...}``.
"""

import inspect
import logging
from functools import wraps
from typing import Callable, Optional

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from constants import HTTPStatus
from exceptions import (
    ApplicationError,
    DownloadError,
    ExternalToolError,
    ToolUnavailableError,
    TranscodeError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, hint: Optional[str] = None,
                   details=None) -> JSONResponse:
    """Build an error body, omitting empty hint/details."""
    body = {"error": message}
    if hint:
        body["hint"] = hint
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def request_validation_response(exc: RequestValidationError) -> JSONResponse:
    """
    Map a malformed request body to 400 ``{"error": "<field>: <msg>"}``.

    Only the first error is reported, the same way service-level
    ValidationErrors report one field at a time.
    """
    errors = exc.errors()
    if not errors:
        return error_response(HTTPStatus.BAD_REQUEST, "Invalid request body")

    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = ".".join(loc) or "body"
    message = f"{field}: {first.get('msg', 'Invalid value')}"
    logger.warning(f"Request validation error: {message}")
    return error_response(HTTPStatus.BAD_REQUEST, message)


def exception_to_response(operation_name: str, e: Exception,
                          failure_message: Optional[str] = None) -> JSONResponse:
    """
    Convert an exception raised by an endpoint into a JSON error response.

    Args:
        operation_name: Human-readable name of the operation, used in logs
        e: The exception
        failure_message: Client-facing message for engine failures
            (e.g. "FFmpeg trim error"); defaults to "<operation> failed"
    """
    failure_message = failure_message or f"{operation_name} failed"

    if isinstance(e, ValidationError):
        logger.warning(f"{operation_name} - Validation error: {e.message}")
        return error_response(HTTPStatus.BAD_REQUEST, e.message)

    if isinstance(e, ToolUnavailableError):
        logger.error(f"{operation_name} - Tool unavailable: {e.message}")
        return error_response(HTTPStatus.BAD_REQUEST, e.message, hint=e.hint)

    if isinstance(e, DownloadError):
        logger.error(f"{operation_name} - Download error: {e.message} ({e.reason})")
        return error_response(HTTPStatus.BAD_REQUEST, e.message, hint=e.hint, details=e.reason)

    if isinstance(e, (TranscodeError, ExternalToolError)):
        stderr_tail = (e.stderr or '')[-2000:]
        logger.error(f"{operation_name} - Engine error: {e.message}\n{stderr_tail}")
        return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, failure_message)

    if isinstance(e, ApplicationError):
        logger.error(f"{operation_name} - Application error: {e.message}", exc_info=True)
        return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, failure_message)

    logger.error(f"{operation_name} - Unexpected error: {e}", exc_info=True)
    return error_response(
        HTTPStatus.INTERNAL_SERVER_ERROR,
        f"{operation_name} failed. Please check server logs.",
    )


def handle_api_errors(operation_name: str, failure_message: Optional[str] = None):
    """
    Decorator to handle common API errors consistently across endpoints.

    Args:
        operation_name: Human-readable name of the operation (e.g., "Trim")
        failure_message: Client-facing message for engine failures

    Returns:
        Decorated function that returns a JSON error response instead of raising

    Example:
        @router.post("/trim")
        @handle_api_errors("Trim", failure_message="FFmpeg trim error")
        async def trim(...):
            return await orchestrator.trim(...)
    """
    def decorator(func: Callable):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                # Re-raise HTTPException as-is to preserve status code and detail
                raise
            except Exception as e:
                return exception_to_response(operation_name, e, failure_message)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                return exception_to_response(operation_name, e, failure_message)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
