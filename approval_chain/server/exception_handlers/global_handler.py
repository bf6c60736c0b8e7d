"""
Exception Handlers for the FastAPI Application.

Engine errors are mapped onto one status code per class. Anything else is
caught by the global handler, which logs the full context with an error ID
that clients can quote when reporting issues.
"""

import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from approval_chain.core.exceptions import (
    ApprovalChainError,
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from approval_chain.core.logging_config import get_logger

logger = get_logger(__name__)

# Most specific first; PermissionDenied is a BusinessRuleViolation.
_STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (PermissionDenied, 403),
    (BusinessRuleViolation, 400),
    (ConflictError, 409),
)


def status_code_for(exc: ApprovalChainError) -> int:
    for exc_type, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return 500


async def approval_error_handler(request: Request, exc: ApprovalChainError) -> JSONResponse:
    """
    Map an engine error onto its HTTP status.

    Args:
        request: The HTTP request that caused the exception
        exc: The engine error that was raised

    Returns:
        JSONResponse with the error message, type and details
    """
    code = status_code_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {code} {type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "details": exc.details,
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler to log detailed error information.

    This handler is called for any unhandled exception in the application.
    It logs the full error context and returns a JSON response with an error ID
    that clients can use to reference the error when reporting issues.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with error details and error ID
    """
    error_id = id(exc)

    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(ApprovalChainError, approval_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
