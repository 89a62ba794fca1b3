"""
Shared API utilities for the Assessflow backend.

This module provides:
- The standard response envelope
- Exception handlers mapping the error taxonomy to HTTP status codes
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assessflow.common.error_handling import (
    AssessflowError,
    ConflictError,
    DatabaseError,
    ExpiredError,
    NotFoundError,
    PromotionError,
    ValidationError,
    error_response,
    log_error,
)

# Configure logging
logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS_CODES = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ExpiredError, status.HTTP_410_GONE),
    (PromotionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (DatabaseError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(error: AssessflowError) -> int:
    """HTTP status code for a domain error."""
    for error_class, code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def assessflow_exception_handler(request: Request, exc: AssessflowError) -> JSONResponse:
    """
    Handle domain errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The domain exception

    Returns:
        A JSON response with the error code, message and details
    """
    code = status_code_for(exc)
    if code >= 500:
        log_error(exc, context={"path": request.url.path})
    else:
        logger.info(f"{request.method} {request.url.path} -> {code}: {exc.message}")
    return JSONResponse(status_code=code, content=error_response(exc))


# Common validation error handler
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": error.get("loc", []),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "message": "Validation error",
            "details": error_details
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the shared exception handlers on an application."""
    app.add_exception_handler(AssessflowError, assessflow_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


# Standard API response model
class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        """
        Create a success response.

        Args:
            data: Response data
            message: Success message

        Returns:
            Response dictionary
        """
        return {
            "status": "success",
            "message": message,
            "data": data
        }

