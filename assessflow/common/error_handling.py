"""
Assessflow Errors

Every failure the assessment pipeline reports to a caller is an
``AssessflowError`` subclass. Each subclass fixes an ``ErrorCode`` and a
severity; ``api.py`` maps the classes to HTTP status codes and
``error_response`` renders the JSON body.
"""

import logging
import traceback
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Machine-readable error codes returned in API error bodies"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"
    CONFLICT_ERROR = "conflict_error"
    ATTEMPT_EXPIRED = "attempt_expired"
    PROMOTION_FAILED = "promotion_failed"
    DATABASE_ERROR = "database_error"


class ErrorInfo(BaseModel):
    """Serializable snapshot of an error, used for API bodies and logs"""
    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    class Config:
        use_enum_values = True

    @validator('stack_trace', pre=True)
    def split_stack_trace(cls, v):
        if isinstance(v, str):
            return v.splitlines()
        return v


class AssessflowError(Exception):
    """
    Base class of the error taxonomy.

    Args:
        message: Human-readable description, returned to API clients
        details: Structured data returned alongside the message
        cause: Underlying exception, reported in ``details["cause"]``
        context: Data that is logged but not returned to clients
    """

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        self.cause = cause
        self.context = dict(context or {})
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context,
        )

    def __str__(self) -> str:
        text = f"{self.code.value}: {self.message}"
        if self.details:
            text += f" {self.details}"
        if self.cause is not None:
            text += f" (cause: {type(self.cause).__name__}: {self.cause})"
        return text


class ValidationError(AssessflowError):
    """Malformed input; raised before any state is touched"""
    code = ErrorCode.VALIDATION_ERROR
    severity = ErrorSeverity.WARNING


class ConflictError(AssessflowError):
    """The operation collides with current state (wrong status, duplicate attempt)"""
    code = ErrorCode.CONFLICT_ERROR
    severity = ErrorSeverity.WARNING


class DatabaseError(AssessflowError):
    """The persistence layer failed; the transaction was rolled back"""
    code = ErrorCode.DATABASE_ERROR


class NotFoundError(AssessflowError):
    """A staging record, live assessment, attempt or result does not exist"""
    code = ErrorCode.NOT_FOUND_ERROR
    severity = ErrorSeverity.WARNING

    def __init__(self, resource_type: str, resource_id: Any,
                 message: Optional[str] = None, **kwargs):
        self.resource_type = resource_type
        self.resource_id = resource_id
        details = dict(kwargs.pop("details", None) or {})
        details.update(resource_type=resource_type, resource_id=resource_id)
        super().__init__(message or f"{resource_type} with ID {resource_id} not found",
                         details=details, **kwargs)


class ExpiredError(AssessflowError):
    """
    An answer or submit reached an attempt that is out of time or already
    submitted. ``result_id`` points at the result that closed the attempt.
    """
    code = ErrorCode.ATTEMPT_EXPIRED
    severity = ErrorSeverity.INFO

    def __init__(self, attempt_id: str, message: str = "Time is up",
                 result_id: Optional[int] = None, **kwargs):
        self.attempt_id = attempt_id
        self.result_id = result_id
        details = dict(kwargs.pop("details", None) or {})
        details["attempt_id"] = attempt_id
        if result_id is not None:
            details["result_id"] = result_id
        super().__init__(message, details=details, **kwargs)


class PromotionError(AssessflowError):
    """An approval could not be committed; no live copy exists and the record is still pending"""
    code = ErrorCode.PROMOTION_FAILED

    def __init__(self, staging_id: int, **kwargs):
        self.staging_id = staging_id
        details = dict(kwargs.pop("details", None) or {})
        details["staging_id"] = staging_id
        super().__init__(
            f"Promotion of staging assessment {staging_id} failed and was rolled back",
            details=details, **kwargs
        )


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: Optional[Dict[str, Any]] = None
) -> AssessflowError:
    """Wrap a foreign exception as an ``unknown_error``; domain errors pass through."""
    if isinstance(exception, AssessflowError):
        exception.context.update(context or {})
        return exception
    return AssessflowError(str(exception) or default_message, cause=exception, context=context)


def error_response(error: Exception, include_details: bool = True) -> Dict[str, Any]:
    """
    Body of an API error response: ``status``, ``code``, ``message`` and,
    when there are any, ``details``.
    """
    info = convert_exception(error).to_error_info()
    body = {"status": "error", "code": info.code, "message": info.message}
    if include_details and info.details:
        body["details"] = info.details
    return body


def log_error(
    error: Exception,
    level: int = logging.ERROR,
    include_stack_trace: bool = True,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an error with its code, context and cause on one line."""
    error = convert_exception(error, context=context)

    parts = [f"[{error.code.value}] {error.message}"]
    if error.context:
        parts.append("context: " + ", ".join(f"{k}={v}" for k, v in error.context.items()))
    if error.cause is not None:
        parts.append(f"cause: {type(error.cause).__name__}: {error.cause}")

    logger.log(level, " | ".join(parts), exc_info=include_stack_trace)
