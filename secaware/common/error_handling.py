"""
Error Handling for the engagement engine

This module provides:
1. The exception hierarchy raised by the attempt, scoring and training components
2. Structured error information for logging and API responses
3. Helpers to convert foreign exceptions and to log errors consistently
"""

import json
import logging
import traceback
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Error codes surfaced to callers"""
    # General errors
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    AUTHORIZATION_ERROR = "authorization_error"
    NOT_FOUND_ERROR = "not_found_error"
    MALFORMED_INPUT = "malformed_input"

    # Attempt lifecycle errors
    INVALID_ATTEMPT = "invalid_attempt"

    # Training errors
    PREREQUISITES_NOT_MET = "prerequisites_not_met"
    PREREQUISITE_CYCLE = "prerequisite_cycle"

    # Persistence errors
    DATABASE_ERROR = "database_error"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def split_stack_trace(cls, v):
        """Accept a stack trace given as one string"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class SecAwareError(Exception):
    """Base exception class for all engagement engine errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        stack_trace = None
        if include_stack_trace:
            stack_trace = traceback.format_exception(type(self), self, self.__traceback__)

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=stack_trace,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a JSON-compatible dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class ValidationError(SecAwareError):
    """Raised when a well-formed request carries values outside the allowed range"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class MalformedInputError(SecAwareError):
    """Raised when a payload does not have the expected shape"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.MALFORMED_INPUT,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class AuthorizationError(SecAwareError):
    """Raised when the caller may not perform the operation"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHORIZATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class NotFoundError(SecAwareError):
    """Raised when an assessment, module, progress row or result set does not exist"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["resource_type"] = resource_type
        if resource_id is not None:
            details["resource_id"] = resource_id
        if message is None:
            message = f"{resource_type} not found" if resource_id is None \
                else f"{resource_type} {resource_id} not found"

        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class InvalidAttemptError(SecAwareError):
    """Raised when a submission references a missing, foreign or already closed attempt"""

    def __init__(
        self,
        attempt_id: Any,
        message: str = "Invalid or completed attempt",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["attempt_id"] = attempt_id

        super().__init__(
            message=message,
            code=ErrorCode.INVALID_ATTEMPT,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class PrerequisitesNotMetError(SecAwareError):
    """Raised when a training module is started before its prerequisites are completed"""

    def __init__(
        self,
        module_id: int,
        blocked_by: Sequence[int],
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.module_id = module_id
        self.blocked_by = list(blocked_by)
        details = details or {}
        details["module_id"] = module_id
        details["incomplete_prerequisites"] = self.blocked_by

        super().__init__(
            message="Prerequisites not completed",
            code=ErrorCode.PREREQUISITES_NOT_MET,
            severity=ErrorSeverity.INFO,
            details=details,
            context=context
        )


class PrerequisiteCycleError(SecAwareError):
    """Raised when a prerequisite edit would make the module graph cyclic"""

    def __init__(
        self,
        cycle: Sequence[int],
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.cycle = list(cycle)
        details = details or {}
        details["cycle"] = self.cycle

        super().__init__(
            message="Prerequisites would create a cycle: " + " -> ".join(str(m) for m in self.cycle),
            code=ErrorCode.PREREQUISITE_CYCLE,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )


class DatabaseError(SecAwareError):
    """Raised when the store fails for reasons other than a domain rule"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.DATABASE_ERROR,
            severity=ErrorSeverity.ERROR,
            details=details,
            cause=cause,
            context=context
        )


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: Optional[Dict[str, Any]] = None
) -> SecAwareError:
    """
    Convert a foreign exception to a SecAwareError.

    Args:
        exception: The exception to convert
        default_message: Message used when the exception has none
        context: Optional additional context

    Returns:
        The original error if it already is a SecAwareError, else a wrapped one
    """
    if isinstance(exception, SecAwareError):
        if context:
            exception.context.update(context)
        return exception

    return SecAwareError(
        message=str(exception) or default_message,
        cause=exception,
        context=context
    )


def error_response(
    error: Union[SecAwareError, Exception],
    include_details: bool = True
) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    Args:
        error: The error to describe
        include_details: Whether to include error details

    Returns:
        Response dictionary with ``status``, ``code``, ``message`` and optional ``details``
    """
    error = convert_exception(error)
    response = {
        "status": "error",
        "code": error.code.value,
        "message": error.message
    }

    if include_details and error.details:
        response["details"] = error.details

    return response


def log_error(
    error: Union[SecAwareError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an error with standardized format.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Whether to append the traceback
        context: Additional context to include
    """
    error = convert_exception(error, context=context)

    message = f"ERROR [{error.code.value}]: {error.message}"
    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"
    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"
    if include_stack_trace:
        message += "\n" + "".join(traceback.format_exception(type(error), error, error.__traceback__))

    logger.log(level, message)
