"""
Error Handling System for EduSync

This module provides the error framework for the assessment service:
1. An exception hierarchy split by error category (validation, state
   conflict, authorization, not found)
2. Structured error information for logging and API responses
3. Helpers to convert arbitrary exceptions and to log them uniformly

Every error is local to a single attempt; there is no global error state.
"""

import json
import logging
import traceback
from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Broad error classes that the API layer maps to HTTP statuses"""
    VALIDATION = "validation"
    STATE_CONFLICT = "state_conflict"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class ErrorCode(Enum):
    """Standard error codes for EduSync"""
    # General errors
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    AUTHORIZATION_ERROR = "authorization_error"
    NOT_FOUND_ERROR = "not_found_error"

    # Validation errors
    MALFORMED_QUESTION_SET = "malformed_question_set"
    MALFORMED_ANSWERS = "malformed_answers"
    SUBMISSION_EXPIRED = "submission_expired"

    # Attempt state conflicts
    DUPLICATE_START = "duplicate_start"
    ALREADY_SUBMITTED = "already_submitted"
    NOT_STARTED = "not_started"
    ASSESSMENT_HAS_RESULTS = "assessment_has_results"

    # Authorization errors
    NOT_ENROLLED = "not_enrolled"
    NOT_INSTRUCTOR = "not_instructor"

    # Not-found errors
    ASSESSMENT_NOT_FOUND = "assessment_not_found"

    # Infrastructure errors
    DATABASE_ERROR = "database_error"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    category: ErrorCategory
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def validate_stack_trace(cls, v):
        """Split a string stack trace into lines"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class EduSyncError(Exception):
    """Base exception class for all EduSync errors"""

    category: ErrorCategory = ErrorCategory.INTERNAL

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

        return ErrorInfo(
            code=self.code,
            category=self.category,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        """Convert the exception to a JSON string"""
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


# Category base classes

class ValidationError(EduSyncError):
    """Caller-correctable input error"""
    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class StateConflictError(EduSyncError):
    """The caller violated the attempt protocol (double start, double submit, ...)"""
    category = ErrorCategory.STATE_CONFLICT

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        assessment_id: str,
        user_id: str,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["assessment_id"] = str(assessment_id)
        details["user_id"] = str(user_id)
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )
        self.assessment_id = assessment_id
        self.user_id = user_id


class AuthorizationError(EduSyncError):
    """The authenticated principal may not perform the action"""
    category = ErrorCategory.AUTHORIZATION

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.AUTHORIZATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )


class NotFoundError(EduSyncError):
    """A requested resource does not exist (or must not be revealed)"""
    category = ErrorCategory.NOT_FOUND

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.NOT_FOUND_ERROR,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )


# Validation errors

class MalformedQuestionSetError(ValidationError):
    """The serialized question set could not be parsed or is inconsistent"""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            code=ErrorCode.MALFORMED_QUESTION_SET,
            details={"errors": errors or []},
            cause=cause
        )
        self.errors = errors or []


class MalformedAnswersError(ValidationError):
    """The submitted answers do not match the assessment's question set"""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            code=ErrorCode.MALFORMED_ANSWERS,
            details={"errors": errors or []},
            cause=cause
        )
        self.errors = errors or []


class SubmissionExpiredError(ValidationError):
    """The submission arrived after the time limit plus grace margin"""

    def __init__(self, assessment_id: str, elapsed_seconds: float, limit_seconds: float,
                 grace_seconds: float):
        super().__init__(
            message=(
                f"Submission for assessment {assessment_id} arrived after {elapsed_seconds:.0f}s, "
                f"exceeding the {limit_seconds:.0f}s time limit"
            ),
            code=ErrorCode.SUBMISSION_EXPIRED,
            details={
                "assessment_id": str(assessment_id),
                "elapsed_seconds": elapsed_seconds,
                "time_limit_seconds": limit_seconds,
                "grace_seconds": grace_seconds
            }
        )


# State conflict errors

class DuplicateStartError(StateConflictError):
    """Start was called while an attempt is still open"""

    def __init__(self, assessment_id: str, user_id: str):
        super().__init__(
            message=f"Attempt for assessment {assessment_id} is already in progress",
            code=ErrorCode.DUPLICATE_START,
            assessment_id=assessment_id,
            user_id=user_id
        )


class AlreadySubmittedError(StateConflictError):
    """The attempt has already been submitted"""

    def __init__(self, assessment_id: str, user_id: str):
        super().__init__(
            message=f"Assessment {assessment_id} has already been submitted",
            code=ErrorCode.ALREADY_SUBMITTED,
            assessment_id=assessment_id,
            user_id=user_id
        )


class NotStartedError(StateConflictError):
    """No Start was observed for the attempt"""

    def __init__(self, assessment_id: str, user_id: str):
        super().__init__(
            message=f"Assessment {assessment_id} has not been started",
            code=ErrorCode.NOT_STARTED,
            assessment_id=assessment_id,
            user_id=user_id
        )


class AssessmentHasResultsError(EduSyncError):
    """Deleting an assessment with results would orphan them"""
    category = ErrorCategory.STATE_CONFLICT

    def __init__(self, assessment_id: str, result_count: int):
        super().__init__(
            message=f"Assessment {assessment_id} has {result_count} results and cannot be deleted",
            code=ErrorCode.ASSESSMENT_HAS_RESULTS,
            severity=ErrorSeverity.WARNING,
            details={"assessment_id": str(assessment_id), "result_count": result_count}
        )


# Authorization errors

class NotEnrolledError(AuthorizationError):
    """The user is not enrolled in the course"""

    def __init__(self, course_id: str):
        super().__init__(
            message="You are not enrolled in this course",
            code=ErrorCode.NOT_ENROLLED,
            details={"course_id": str(course_id)}
        )


class NotInstructorError(AuthorizationError):
    """The user is not an instructor of the course"""

    def __init__(self, course_id: Optional[str] = None):
        super().__init__(
            message="Only the course instructor can perform this action",
            code=ErrorCode.NOT_INSTRUCTOR,
            details={"course_id": str(course_id)} if course_id is not None else None
        )


# Not-found errors

class AssessmentNotFoundError(NotFoundError):
    """The assessment does not exist or is not visible to the caller"""

    def __init__(self, assessment_id: str):
        super().__init__(
            message=f"Assessment with ID {assessment_id} not found",
            code=ErrorCode.ASSESSMENT_NOT_FOUND,
            details={"assessment_id": str(assessment_id)}
        )


class DatabaseError(EduSyncError):
    """A persistence operation failed"""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            code=ErrorCode.DATABASE_ERROR,
            severity=ErrorSeverity.ERROR,
            cause=cause
        )


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: Optional[Dict[str, Any]] = None
) -> EduSyncError:
    """
    Convert a standard exception to an EduSyncError.

    EduSyncErrors pass through unchanged apart from merging ``context``.
    """
    if isinstance(exception, EduSyncError):
        if context:
            exception.context.update(context)
        return exception

    return EduSyncError(
        message=str(exception) or default_message,
        code=ErrorCode.UNKNOWN_ERROR,
        severity=ErrorSeverity.ERROR,
        cause=exception,
        context=context
    )


def error_response(
    error: Union[EduSyncError, Exception],
    include_details: bool = True
) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    Args:
        error: The error to generate a response for
        include_details: Whether to include error details

    Returns:
        Response dictionary with status, code, category and message
    """
    if not isinstance(error, EduSyncError):
        error = convert_exception(error)

    response = {
        "status": "error",
        "code": error.code.value,
        "category": error.category.value,
        "message": error.message
    }

    if include_details and error.details:
        response["details"] = error.details

    return response


def log_error(
    error: Union[EduSyncError, Exception],
    level: Optional[int] = None,
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None,
    log: Optional[logging.Logger] = None
) -> None:
    """
    Log an error with the standard format.

    The level defaults to the error's severity.
    """
    error = convert_exception(error, context=context)

    message = f"ERROR [{error.code.value}]: {error.message}"
    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"
    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"
    if include_stack_trace:
        message += f"\n{traceback.format_exc()}"

    if level is None:
        level = getattr(logging, error.severity.value.upper())
    (log or logger).log(level, message)
