"""
Shared API utilities for the EduSync assessment service.

This module provides:
- The standard response envelope
- Exception handlers that map EduSync errors and request validation errors
  to HTTP responses
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from edusync.common.error_handling import (
    EduSyncError,
    ErrorCategory,
    ErrorCode,
    error_response,
    log_error,
)

logger = logging.getLogger(__name__)

CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

CODE_STATUS = {
    ErrorCode.SUBMISSION_EXPIRED: status.HTTP_410_GONE,
}


def status_for(error: EduSyncError) -> int:
    """HTTP status of an EduSync error."""
    return CODE_STATUS.get(error.code, CATEGORY_STATUS[error.category])


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

    @staticmethod
    def error(message: str, details: Optional[Any] = None,
              code: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an error response.

        Args:
            message: Error message
            details: Optional error details
            code: Optional error code

        Returns:
            Response dictionary
        """
        response = {
            "status": "error",
            "message": message
        }

        if details:
            response["details"] = details

        if code:
            response["code"] = code

        return response


async def edusync_exception_handler(request: Request, exc: EduSyncError) -> JSONResponse:
    """
    Map an EduSync error to its HTTP status and the standard error body.

    Args:
        request: The incoming request
        exc: The raised error

    Returns:
        A JSON response with the error code, category and details
    """
    status_code = status_for(exc)
    log_error(exc, context={"path": request.url.path}, log=logger)
    return JSONResponse(status_code=status_code, content=error_response(exc))


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
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse.error("Validation error", details=error_details, code="request_validation_error")
    )
