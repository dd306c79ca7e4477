"""
Exceptions for the content classification pipeline.

The taxonomy separates failures the job dispatcher should retry
(``TransientInferenceError``) from ones it should not
(``MalformedResponseError``, ``ConfigurationError``,
``UnsupportedContentError``), and keeps persistence races internal
(``PersistenceConflict``).
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class ModerationPipelineException(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "MODERATION_PIPELINE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ModerationPipelineException):
    """Raised when a classifier is disabled or has no endpoint configured."""

    def __init__(
        self,
        message: str,
        classification_type: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={**(details or {}), "classification_type": classification_type}
        )


class TransientInferenceError(ModerationPipelineException):
    """Raised on network failures, timeouts, server errors or discovery failures."""

    def __init__(
        self,
        message: str,
        backend: str = "unknown",
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "TRANSIENT_INFERENCE_ERROR"
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details={**(details or {}), "backend": backend}
        )


class DiscoveryError(TransientInferenceError):
    """Raised when service discovery yields no usable backend."""

    def __init__(
        self,
        message: str,
        domain: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            backend=domain,
            details={**(details or {}), "domain": domain},
            error_code="DISCOVERY_ERROR"
        )


class MalformedResponseError(ModerationPipelineException):
    """Raised when a backend returns an unparseable or semantically invalid payload."""

    def __init__(
        self,
        message: str,
        classification_type: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="MALFORMED_RESPONSE",
            details={**(details or {}), "classification_type": classification_type}
        )


class UnsupportedContentError(ModerationPipelineException):
    """Raised when a backend refuses a piece of content it cannot classify (HTTP 415)."""

    def __init__(
        self,
        message: str,
        backend: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="UNSUPPORTED_CONTENT",
            details={**(details or {}), "backend": backend}
        )


class PersistenceConflict(ModerationPipelineException):
    """Raised when a concurrent run inserted the same row first."""

    def __init__(
        self,
        message: str,
        table: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PERSISTENCE_CONFLICT",
            details={**(details or {}), "table": table}
        )


class DatabaseException(ModerationPipelineException):
    """Exception raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            details={**(details or {}), "operation": operation}
        )


class ValidationException(ModerationPipelineException):
    """Exception raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={**(details or {}), "field": field}
        )


class NotFoundException(ModerationPipelineException):
    """Exception raised when a requested record does not exist."""

    def __init__(
        self,
        message: str,
        resource: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="NOT_FOUND",
            details={**(details or {}), "resource": resource}
        )


class AuthenticationException(ModerationPipelineException):
    """Exception raised when the API key is missing or wrong."""

    def __init__(
        self,
        message: str = "Invalid or missing API key",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="INVALID_API_KEY",
            details=details
        )


def create_http_exception(
    exception: ModerationPipelineException,
    status_code: Optional[int] = None
) -> HTTPException:
    """
    Convert a pipeline exception to a FastAPI HTTPException.

    Args:
        exception: Pipeline exception instance
        status_code: HTTP status code; looked up from the mapping when omitted

    Returns:
        HTTPException instance
    """
    if status_code is None:
        status_code = status_code_for(exception)
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": exception.error_code,
            "message": exception.message,
            "details": exception.details
        }
    )


def status_code_for(exception: ModerationPipelineException) -> int:
    for exc_type in type(exception).__mro__:
        if exc_type in EXCEPTION_STATUS_MAPPING:
            return EXCEPTION_STATUS_MAPPING[exc_type]
    return 500


# Exception to HTTP status code mapping
EXCEPTION_STATUS_MAPPING = {
    ConfigurationError: 409,  # Conflict
    TransientInferenceError: 503,  # Service Unavailable
    MalformedResponseError: 422,  # Unprocessable Entity
    UnsupportedContentError: 415,  # Unsupported Media Type
    PersistenceConflict: 409,  # Conflict
    DatabaseException: 500,  # Internal Server Error
    ValidationException: 400,  # Bad Request
    NotFoundException: 404,  # Not Found
    AuthenticationException: 401,  # Unauthorized
}
