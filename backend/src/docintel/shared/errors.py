"""Shared error types and response helpers for consistent error handling across the pipeline"""

from enum import Enum
from typing import Optional, Dict, Any

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # Client errors (4xx)
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

    # Server errors (5xx)
    INTERNAL_ERROR = "internal_error"
    SERVICE_UNAVAILABLE = "service_unavailable"


class ErrorBody(BaseModel):
    """Structured error body returned by the upload API"""

    error: str
    message: str
    code: ErrorCode

    class Config:
        use_enum_values = True


# =========================================================================
# Exception taxonomy
# =========================================================================

class PipelineError(Exception):
    """Base exception for the ingestion pipeline."""


class DocumentValidationError(PipelineError):
    """Bad filename, content type or size. Rejected locally, never retried."""

    def __init__(self, message: str, *, error: str = "INVALID_REQUEST"):
        super().__init__(message)
        self.error = error


class RateLimitExceededError(PipelineError):
    """Raised when a client exceeds its credential issuance limit."""


class DependencyError(PipelineError):
    """An external service call failed."""

    def __init__(self, message: str, *, service: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.service = service
        self.__cause__ = cause


class TransientDependencyError(DependencyError):
    """Throttling or timeout from an external service; safe to retry."""


class PersistenceError(PipelineError):
    """A primary write to the status store failed."""


class StatusTransitionError(PersistenceError):
    """The requested lifecycle transition is not allowed from the current state."""

    def __init__(self, document_id: str, target: str, current: Optional[str] = None):
        detail = f" (current status: {current})" if current else ""
        super().__init__(f"Cannot move document {document_id} to {target}{detail}")
        self.document_id = document_id
        self.target = target
        self.current = current


# AWS error codes that indicate the request may succeed if retried
TRANSIENT_ERROR_CODES = frozenset({
    "ThrottlingException",
    "Throttling",
    "ProvisionedThroughputExceededException",
    "ProvisionedThroughputExceeded",
    "LimitExceededException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "ServiceUnavailableException",
    "ServiceUnavailable",
    "InternalServerError",
    "InternalServerException",
    "ModelNotReadyException",
    "RequestTimeout",
    "RequestTimeoutException",
    "SlowDown",
})


def client_error_code(error: Exception) -> Optional[str]:
    """Return the AWS error code carried by a ClientError, if any"""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def classify_client_error(error: Exception, service: str) -> DependencyError:
    """
    Wrap a boto3 failure in the pipeline's dependency error taxonomy.

    Args:
        error: Exception raised by a boto3 call
        service: Short service name used in log lines and messages

    Returns:
        TransientDependencyError for throttling/timeouts, DependencyError otherwise
    """
    code = client_error_code(error)
    message = f"{service} call failed: {error}"

    if code in TRANSIENT_ERROR_CODES:
        return TransientDependencyError(message, service=service, cause=error)
    if isinstance(error, BotoCoreError) and not isinstance(error, ClientError):
        # Connection resets, read timeouts and similar transport failures
        return TransientDependencyError(message, service=service, cause=error)
    return DependencyError(message, service=service, cause=error)


# =========================================================================
# Response helpers
# =========================================================================

def error_body(error: str, message: str, code: ErrorCode) -> Dict[str, Any]:
    """Create the `{error, message, code}` body used by all error responses"""
    return ErrorBody(error=error, message=message, code=code).model_dump()


def error_response(status_code: int, error: str, message: str, code: Optional[ErrorCode] = None) -> JSONResponse:
    """
    Create a JSON error response.

    Args:
        status_code: HTTP status code
        error: Machine-readable error name (e.g. INVALID_FILENAME)
        message: User-friendly error message
        code: Error code; derived from the status code when omitted

    Returns:
        JSONResponse with a structured error body
    """
    code = code or http_status_to_error_code(status_code)
    return JSONResponse(status_code=status_code, content=error_body(error, message, code))


def http_status_to_error_code(status_code: int) -> ErrorCode:
    """Map HTTP status codes to ErrorCode enum values"""

    mapping = {
        400: ErrorCode.BAD_REQUEST,
        401: ErrorCode.UNAUTHORIZED,
        404: ErrorCode.NOT_FOUND,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMIT_EXCEEDED,
        500: ErrorCode.INTERNAL_ERROR,
        503: ErrorCode.SERVICE_UNAVAILABLE,
    }

    return mapping.get(status_code, ErrorCode.INTERNAL_ERROR)
