"""
Custom exceptions for the aggregation engine with structured error context.

This module provides the exception hierarchy used by the upstream clients,
the aggregation engine and the query boundary. Each exception includes
context information for debugging and monitoring.

Exception Hierarchy:
    AggregatorException (base)
    ├── UpstreamError
    │   ├── PollutionAPIError
    │   │   ├── AuthenticationError
    │   │   ├── RateLimitExceeded
    │   │   ├── UpstreamHTTPError
    │   │   ├── UpstreamTransportError
    │   │   └── MalformedResponseError
    │   └── ValidationUnavailable
    ├── InvalidInputError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class AggregatorException(Exception):
    """
    Base exception for all aggregation-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (country, page, status, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(AggregatorException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 503)
    """
    pass


class NonRetryableError(AggregatorException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Malformed upstream payloads
    - Invalid caller input
    """
    pass


# ============================================================================
# Upstream Errors
# ============================================================================

class UpstreamError(AggregatorException):
    """Base exception for failures of an external service."""
    pass


class PollutionAPIError(UpstreamError):
    """
    Exception raised when the pollution measurement API fails.

    Context should include:
        - api_url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
        - country / page: The page being fetched (if applicable)
    """
    pass


class AuthenticationError(NonRetryableError, PollutionAPIError):
    """Login or token refresh rejected by the pollution API."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class RateLimitExceeded(RetryableError, PollutionAPIError):
    """Rate limiting (HTTP 429) persisted after the retry budget was spent."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after:
            self.context["retry_after"] = retry_after


class UpstreamHTTPError(NonRetryableError, PollutionAPIError):
    """Non-throttling 4xx/5xx response from the pollution API."""

    def __init__(
        self,
        message: str,
        status_code: int,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.context["status_code"] = status_code


class UpstreamTransportError(RetryableError, PollutionAPIError):
    """Network-level failure (timeout, connection refused, DNS)."""
    pass


class MalformedResponseError(NonRetryableError, PollutionAPIError):
    """Pollution API answered with a payload of unexpected shape."""
    pass


class ValidationUnavailable(RetryableError, UpstreamError):
    """
    Exception raised when Wikipedia cannot be reached after all retries.

    Context should include:
        - titles: Number of titles in the failed request
        - retry_count: Number of attempts made
    """
    pass


# ============================================================================
# Caller Errors
# ============================================================================

class InvalidInputError(NonRetryableError):
    """
    Malformed country, page or limit, rejected before any upstream work.

    Attributes:
        error_code: Boundary error code ("invalid-country" or "invalid-page")
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.error_code = error_code
