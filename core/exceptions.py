"""
Custom exceptions for the rate refresh pipeline with structured error context.

Every error raised inside a refresh cycle carries a context dictionary so that
unit results and logs can say exactly which source, window and record were
involved.

Exception Hierarchy:
    RefreshException (base)
    ├── SourceRegistryError      (fatal: aborts the cycle)
    ├── ResolutionError          (unit skipped)
    ├── FetchError               (unit failed)
    │   ├── NetworkError
    │   ├── RateLimitError
    │   ├── FetchTimeoutError
    │   ├── AuthenticationError
    │   └── ResourceNotFoundError
    ├── RateParseError           (point dropped)
    ├── PersistenceError         (unit failed)
    │   ├── UpsertError
    │   └── StateTransitionError
    │       └── InvalidTransitionError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class RefreshException(Exception):
    """
    Base exception for all refresh pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, window, record, ...)
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
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

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
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Setup / Resolution Errors
# ============================================================================

class SourceRegistryError(RefreshException):
    """
    Raised when the source registry cannot be read at all.

    This is the only error that aborts a whole refresh cycle.
    """
    pass


class ResolutionError(RefreshException):
    """
    Raised when a source cannot be tied to a company/hotel, or its locator
    is unusable for the provider.

    Context should include:
        - source_id
        - hotel_id
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(RefreshException):
    """
    Base exception for external retrieval failures.

    Context should include:
        - provider
        - locator
        - check_in / check_out
    """
    pass


class RateParseError(RefreshException):
    """
    Raised when a provider rate cannot be turned into a non-negative amount.

    Context should include:
        - room_label
        - rate_text
    """
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(RefreshException):
    """Base exception for storage failures."""
    pass


class UpsertError(PersistenceError):
    """
    Raised when replacing the data points of a refresh record fails.

    Context should include:
        - refresh_record_id
        - operation: the step that failed (room_type, delete, insert, commit)
    """
    pass


class StateTransitionError(PersistenceError):
    """Raised when a refresh record status update cannot be applied."""
    pass


class InvalidTransitionError(StateTransitionError):
    """
    Raised when a status change is not allowed by the state machine.

    Context should include:
        - from_status
        - to_status
    """
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(RefreshException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(RefreshException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Specific Fetch Errors
# ============================================================================

class NetworkError(RetryableError, FetchError):
    """Network-related errors that should be retried."""
    pass


class FetchTimeoutError(RetryableError, FetchError):
    """The provider did not answer within the configured timeout."""
    pass


class RateLimitError(RetryableError, FetchError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, FetchError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


class ResourceNotFoundError(NonRetryableError, FetchError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass
