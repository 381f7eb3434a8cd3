"""
Custom exception classes for the X post publisher.

This module defines all exception classes used throughout the codebase.
Exceptions follow the fail-fast philosophy: no fallbacks, surface errors
immediately with clear context for debugging.

Hierarchy:
    Exception
    +-- PublisherBaseError (base for all publication errors)
    |   +-- CredentialsError
    |   |   +-- CredentialsNotFound
    |   |   +-- CredentialsIncomplete
    |   |   +-- CredentialsNotConnected
    |   +-- RemoteError
    |   |   +-- RemoteRejected
    |   |   +-- TransportError
    |   +-- PostNotFoundError
    |   +-- InvalidTransitionError
    |   +-- SigningError
    +-- ValidationError (ValueError)
    +-- DatabaseError
    +-- ConfigurationError
    +-- RetryExhaustedError
"""

from typing import Any, Dict, List, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class PublisherBaseError(Exception):
    """Base exception for all publication-related errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails (content, schedule time)."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# CREDENTIAL EXCEPTIONS
# =============================================================================


class CredentialsError(PublisherBaseError):
    """Base for credential problems the user fixes on the settings screen."""

    def __init__(self, user_id: str, message: str):
        self.user_id = user_id
        super().__init__(message)


class CredentialsNotFound(CredentialsError):
    """Raised when a user has no stored X API credential record."""

    def __init__(self, user_id: str):
        super().__init__(
            user_id,
            "X API settings not found. Configure your API keys in settings.",
        )


class CredentialsIncomplete(CredentialsError):
    """Raised when required credential fields are blank.

    Attributes:
        missing: Names of the blank fields.
    """

    def __init__(self, user_id: str, missing: List[str]):
        self.missing = missing
        super().__init__(
            user_id,
            "Required X API credentials are missing: "
            f"{', '.join(missing)}. Complete them in settings.",
        )


class CredentialsNotConnected(CredentialsError):
    """Raised when credentials exist but the last connection test failed."""

    def __init__(self, user_id: str):
        super().__init__(
            user_id,
            "X API is not connected. Run the connection test in settings.",
        )


# =============================================================================
# REMOTE PLATFORM EXCEPTIONS
# =============================================================================


class RemoteError(PublisherBaseError):
    """Base for failures of a call to the remote platform.

    Attributes:
        retriable: Whether repeating the same call may succeed.
    """

    retriable: bool = False


class RemoteRejected(RemoteError):
    """Raised when the platform answers with a non-2xx response.

    Attributes:
        status_code: HTTP status returned by the platform.
        payload: Decoded error body, preserved verbatim.
    """

    def __init__(self, status_code: int, payload: Any):
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"X API rejected the request (HTTP {status_code})")

    @property
    def details(self) -> Any:
        """The most specific part of the error payload.

        Mirrors the platform's shape: ``errors`` first, then ``detail``,
        else the whole payload.
        """
        if isinstance(self.payload, dict):
            if self.payload.get("errors"):
                return self.payload["errors"]
            if self.payload.get("detail"):
                return self.payload["detail"]
        return self.payload


class TransportError(RemoteError):
    """Raised on timeouts and connection failures (retriable).

    Attributes:
        operation: Remote operation that failed (``publish`` / ``verify``).
    """

    retriable = True

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        reason = f": {cause}" if cause is not None and str(cause) else ""
        kind = type(cause).__name__ if cause is not None else "error"
        super().__init__(f"X API {operation} failed ({kind}){reason}")


# =============================================================================
# LIFECYCLE EXCEPTIONS
# =============================================================================


class PostNotFoundError(PublisherBaseError):
    """Raised when a post does not exist or belongs to another user."""

    def __init__(self, post_id: str):
        self.post_id = post_id
        super().__init__(f"Post {post_id} not found")


class InvalidTransitionError(PublisherBaseError):
    """Raised when a post's state does not allow the requested change.

    Attributes:
        post_id: The post being changed.
        current: Current status value.
        requested: Requested operation or target status.
    """

    def __init__(self, post_id: str, current: str, requested: str):
        self.post_id = post_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Post {post_id} cannot go from '{current}' to '{requested}'"
        )


class SigningError(PublisherBaseError):
    """Raised for malformed signing input. Indicates a programming error."""

    pass


def error_payload(error: Exception) -> Dict[str, Any]:
    """Render an error as the entrypoint failure shape.

    Returns:
        Dict with ``success=False``, ``error`` and, for remote rejections,
        ``httpStatus`` and the verbatim ``details``.
    """
    payload: Dict[str, Any] = {"success": False, "error": str(error)}
    if isinstance(error, RemoteRejected):
        payload["httpStatus"] = error.status_code
        payload["details"] = error.details
    return payload


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "PublisherBaseError",
    # Core
    "ValidationError",
    "DatabaseError",
    "ConfigurationError",
    "RetryExhaustedError",
    # Credentials
    "CredentialsError",
    "CredentialsNotFound",
    "CredentialsIncomplete",
    "CredentialsNotConnected",
    # Remote platform
    "RemoteError",
    "RemoteRejected",
    "TransportError",
    # Lifecycle
    "PostNotFoundError",
    "InvalidTransitionError",
    "SigningError",
    "error_payload",
]
