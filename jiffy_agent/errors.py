"""
Error types for event delivery and authentication.

Dispatch failures are values the caller inspects, never process-fatal.
Each error carries a structured code so call sites can log consistently.
"""

from enum import Enum
from typing import Any, Dict, Optional


class EventErrorCode(Enum):
    """
    Error codes for event delivery.

    - 1000-1099: Authentication errors
    - 1100-1199: Delivery errors
    - 1200-1299: Transport errors
    """

    NOT_AUTHENTICATED = 1000

    SEND_FAILED = 1100

    NETWORK_ERROR = 1200


class AuthErrorCode(Enum):
    """Error codes for token validation."""

    INVALID_RESPONSE = 2000
    UNAUTHORIZED = 2001
    SERVER_ERROR = 2002


class EventError(Exception):
    """Base exception for event delivery failures."""

    def __init__(
        self,
        code: EventErrorCode,
        message: str,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        """
        Initialize event error.

        Args:
            code: Error code from EventErrorCode enum
            message: Human-readable error message
            status: HTTP status code, when a response was received
            cause: Underlying transport exception, when one occurred
        """
        self.code = code
        self.message = message
        self.status = status
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for structured logging.

        Returns:
            Error dictionary with code, message and optional status/cause
        """
        result: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }

        if self.status is not None:
            result["status"] = self.status

        if self.cause is not None:
            result["cause"] = repr(self.cause)

        return result


class NotAuthenticatedError(EventError):
    """No bearer token available, or the collector rejected it (401)."""

    def __init__(self, status: Optional[int] = None):
        super().__init__(
            code=EventErrorCode.NOT_AUTHENTICATED,
            message="Not authenticated. Please log in.",
            status=status,
        )


class SendFailedError(EventError):
    """Collector answered with a non-2xx status other than 401."""

    def __init__(self, status: Optional[int] = None):
        super().__init__(
            code=EventErrorCode.SEND_FAILED,
            message="Failed to send event to server.",
            status=status,
        )


class NetworkError(EventError):
    """Transport-level failure (connection refused, DNS, timeout)."""

    def __init__(self, cause: BaseException):
        super().__init__(
            code=EventErrorCode.NETWORK_ERROR,
            message=f"Network error: {cause}",
            cause=cause,
        )


class AuthError(Exception):
    """Token validation failure."""

    def __init__(self, code: AuthErrorCode, message: str, status: Optional[int] = None):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(message)

    @classmethod
    def unauthorized(cls) -> "AuthError":
        return cls(AuthErrorCode.UNAUTHORIZED, "Unauthorized - please log in again", status=401)

    @classmethod
    def server_error(cls, status: int) -> "AuthError":
        return cls(AuthErrorCode.SERVER_ERROR, f"Server error: {status}", status=status)
