"""Centralized error definitions for crypticdocs.

Gateway-level errors (network, timeout, response shape, expired session) are
never raised across the gateway boundary: they are captured into a
``CommandResult`` and their ``code`` is stored as ``error_kind``. Only session
acquisition failures and unmasked critical command failures halt a run.

Usage:
    from crypticdocs.errors import CrypticDocsError, handle_error

    try:
        report = await scheduler.start(catalog)
    except CrypticDocsError as e:
        print(handle_error(e))
"""

from __future__ import annotations

from crypticdocs.errors.user_messages import (
    format_error_for_cli,
    format_error_for_user,
    get_recovery_suggestion,
    get_user_message,
)


# =============================================================================
# Base Error
# =============================================================================


class CrypticDocsError(Exception):
    """Base exception for all crypticdocs errors.

    Attributes:
        code: Error code for categorization
        user_message: User-friendly message (optional override)
        recoverable: Whether the error is potentially recoverable
        details: Additional error details for debugging
    """

    code: str = "CRYPTICDOCS_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get user-friendly message."""
        if self._user_message:
            return self._user_message
        return get_user_message(self)

    @property
    def recovery_suggestion(self) -> str:
        """Get recovery suggestion."""
        return get_recovery_suggestion(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(CrypticDocsError):
    """Base error for session credential handling."""

    code = "SESSION_ERROR"
    default_message = "Session credential operation failed"


class SessionAcquisitionError(SessionError):
    """No extraction strategy produced usable credentials."""

    code = "SESSION_ACQUISITION_ERROR"
    default_message = "Could not acquire session credentials from any source"
    recoverable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        attempted: list[str] | None = None,
    ) -> None:
        self.attempted = list(attempted or [])
        super().__init__(message, details={"attempted_strategies": self.attempted})


class SessionExpiredError(SessionError):
    """Credentials failed the validity check or were rejected by the host."""

    code = "SESSION_EXPIRED"
    default_message = "Session credentials are expired or were rejected"


# =============================================================================
# Gateway Errors
# =============================================================================


class GatewayError(CrypticDocsError):
    """Base error for command gateway failures."""

    code = "GATEWAY_ERROR"
    default_message = "Command gateway failure"


class NetworkError(GatewayError):
    """Transport failure or non-success HTTP status."""

    code = "NETWORK_ERROR"
    default_message = "Network request failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, details=details)


class CommandTimeoutError(NetworkError):
    """A single attempt exceeded the per-command deadline."""

    code = "COMMAND_TIMEOUT"
    default_message = "Command timed out"


class UnexpectedResponseShape(GatewayError):
    """Response body did not match the cryptic response schema."""

    code = "UNEXPECTED_RESPONSE_SHAPE"
    default_message = "Unexpected response format"


# =============================================================================
# Run Errors
# =============================================================================


class CriticalCommandError(CrypticDocsError):
    """A command flagged critical failed while skip-on-error was disabled."""

    code = "CRITICAL_COMMAND_ERROR"
    default_message = "Critical command failed"
    recoverable = False

    def __init__(self, command: str, reason: str | None = None) -> None:
        self.command = command
        self.reason = reason
        super().__init__(
            f"Critical failure on {command}: {reason or 'unknown error'}",
            details={"command": command, "reason": reason},
        )


class CatalogError(CrypticDocsError):
    """Command catalog could not be loaded or is malformed."""

    code = "CATALOG_ERROR"
    default_message = "Command catalog is invalid"


class ConfigurationError(CrypticDocsError):
    """Configuration file or override is invalid."""

    code = "CONFIGURATION_ERROR"
    default_message = "Configuration error"


# =============================================================================
# Error Handler
# =============================================================================


def handle_error(error: Exception) -> str:
    """Handle an error and return a user-friendly message.

    Args:
        error: The exception to handle

    Returns:
        User-friendly error message with recovery suggestion
    """
    return format_error_for_user(error)


def is_recoverable(error: Exception) -> bool:
    """Check if an error is potentially recoverable."""
    if isinstance(error, CrypticDocsError):
        return error.recoverable
    return False


__all__ = [
    "CatalogError",
    "CommandTimeoutError",
    "ConfigurationError",
    "CriticalCommandError",
    "CrypticDocsError",
    "GatewayError",
    "NetworkError",
    "SessionAcquisitionError",
    "SessionError",
    "SessionExpiredError",
    "UnexpectedResponseShape",
    "format_error_for_cli",
    "format_error_for_user",
    "get_recovery_suggestion",
    "get_user_message",
    "handle_error",
    "is_recoverable",
]
