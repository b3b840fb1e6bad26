"""User-friendly error messages for crypticdocs.

Session identifiers, cookies and raw terminal responses are never part of a
user-facing message; ``details`` entries carrying them are filtered out.
"""

from __future__ import annotations

import re
from typing import Any


# =============================================================================
# Error Message Catalog
# =============================================================================

ERROR_MESSAGES: dict[str, str] = {
    # Session errors
    "SESSION_ERROR": "A problem occurred while handling the terminal session.",
    "SESSION_ACQUISITION_ERROR": "No active terminal session could be found.",
    "SESSION_EXPIRED": "The terminal session has expired.",
    # Gateway errors
    "GATEWAY_ERROR": "The command could not be sent to the terminal.",
    "NETWORK_ERROR": "The terminal host could not be reached.",
    "COMMAND_TIMEOUT": "The terminal took too long to answer.",
    "UNEXPECTED_RESPONSE_SHAPE": "The terminal answered in an unexpected format.",
    # Run errors
    "CRITICAL_COMMAND_ERROR": "A critical command failed and the extraction was halted.",
    "CATALOG_ERROR": "The command catalog could not be read.",
    "CONFIGURATION_ERROR": "There's a configuration issue.",
    "INVALID_STATE_TRANSITION": "That action is not possible in the current run state.",
    # Generic
    "CRYPTICDOCS_ERROR": "An unexpected error occurred. Please try again.",
    "UNKNOWN_ERROR": "Something went wrong. Please try again.",
}


# =============================================================================
# Recovery Suggestions
# =============================================================================

RECOVERY_SUGGESTIONS: dict[str, str] = {
    "SESSION_ERROR": "Sign in to the terminal again and re-export the page snapshot.",
    "SESSION_ACQUISITION_ERROR": "Provide --intercepted, --page or --storage, or set CRYPTICDOCS_SESSION_ID.",
    "SESSION_EXPIRED": "Sign in again; sessions are considered stale after one hour.",
    "GATEWAY_ERROR": "Check the gateway settings: crypticdocs config show",
    "NETWORK_ERROR": "Check your connection to the terminal host and retry.",
    "COMMAND_TIMEOUT": "Raise timeout_per_command_ms or lower the request rate.",
    "UNEXPECTED_RESPONSE_SHAPE": "The host may have changed its API; capture a sample response.",
    "CRITICAL_COMMAND_ERROR": "Enable skip_on_error or remove the critical flag from the catalog.",
    "CATALOG_ERROR": "Validate the catalog: crypticdocs extract catalog --catalog <path>",
    "CONFIGURATION_ERROR": "Check config: crypticdocs config show",
    "INVALID_STATE_TRANSITION": "Check the run status before pausing, resuming or stopping.",
    "CRYPTICDOCS_ERROR": "If this persists, please report the issue.",
    "UNKNOWN_ERROR": "Retry with --verbose for more detail.",
}

_SENSITIVE_KEYS = ("session_id", "context_id", "cookies", "response_text", "token")

_REDACT_PATTERNS = (
    re.compile(r"(jSessionId[\"'\s]*[:=][\"'\s]*)[^\"'\s,;}&]+", re.IGNORECASE),
    re.compile(r"(contextId[\"'\s]*[:=][\"'\s]*)[^\"'\s,;}&]+", re.IGNORECASE),
    re.compile(r"(password[\"'\s]*[:=][\"'\s]*)[^\"'\s,;}&]+", re.IGNORECASE),
    re.compile(r"(token[\"'\s]*[:=][\"'\s]*)[^\"'\s,;}&]+", re.IGNORECASE),
)


# =============================================================================
# Helper Functions
# =============================================================================


def _error_code(error: Any) -> str:
    if hasattr(error, "code"):
        return error.code
    if isinstance(error, str):
        return error
    return type(error).__name__.upper()


def redact(text: str | None) -> str:
    """Mask session identifiers and secrets in text destined for logs."""
    if not text:
        return ""
    for pattern in _REDACT_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


def get_user_message(error: Any) -> str:
    """Get user-friendly message for an error or error code."""
    return ERROR_MESSAGES.get(_error_code(error), ERROR_MESSAGES["UNKNOWN_ERROR"])


def get_recovery_suggestion(error: Any) -> str:
    """Get recovery suggestion for an error or error code."""
    return RECOVERY_SUGGESTIONS.get(_error_code(error), RECOVERY_SUGGESTIONS["UNKNOWN_ERROR"])


def format_error_for_user(error: Any) -> str:
    """Format a complete user-friendly error message."""
    message = get_user_message(error)
    suggestion = get_recovery_suggestion(error)

    return f"{message}\n\nSuggestion: {suggestion}"


def format_error_for_cli(error: Any) -> str:
    """Format error for CLI output.

    Args:
        error: The error to format

    Returns:
        CLI-formatted error message
    """
    message = get_user_message(error)
    suggestion = get_recovery_suggestion(error)
    code = getattr(error, "code", "ERROR")

    lines = [
        f"Error [{code}]: {message}",
        "",
        f"Suggestion: {suggestion}",
    ]

    details = getattr(error, "details", None)
    if details:
        lines.append("")
        lines.append("Details:")
        for key, value in details.items():
            if key not in _SENSITIVE_KEYS:
                lines.append(f"  {key}: {value}")

    return "\n".join(lines)
