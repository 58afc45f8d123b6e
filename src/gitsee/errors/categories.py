"""
Error categorization for log lines and API error payloads.
"""

from enum import Enum
from typing import Tuple

from .exceptions import (
    CloneError,
    ExplorationError,
    GitHubAPIError,
    GitHubNotFoundError,
    StoreError,
    SubscriberTimeoutError,
    ValidationError,
)


class ErrorCategory(Enum):
    """Categories of errors that can occur in GitSee"""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    CLONE = "clone"
    EXPLORATION = "exploration"
    STORAGE = "storage"
    API = "api"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NETWORK = "network"
    AUTH = "authentication"
    INTERNAL = "internal"


def categorize_error(error: Exception) -> Tuple[ErrorCategory, str]:
    """
    Categorize an error and provide a short explanation.

    Typed GitSee errors are matched first; anything else falls back to
    keyword inspection of the message.

    Args:
        error: The exception to categorize

    Returns:
        Tuple of (ErrorCategory, explanation)
    """
    if isinstance(error, ValidationError):
        return ErrorCategory.VALIDATION, "Invalid request"
    if isinstance(error, CloneError):
        return ErrorCategory.CLONE, "Repository could not be cloned"
    if isinstance(error, ExplorationError):
        return ErrorCategory.EXPLORATION, "Repository exploration failed"
    if isinstance(error, StoreError):
        return ErrorCategory.STORAGE, "Result could not be stored"
    if isinstance(error, SubscriberTimeoutError):
        return ErrorCategory.TIMEOUT, "No client subscribed in time"
    if isinstance(error, GitHubNotFoundError):
        return ErrorCategory.NOT_FOUND, "GitHub resource not found"
    if isinstance(error, GitHubAPIError):
        if error.status_code in (401, 403):
            return ErrorCategory.AUTH, "GitHub rejected the credentials"
        return ErrorCategory.API, "GitHub API error"

    error_str = str(error).lower()
    error_type = type(error).__name__

    if "api key" in error_str or "config" in error_str:
        return (
            ErrorCategory.CONFIGURATION,
            "Configuration error - please check your API keys and environment variables"
        )

    if "401" in error_str or "unauthorized" in error_str or "forbidden" in error_str:
        return ErrorCategory.AUTH, "Authentication failed"

    if "timeout" in error_str or error_type == "TimeoutError":
        return ErrorCategory.TIMEOUT, "Operation timed out"

    if any(keyword in error_str for keyword in ["connection", "network", "unreachable"]):
        return ErrorCategory.NETWORK, "Network error"

    if "429" in error_str or "rate limit" in error_str:
        return ErrorCategory.API, "Rate limit exceeded"

    return ErrorCategory.INTERNAL, "An unexpected error occurred"
