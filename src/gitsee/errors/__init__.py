"""
Error handling and formatting for GitSee.
"""

from .exceptions import (
    GitSeeError,
    ValidationError,
    CloneError,
    ExplorationError,
    StoreError,
    SubscriberTimeoutError,
    GitHubAPIError,
    GitHubNotFoundError,
)
from .formatter import ErrorFormatter, format_error_concise
from .categories import ErrorCategory, categorize_error

__all__ = [
    "GitSeeError",
    "ValidationError",
    "CloneError",
    "ExplorationError",
    "StoreError",
    "SubscriberTimeoutError",
    "GitHubAPIError",
    "GitHubNotFoundError",
    "ErrorFormatter",
    "format_error_concise",
    "ErrorCategory",
    "categorize_error",
]
