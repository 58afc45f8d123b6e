"""
Error message formatting for logs and HTTP error bodies.
"""

from typing import Any, Dict

from .categories import ErrorCategory, categorize_error
from ..logging_config import scrub_credentials


class ErrorFormatter:
    """
    Formats errors into concise, credential-free messages.
    """

    EMOJIS = {
        ErrorCategory.CONFIGURATION: "⚙️",
        ErrorCategory.VALIDATION: "✅",
        ErrorCategory.CLONE: "📦",
        ErrorCategory.EXPLORATION: "🔍",
        ErrorCategory.STORAGE: "💾",
        ErrorCategory.AUTH: "🔒",
        ErrorCategory.TIMEOUT: "⏱️",
        ErrorCategory.NETWORK: "🌐",
        ErrorCategory.API: "🔌",
        ErrorCategory.NOT_FOUND: "❓",
        ErrorCategory.INTERNAL: "⚠️",
    }

    @staticmethod
    def format_error_concise(error: Exception) -> str:
        """
        Format an error concisely for logs or inline display.

        Args:
            error: The exception to format

        Returns:
            Concise error string
        """
        category, explanation = categorize_error(error)
        emoji = ErrorFormatter.EMOJIS.get(category, "❌")
        detail = scrub_credentials(str(error))[:100]

        return f"{emoji} {category.value.upper()}: {explanation} - {detail}"

    @staticmethod
    def format_error_body(error: Exception) -> Dict[str, Any]:
        """
        Build the JSON body returned to HTTP clients.

        Args:
            error: The exception to format

        Returns:
            Dict with a single "error" message
        """
        return {"error": scrub_credentials(str(error)) or type(error).__name__}


def format_error_concise(error: Exception) -> str:
    """Convenience wrapper around ErrorFormatter.format_error_concise"""
    return ErrorFormatter.format_error_concise(error)
