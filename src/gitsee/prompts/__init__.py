"""
Prompts module - Exploration instructions and system prompt construction.
"""

from .builder import PromptBuilder, PromptComponent


__all__ = [
    "PromptBuilder",
    "PromptComponent",
]
