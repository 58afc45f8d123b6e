"""
LLM module - Provides LLM provider abstractions.
"""

from typing import Optional

from .provider import (
    ILLMProvider,
    BaseLLMProvider,
    ModelInfo,
    ModelProvider,
    Usage,
    AssistantMessage
)
from .anthropic_provider import AnthropicProvider
from .gemini_provider import GeminiProvider


def create_llm_provider(
    provider_type: str = "anthropic",
    model_id: Optional[str] = None,
    api_key: Optional[str] = None,
) -> ILLMProvider:
    """
    Factory function to create an LLM provider.

    Args:
        provider_type: Type of provider ("anthropic", "gemini")
        model_id: Model identifier
        api_key: API key (falls back to the vendor env var)

    Returns:
        ILLMProvider instance

    Raises:
        ValueError: If provider_type is unknown or no API key is available
    """
    provider_type = provider_type.lower()

    if provider_type == "anthropic":
        return AnthropicProvider(model_id=model_id or AnthropicProvider.DEFAULT_MODEL, api_key=api_key)

    elif provider_type == "gemini":
        return GeminiProvider(model_id=model_id or GeminiProvider.DEFAULT_MODEL, api_key=api_key)

    else:
        raise ValueError(
            f"Unknown provider type: {provider_type}. "
            f"Supported: anthropic, gemini"
        )


__all__ = [
    "ILLMProvider",
    "BaseLLMProvider",
    "ModelInfo",
    "ModelProvider",
    "Usage",
    "AssistantMessage",
    "AnthropicProvider",
    "GeminiProvider",
    "create_llm_provider",
]
