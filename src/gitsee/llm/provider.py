"""
LLM Provider abstraction layer.

The exploration loop talks to a model only through ILLMProvider: given the
system prompt, the conversation so far and the offered tools, the model
returns text and/or a tool call. Vendor adapters translate to and from
Anthropic-style content blocks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from enum import Enum


class ModelProvider(Enum):
    """Supported LLM providers"""
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


@dataclass
class ModelInfo:
    """Information about a specific model"""
    id: str
    name: str
    provider: ModelProvider
    context_window: int
    supports_tools: bool = True


@dataclass
class Usage:
    """Token usage information"""
    input_tokens: int
    output_tokens: int
    total_tokens: int


@dataclass
class AssistantMessage:
    """Response from the LLM"""
    content: Any  # String or list of content blocks (including tool uses)
    stop_reason: Optional[str] = None  # end_turn, tool_use, max_tokens, ...
    usage: Optional[Usage] = None


class ILLMProvider(ABC):
    """
    Base interface for LLM providers.

    All providers must implement this interface to be usable by the explorer.
    """

    @property
    @abstractmethod
    def model_info(self) -> ModelInfo:
        """Get information about the model"""
        pass

    @abstractmethod
    async def create_message(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096
    ) -> AssistantMessage:
        """
        Create a message (request-response).

        Args:
            system_prompt: System prompt for the model
            messages: Conversation history (Anthropic content-block format)
            tools: Available tools (in Anthropic format)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            AssistantMessage whose content is a list of content blocks
        """
        pass

    def supports_tools(self) -> bool:
        """Whether this provider supports tool calling"""
        return self.model_info.supports_tools


class BaseLLMProvider(ILLMProvider):
    """
    Base implementation with common functionality.

    Subclasses implement provider-specific logic.
    """

    def __init__(self, model_id: str, api_key: Optional[str] = None):
        self.model_id = model_id
        self.api_key = api_key
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate provider configuration"""
        if not self.model_id:
            raise ValueError("model_id is required")

    def _parse_response(self, response: Any) -> AssistantMessage:
        """
        Parse provider response into AssistantMessage.
        Must be implemented by subclasses.
        """
        raise NotImplementedError("Subclass must implement _parse_response")
