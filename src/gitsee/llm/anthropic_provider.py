"""
Anthropic (Claude) LLM Provider implementation.
"""

import os
import logging
from typing import List, Dict, Any, Optional
import anthropic

from .provider import (
    BaseLLMProvider,
    ModelInfo,
    ModelProvider,
    AssistantMessage,
    Usage
)
from ..utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """
    Provider for Anthropic's Claude models.

    Responses are converted to plain dict content blocks so the conversation
    can be stored and replayed without SDK objects.
    """

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, model_id: str = DEFAULT_MODEL, api_key: Optional[str] = None):
        """
        Initialize Anthropic provider.

        Args:
            model_id: Claude model ID
            api_key: Anthropic API key (or from ANTHROPIC_API_KEY env var)
        """
        super().__init__(model_id, api_key)

        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("Anthropic API key required (set LLM_API_KEY or ANTHROPIC_API_KEY)")

        self.client = anthropic.AsyncAnthropic(api_key=self.api_key)

        logger.info(f"Anthropic provider initialized with model: {self.model_id}")

    @property
    def model_info(self) -> ModelInfo:
        """Get model information"""
        return ModelInfo(
            id=self.model_id,
            name=self.model_id,
            provider=ModelProvider.ANTHROPIC,
            context_window=200000,
            supports_tools=True
        )

    @retry_with_backoff(max_retries=3)
    async def create_message(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096
    ) -> AssistantMessage:
        """
        Create a message using Anthropic API.

        Returns:
            AssistantMessage with response
        """
        params = {
            "model": self.model_id,
            "system": system_prompt,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        if tools:
            params["tools"] = tools
            logger.debug(f"Request includes {len(tools)} tools")

        logger.debug(f"Creating message with {len(messages)} messages, max_tokens={max_tokens}")

        response = await self.client.messages.create(**params)

        logger.debug(f"Response received: stop_reason={response.stop_reason}")
        if getattr(response, "usage", None) is not None:
            logger.debug(f"Token usage: input={response.usage.input_tokens}, output={response.usage.output_tokens}")

        return self._parse_response(response)

    def _parse_response(self, response: Any) -> AssistantMessage:
        """Parse Anthropic API response into AssistantMessage"""
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens
            )

        content_blocks = []
        for block in response.content:
            if block.type == "text":
                content_blocks.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                content_blocks.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": dict(block.input or {})
                })
            else:
                logger.debug(f"Ignoring content block of type {block.type}")

        return AssistantMessage(
            content=content_blocks,
            stop_reason=response.stop_reason,
            usage=usage
        )
