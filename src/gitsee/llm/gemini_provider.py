"""
Google Gemini LLM Provider implementation.
"""

import os
import logging
from typing import List, Dict, Any, Optional

from google import genai
from google.genai import types

from .provider import (
    BaseLLMProvider,
    ModelInfo,
    ModelProvider,
    AssistantMessage,
    Usage
)
from ..utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class GeminiProvider(BaseLLMProvider):
    """
    Provider for Google Gemini models.

    Converts Anthropic-style messages and tools to Gemini contents and
    function declarations, and Gemini responses back to content blocks.
    """

    DEFAULT_MODEL = "gemini-2.5-flash"

    def __init__(self, model_id: str = DEFAULT_MODEL, api_key: Optional[str] = None):
        """
        Initialize Gemini provider.

        Args:
            model_id: Gemini model ID
            api_key: Google API key (or from GEMINI_API_KEY env var)
        """
        super().__init__(model_id, api_key)

        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError("Gemini API key required (set LLM_API_KEY or GEMINI_API_KEY)")

        self.client = genai.Client(api_key=self.api_key)

        logger.info(f"Gemini provider initialized with model: {self.model_id}")

    @property
    def model_info(self) -> ModelInfo:
        """Get model information"""
        return ModelInfo(
            id=self.model_id,
            name=self.model_id,
            provider=ModelProvider.GEMINI,
            context_window=1048576,
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
        Create a message using Gemini API.

        Returns:
            AssistantMessage with response
        """
        config_params = {
            'temperature': temperature,
            'max_output_tokens': max_tokens,
        }
        if system_prompt:
            config_params['system_instruction'] = system_prompt
        if tools:
            config_params['tools'] = self._convert_tools_to_gemini_format(tools)
            config_params['automatic_function_calling'] = types.AutomaticFunctionCallingConfig(
                disable=True
            )

        contents = self._format_messages_for_gemini(messages)
        logger.debug(f"Creating Gemini message with {len(contents)} messages, max_tokens={max_tokens}")

        response = await self.client.aio.models.generate_content(
            model=self.model_id,
            contents=contents,
            config=types.GenerateContentConfig(**config_params)
        )

        return self._parse_response(response)

    def _format_messages_for_gemini(self, messages: List[Dict[str, Any]]) -> List[Any]:
        """
        Convert Anthropic-style messages to Gemini contents.

        Assistant tool_use blocks become function calls and user tool_result
        blocks become function responses, matched by tool_use id.
        """
        formatted = []
        tool_use_id_to_name = {}

        for msg in messages:
            role = "model" if msg["role"] == "assistant" else "user"
            content = msg["content"]
            parts = []

            if isinstance(content, str):
                parts.append(types.Part.from_text(text=content))
            elif isinstance(content, list):
                for block in content:
                    if not isinstance(block, dict):
                        continue
                    block_type = block.get("type")

                    if block_type == "text" and block.get("text"):
                        parts.append(types.Part.from_text(text=block["text"]))

                    elif block_type == "tool_use":
                        tool_use_id_to_name[block.get("id", "")] = block.get("name", "")
                        parts.append(types.Part.from_function_call(
                            name=block.get("name", ""),
                            args=block.get("input") or {}
                        ))

                    elif block_type == "tool_result":
                        tool_use_id = block.get("tool_use_id", "")
                        function_name = tool_use_id_to_name.get(tool_use_id)
                        if not function_name:
                            logger.warning(f"Could not find function name for tool_use_id: {tool_use_id}")
                            continue
                        parts.append(types.Part.from_function_response(
                            name=function_name,
                            response={'result': block.get("content", "")}
                        ))

            if parts:
                formatted.append(types.Content(role=role, parts=parts))

        return formatted

    def _convert_tools_to_gemini_format(self, tools: List[Dict[str, Any]]) -> List[Any]:
        """Wrap Anthropic tool definitions in a single Gemini Tool."""
        function_declarations = [
            types.FunctionDeclaration(
                name=tool["name"],
                description=tool["description"],
                parameters_json_schema=tool["input_schema"]
            )
            for tool in tools
        ]
        return [types.Tool(function_declarations=function_declarations)]

    def _parse_response(self, response: Any) -> AssistantMessage:
        """
        Parse Gemini response into AssistantMessage.

        Converts Gemini format to Anthropic-compatible content blocks.
        """
        content_blocks = []
        stop_reason = None

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            logger.warning("Response has no candidates")
        else:
            candidate = candidates[0]
            parts = (candidate.content.parts if candidate.content else None) or []
            tool_call_index = 0
            for part in parts:
                fc = part.function_call
                if fc is not None:
                    if not fc.name or not fc.name.strip():
                        logger.warning("Skipping malformed function call with empty name")
                        continue
                    content_blocks.append({
                        "type": "tool_use",
                        "id": fc.id or f"tool_{tool_call_index}",
                        "name": fc.name,
                        "input": dict(fc.args) if fc.args else {}
                    })
                    tool_call_index += 1
                elif part.text:
                    content_blocks.append({"type": "text", "text": part.text})

            finish_reason = str(candidate.finish_reason or "")
            if "MAX_TOKENS" in finish_reason:
                stop_reason = "max_tokens"
            elif tool_call_index:
                stop_reason = "tool_use"
            elif "STOP" in finish_reason:
                stop_reason = "end_turn"
            elif finish_reason:
                logger.warning(f"Gemini stopped with finish_reason={finish_reason}")
                stop_reason = "stop_sequence"

        usage = None
        um = getattr(response, "usage_metadata", None)
        if um is not None:
            usage = Usage(
                input_tokens=um.prompt_token_count or 0,
                output_tokens=um.candidates_token_count or 0,
                total_tokens=um.total_token_count or 0
            )

        return AssistantMessage(
            content=content_blocks,
            stop_reason=stop_reason,
            usage=usage
        )
