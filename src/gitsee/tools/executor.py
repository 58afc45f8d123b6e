"""
ToolExecutor - Coordinates capability execution for an exploration run.

This module manages tool registration, lookup, and execution.
"""

import logging
from typing import Dict, List, Any, Optional, Sequence
from .base import ExplorationContext, IToolHandler, ToolDefinition, ToolResponse

logger = logging.getLogger(__name__)


class ToolExecutor:
    """
    Coordinates tool execution for the explorer.

    Responsibilities:
    1. Register tool handlers
    2. Provide tool definitions to the LLM
    3. Route tool calls to the appropriate handler
    """

    def __init__(self):
        self._handlers: Dict[str, IToolHandler] = {}

    def register(self, handler: IToolHandler) -> None:
        """
        Register a tool handler.

        Raises:
            ValueError if a handler with the same name already exists
        """
        if handler.name in self._handlers:
            raise ValueError(f"Tool handler '{handler.name}' is already registered")

        self._handlers[handler.name] = handler
        logger.debug(f"Registered tool: {handler.name} (category: {handler.category.value})")

    def get_tool_definitions(
        self,
        names: Optional[Sequence[str]] = None,
        context: Optional[ExplorationContext] = None,
    ) -> List[ToolDefinition]:
        """
        Get tool definitions for the LLM.

        Args:
            names: Optional subset of tool names, in the order given
            context: Run context passed to each handler

        Returns:
            List of tool definitions
        """
        if names is None:
            handlers = list(self._handlers.values())
        else:
            handlers = [self._handlers[n] for n in names if n in self._handlers]
        return [handler.get_definition(context) for handler in handlers]

    def get_tool_definitions_for_llm(
        self,
        names: Optional[Sequence[str]] = None,
        context: Optional[ExplorationContext] = None,
    ) -> List[Dict[str, Any]]:
        """
        Get tool definitions formatted for the LLM API (Anthropic format).

        Returns list of tool objects with name, description, and input_schema.
        """
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema
            }
            for tool in self.get_tool_definitions(names, context)
        ]

    async def execute(
        self,
        tool_use: Any,
        context: ExplorationContext,
        allowed: Optional[Sequence[str]] = None,
    ) -> ToolResponse:
        """
        Execute a tool by routing to the appropriate handler.

        Args:
            tool_use: ToolUse object with name and input
            context: Exploration context
            allowed: Names offered in this run; anything else is rejected

        Returns:
            ToolResponse from the handler

        Raises:
            ValueError if the tool is unknown, not offered, or given invalid input
        """
        tool_name = tool_use.name
        tool_input = tool_use.input or {}

        logger.debug(f"Executing tool: {tool_name} with input: {tool_input}")

        handler = self._handlers.get(tool_name)
        if not handler or (allowed is not None and tool_name not in allowed):
            offered = list(allowed) if allowed is not None else list(self._handlers.keys())
            logger.error(f"Tool not available: {tool_name}")
            raise ValueError(f"Unknown tool: {tool_name}. Available tools: {offered}")

        try:
            handler.validate_input(tool_input)
        except ValueError as e:
            logger.warning(f"Tool input validation failed for {tool_name}: {e}")
            raise ValueError(f"Invalid input for tool '{tool_name}': {str(e)}") from e

        result = await handler.execute(tool_input, context)

        if result.is_error:
            logger.warning(f"Tool {tool_name} completed with error: {result.content}")
        else:
            content_str = str(result.content)
            content_preview = content_str[:200] + "..." if len(content_str) > 200 else content_str
            logger.debug(f"Tool {tool_name} completed successfully. Result preview: {content_preview}")

        return result
