"""
Base classes and interfaces for exploration capabilities.

Each capability the model may invoke during an exploration run is a tool
handler. Handlers are registered with a ToolExecutor, which exposes their
definitions to the model and routes calls back to them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum


class ToolCategory(Enum):
    """Categories of tools available to the explorer"""
    INSPECTION = "inspection"  # Read-only views of the checkout
    ANSWER = "answer"  # Ends the exploration loop


@dataclass
class ToolResponse:
    """Response from a tool execution"""
    content: Any
    metadata: Optional[Dict[str, Any]] = None

    def to_string(self) -> str:
        """Convert response to string format"""
        if isinstance(self.content, str):
            return self.content
        return str(self.content)

    @property
    def is_error(self) -> bool:
        return bool(self.metadata and self.metadata.get("error"))


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM"""
    name: str
    description: str
    input_schema: Dict[str, Any]  # JSON schema for tool inputs
    category: ToolCategory


@dataclass
class ExplorationContext:
    """What a tool needs to know about the run it is serving"""
    repo_path: str
    file_lines: int = 80
    final_answer_description: str = ""


class IToolHandler(ABC):
    """
    Base interface for all tool handlers.

    Each tool handler implements:
    1. Tool definition (name, description, schema)
    2. Execution logic
    3. Optional validation
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name"""
        pass

    @property
    @abstractmethod
    def category(self) -> ToolCategory:
        """Tool category"""
        pass

    @abstractmethod
    def get_definition(self, context: Optional[ExplorationContext] = None) -> ToolDefinition:
        """
        Get the tool definition for the LLM.

        Args:
            context: Run context, for tools whose description depends on the mode

        Returns:
            ToolDefinition with name, description, and input schema
        """
        pass

    @abstractmethod
    async def execute(self, input_data: Dict[str, Any], context: ExplorationContext) -> ToolResponse:
        """
        Execute the tool with given input.

        Args:
            input_data: Tool input parameters
            context: Exploration context

        Returns:
            ToolResponse with results
        """
        pass

    def validate_input(self, input_data: Dict[str, Any]) -> None:
        """
        Validate tool input before execution.

        Raises:
            ValueError if validation fails
        """
        pass


class BaseToolHandler(IToolHandler):
    """
    Base implementation of IToolHandler with common functionality.

    Subclasses only need to implement:
    - name property
    - category property
    - get_definition()
    - execute()
    """

    def _format_error(self, error: Exception) -> str:
        """Format an error message for returning to the LLM"""
        return f"Error executing {self.name}: {str(error)}"

    def _success_response(self, content: Any, metadata: Optional[Dict] = None) -> ToolResponse:
        """Create a successful tool response"""
        return ToolResponse(content=content, metadata=metadata)

    def _error_response(self, error: Exception) -> ToolResponse:
        """Create an error tool response"""
        return ToolResponse(
            content=self._format_error(error),
            metadata={"error": True}
        )

    def _require_string(self, input_data: Dict[str, Any], field: str) -> None:
        value = input_data.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"'{field}' must be a non-empty string")
