"""
Tools module - Provides the capabilities offered to the explorer.
"""

from .base import (
    IToolHandler,
    BaseToolHandler,
    ExplorationContext,
    ToolDefinition,
    ToolResponse,
    ToolCategory
)
from .executor import ToolExecutor
from .inspection_tools import (
    RepoOverviewHandler,
    FileSummaryHandler,
    FulltextSearchHandler,
    render_tree,
    resolve_inside,
    truncate_output,
)
from .answer_tools import SubmitAnswerHandler, SUBMIT_ANSWER_TOOL


def create_default_tool_executor() -> ToolExecutor:
    """
    Create a ToolExecutor with every exploration capability registered.

    Returns:
        ToolExecutor with overview, inspect_file, search_text and submit_answer
    """
    executor = ToolExecutor()
    executor.register(RepoOverviewHandler())
    executor.register(FileSummaryHandler())
    executor.register(FulltextSearchHandler())
    executor.register(SubmitAnswerHandler())
    return executor


__all__ = [
    "IToolHandler",
    "BaseToolHandler",
    "ExplorationContext",
    "ToolDefinition",
    "ToolResponse",
    "ToolCategory",
    "ToolExecutor",
    "create_default_tool_executor",
    "RepoOverviewHandler",
    "FileSummaryHandler",
    "FulltextSearchHandler",
    "SubmitAnswerHandler",
    "SUBMIT_ANSWER_TOOL",
    "render_tree",
    "resolve_inside",
    "truncate_output",
]
