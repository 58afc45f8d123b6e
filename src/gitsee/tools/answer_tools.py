"""
The submission tool that ends an exploration run.
"""

from typing import Dict, Any, Optional
from .base import BaseToolHandler, ExplorationContext, ToolDefinition, ToolResponse, ToolCategory


SUBMIT_ANSWER_TOOL = "submit_answer"


class SubmitAnswerHandler(BaseToolHandler):
    """Tool to submit the final answer"""

    @property
    def name(self) -> str:
        return SUBMIT_ANSWER_TOOL

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.ANSWER

    def get_definition(self, context: Optional[ExplorationContext] = None) -> ToolDefinition:
        description = (
            context.final_answer_description
            if context and context.final_answer_description
            else "Provide the final answer to the user. YOU **MUST** CALL THIS TOOL AT THE END OF YOUR EXPLORATION."
        )
        return ToolDefinition(
            name=self.name,
            description=description,
            input_schema={
                "type": "object",
                "properties": {
                    "answer": {
                        "type": "string",
                        "description": "The final answer, in the format described above"
                    }
                },
                "required": ["answer"]
            },
            category=self.category
        )

    async def execute(self, input_data: Dict[str, Any], context: ExplorationContext) -> ToolResponse:
        """Execute: Echo the submitted answer"""
        # The loop ends on this call; the answer text is the payload
        answer = input_data.get("answer")
        if not isinstance(answer, str):
            answer = "" if answer is None else str(answer)
        return self._success_response(answer)
