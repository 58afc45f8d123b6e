"""
ExplorationLoop - Bounded tool-calling loop over a repository checkout.

This module implements the loop that:
1. Builds the mode's system prompt and offered capabilities
2. Asks the model for one capability call per step
3. Executes the call read-only against the checkout and feeds the result back
4. Ends when the model calls submit_answer, stops calling tools, or runs out of steps

The loop never raises: every exit is one of TERMINATED_OK, TERMINATED_FALLBACK
or TERMINATED_ERROR, reported through an ExplorationOutcome.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .answers import parse_answer
from .modes import ModeProfile, final_answer_description, profile_for
from ..errors import format_error_concise
from ..llm import ILLMProvider
from ..models import ExplorationMode
from ..prompts import PromptBuilder
from ..tools import ExplorationContext, SUBMIT_ANSWER_TOOL, ToolExecutor, create_default_tool_executor

logger = logging.getLogger(__name__)

FALLBACK_NOTE = "(Note: Model did not invoke submit_answer; using last reasoning text as answer.)"
DEFAULT_MAX_STEPS = 25


class ExplorationState(Enum):
    """Exploration loop state"""
    RUNNING = "running"
    TERMINATED_OK = "terminated_ok"
    TERMINATED_FALLBACK = "terminated_fallback"
    TERMINATED_ERROR = "terminated_error"


@dataclass
class Message:
    """Represents a message in the conversation history"""
    role: str  # "user" or "assistant"
    content: Any  # Can be string or list of content blocks


@dataclass
class ToolUse:
    """Represents a tool use request from the LLM"""
    id: str
    name: str
    input: Dict[str, Any]


@dataclass
class ToolResult:
    """Represents the result of a tool execution"""
    tool_use_id: str
    content: Any
    is_error: bool = False


@dataclass
class StepRecord:
    """One non-final capability invocation, reported to on_step observers"""
    step: int
    tool_name: str
    tool_input: Dict[str, Any]
    is_error: bool
    preview: str

    def describe(self) -> str:
        target = self.tool_input.get("file_path") or self.tool_input.get("query") or ""
        suffix = f" {target}" if target else ""
        status = " (error)" if self.is_error else ""
        return f"Step {self.step}: {self.tool_name}{suffix}{status}"


@dataclass
class ExplorationOutcome:
    """Terminal result of an exploration run"""
    mode: ExplorationMode
    state: ExplorationState
    result: Any = None
    raw_answer: Optional[str] = None
    steps: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        """OK and FALLBACK both carry a usable result"""
        return self.state in (ExplorationState.TERMINATED_OK, ExplorationState.TERMINATED_FALLBACK)


StepCallback = Callable[[StepRecord], None]


class ExplorationLoop:
    """
    Drives a model through read-only inspection of a checkout.

    One instance is shared by every run; per-run state lives in _Run.
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        tool_executor: Optional[ToolExecutor] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_tokens: int = 4096,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.llm_provider = llm_provider
        self.tool_executor = tool_executor or create_default_tool_executor()
        self.max_steps = max_steps
        self.max_tokens = max_tokens

    async def explore(
        self,
        repo_path: str,
        mode: ExplorationMode,
        prompt: Optional[str] = None,
        system_prompt: Optional[str] = None,
        final_answer_override: Optional[str] = None,
        on_step: Optional[StepCallback] = None,
    ) -> ExplorationOutcome:
        """
        Run one exploration to completion.

        Args:
            repo_path: Checkout to inspect
            mode: Exploration mode selecting tools, instructions and answer shape
            prompt: User question (defaults to the mode's prompt)
            system_prompt: Replaces the mode's explorer instructions
            final_answer_override: Appended to the generic submission description
            on_step: Called after every non-final capability invocation

        Returns:
            ExplorationOutcome in a terminal state
        """
        profile = profile_for(mode)

        if not os.path.isdir(repo_path):
            logger.error(f"Exploration requested for missing checkout: {repo_path}")
            return ExplorationOutcome(
                mode=mode,
                state=ExplorationState.TERMINATED_ERROR,
                error=f"Checkout not found: {repo_path}",
            )

        run = _Run(self, profile, repo_path, prompt, system_prompt, final_answer_override, on_step)
        try:
            return await run.execute()
        except Exception as e:
            logger.exception(f"Exploration ({mode.value}) of {repo_path} failed unexpectedly")
            return ExplorationOutcome(
                mode=mode,
                state=ExplorationState.TERMINATED_ERROR,
                steps=run.step_count,
                error=format_error_concise(e),
            )


class _Run:
    """Conversation state for a single exploration"""

    def __init__(
        self,
        loop: ExplorationLoop,
        profile: ModeProfile,
        repo_path: str,
        prompt: Optional[str],
        system_prompt: Optional[str],
        final_answer_override: Optional[str],
        on_step: Optional[StepCallback],
    ):
        self.loop = loop
        self.profile = profile
        self.on_step = on_step
        self.state = ExplorationState.RUNNING
        self.step_count = 0
        self.last_text: Optional[str] = None
        self.conversation_history: List[Message] = []

        repo_name = os.path.basename(os.path.normpath(repo_path))
        self.context = ExplorationContext(
            repo_path=repo_path,
            file_lines=profile.file_lines,
            final_answer_description=final_answer_description(profile, final_answer_override, repo_name),
        )
        self.system_prompt = self._build_system_prompt(system_prompt, repo_name)
        self.tools = loop.tool_executor.get_tool_definitions_for_llm(profile.tools, self.context)
        self.conversation_history.append(Message(
            role="user",
            content=[{"type": "text", "text": prompt or profile.default_prompt}]
        ))

    def _build_system_prompt(self, override: Optional[str], repo_name: str) -> str:
        builder = PromptBuilder(override or self.profile.explorer_prompt)
        builder.add_context_section(
            "REPOSITORY_CONTEXT",
            f"""## Current Exploration

**Repository directory**: {repo_name}
**Mode**: {self.profile.mode.value}
**Step budget**: {{{{MAX_STEPS}}}}
"""
        )
        return builder.build(context={"MAX_STEPS": self.loop.max_steps})

    async def execute(self) -> ExplorationOutcome:
        mode = self.profile.mode
        logger.info(f"Starting {mode.value} exploration of {self.context.repo_path}")

        while self.step_count < self.loop.max_steps:
            self.step_count += 1
            logger.debug(f"Exploration step {self.step_count}/{self.loop.max_steps}")

            try:
                assistant_message = await self.loop.llm_provider.create_message(
                    system_prompt=self.system_prompt,
                    messages=self._format_messages_for_llm(),
                    tools=self.tools,
                    max_tokens=self.loop.max_tokens,
                )
            except Exception as e:
                logger.error(f"Model call failed at step {self.step_count}: {e}")
                return self._finish(ExplorationState.TERMINATED_ERROR, error=format_error_concise(e))

            content = assistant_message.content
            text = self._extract_text(content)
            if text:
                self.last_text = text

            self.conversation_history.append(Message(role="assistant", content=content))

            tool_uses = self._extract_tool_uses(content)
            if not tool_uses:
                logger.info(f"Model stopped calling tools at step {self.step_count}")
                return self._fallback_or_error("Model finished without any answer text")

            chosen, extra = tool_uses[0], tool_uses[1:]

            if chosen.name == SUBMIT_ANSWER_TOOL:
                submission = await self._run_tool(chosen)
                if not submission.is_error:
                    raw = str(submission.content)
                    logger.info(f"Exploration ({mode.value}) submitted after {self.step_count} steps")
                    return self._finish(
                        ExplorationState.TERMINATED_OK,
                        result=parse_answer(self.profile, raw),
                        raw_answer=raw,
                    )
                results = [submission]
            else:
                result = await self._run_tool(chosen)
                results = [result]
                self._report_step(chosen, result)

            # Every tool_use needs a matching tool_result; only the first is honoured
            for skipped in extra:
                results.append(ToolResult(
                    tool_use_id=skipped.id,
                    content="Skipped: call exactly one tool per step.",
                    is_error=True
                ))

            self.conversation_history.append(Message(
                role="user",
                content=self._format_tool_results(results)
            ))

        logger.warning(f"Exploration ({mode.value}) reached the step ceiling of {self.loop.max_steps}")
        return self._fallback_or_error(f"Step limit of {self.loop.max_steps} reached without an answer")

    async def _run_tool(self, tool_use: ToolUse) -> ToolResult:
        """Execute one capability; failures become error results for the model"""
        try:
            response = await self.loop.tool_executor.execute(
                tool_use, self.context, allowed=self.profile.tools
            )
        except Exception as e:
            logger.warning(f"Tool {tool_use.name} failed: {e}")
            return ToolResult(
                tool_use_id=tool_use.id,
                content=f"Tool execution failed: {str(e)}",
                is_error=True
            )
        return ToolResult(
            tool_use_id=tool_use.id,
            content=response.to_string(),
            is_error=response.is_error
        )

    def _report_step(self, tool_use: ToolUse, result: ToolResult) -> None:
        record = StepRecord(
            step=self.step_count,
            tool_name=tool_use.name,
            tool_input=dict(tool_use.input or {}),
            is_error=result.is_error,
            preview=str(result.content)[:200],
        )
        logger.info(record.describe())
        if self.on_step is None:
            return
        try:
            self.on_step(record)
        except Exception as e:
            logger.warning(f"Step observer failed: {format_error_concise(e)}")

    def _fallback_or_error(self, error: str) -> ExplorationOutcome:
        if not self.last_text:
            return self._finish(ExplorationState.TERMINATED_ERROR, error=error)
        raw = f"{self.last_text}\n\n{FALLBACK_NOTE}"
        return self._finish(
            ExplorationState.TERMINATED_FALLBACK,
            result=parse_answer(self.profile, raw),
            raw_answer=raw,
        )

    def _finish(
        self,
        state: ExplorationState,
        result: Any = None,
        raw_answer: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ExplorationOutcome:
        self.state = state
        logger.info(f"Exploration ({self.profile.mode.value}) ended in {state.value} after {self.step_count} steps")
        return ExplorationOutcome(
            mode=self.profile.mode,
            state=state,
            result=result,
            raw_answer=raw_answer,
            steps=self.step_count,
            error=error,
        )

    def _format_messages_for_llm(self) -> List[Dict[str, Any]]:
        """Format conversation history for LLM API"""
        return [{"role": msg.role, "content": msg.content} for msg in self.conversation_history]

    def _extract_text(self, content: Any) -> str:
        if isinstance(content, str):
            return content.strip()
        parts = []
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                    parts.append(block["text"])
        return "\n".join(parts).strip()

    def _extract_tool_uses(self, content: Any) -> List[ToolUse]:
        """
        Extract tool use requests from assistant message content.

        Tool uses are represented as blocks with type="tool_use".
        """
        tool_uses = []
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_use":
                    tool_uses.append(ToolUse(
                        id=block.get("id", ""),
                        name=block.get("name", ""),
                        input=block.get("input") or {}
                    ))
        return tool_uses

    def _format_tool_results(self, results: List[ToolResult]) -> List[Dict[str, Any]]:
        """Format tool results for the conversation"""
        return [
            {
                "type": "tool_result",
                "tool_use_id": result.tool_use_id,
                "content": str(result.content),
                "is_error": result.is_error
            }
            for result in results
        ]
