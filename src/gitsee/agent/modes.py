"""
Fixed per-mode configuration for the exploration loop.

Each ExplorationMode maps to exactly one ModeProfile carrying the offered
tools, the inspect_file line budget, the instruction text, the default user
prompt and the expected answer shape.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..models import ExplorationMode
from ..prompts import exploration_prompts as prompts

ALL_TOOLS = ("overview", "inspect_file", "search_text", "submit_answer")
NO_SEARCH_TOOLS = ("overview", "inspect_file", "submit_answer")


class AnswerShape:
    """How a submitted answer is interpreted"""
    FIRST_PASS = "first_pass"  # JSON object, first_pass fields
    FEATURES = "features"  # JSON object, features fields
    RAW_TEXT = "raw_text"  # Returned verbatim


@dataclass(frozen=True)
class ModeProfile:
    mode: ExplorationMode
    tools: Tuple[str, ...]
    file_lines: int
    explorer_prompt: str
    final_answer_description: str
    default_prompt: str
    answer_shape: str


MODE_PROFILES: Dict[ExplorationMode, ModeProfile] = {
    ExplorationMode.FIRST_PASS: ModeProfile(
        mode=ExplorationMode.FIRST_PASS,
        tools=NO_SEARCH_TOOLS,
        file_lines=prompts.FIRST_PASS_FILE_LINES,
        explorer_prompt=prompts.FIRST_PASS_EXPLORER,
        final_answer_description=prompts.FIRST_PASS_FINAL_ANSWER,
        default_prompt=prompts.FIRST_PASS_PROMPT,
        answer_shape=AnswerShape.FIRST_PASS,
    ),
    ExplorationMode.FEATURES: ModeProfile(
        mode=ExplorationMode.FEATURES,
        tools=ALL_TOOLS,
        file_lines=prompts.FEATURES_FILE_LINES,
        explorer_prompt=prompts.FEATURES_EXPLORER,
        final_answer_description=prompts.FEATURES_FINAL_ANSWER,
        default_prompt=prompts.FEATURES_PROMPT,
        answer_shape=AnswerShape.FEATURES,
    ),
    ExplorationMode.SERVICES: ModeProfile(
        mode=ExplorationMode.SERVICES,
        tools=ALL_TOOLS,
        file_lines=prompts.SERVICES_FILE_LINES,
        explorer_prompt=prompts.SERVICES_EXPLORER,
        final_answer_description=prompts.SERVICES_FINAL_ANSWER,
        default_prompt=prompts.SERVICES_PROMPT,
        answer_shape=AnswerShape.RAW_TEXT,
    ),
    ExplorationMode.GENERIC: ModeProfile(
        mode=ExplorationMode.GENERIC,
        tools=ALL_TOOLS,
        file_lines=prompts.GENERIC_FILE_LINES,
        explorer_prompt=prompts.GENERIC_EXPLORER,
        final_answer_description=prompts.GENERIC_FINAL_ANSWER,
        default_prompt=prompts.GENERIC_PROMPT,
        answer_shape=AnswerShape.RAW_TEXT,
    ),
}

missing = set(ExplorationMode) - set(MODE_PROFILES)
if missing:
    raise RuntimeError(f"Exploration modes without a profile: {sorted(m.value for m in missing)}")
del missing


def profile_for(mode: ExplorationMode) -> ModeProfile:
    return MODE_PROFILES[mode]


def final_answer_description(
    profile: ModeProfile,
    override: Optional[str] = None,
    repo_name: Optional[str] = None,
) -> str:
    """
    Description attached to submit_answer for a run.

    A caller override is appended to the generic submission text instead of
    the mode's own. The services mode names the checkout in its instructions.
    """
    if override:
        description = f"{prompts.GENERIC_FINAL_ANSWER}\n\n{override}"
    else:
        description = profile.final_answer_description

    if profile.mode is ExplorationMode.SERVICES:
        description = description.replace(prompts.REPO_NAME_PLACEHOLDER, repo_name or "my-repo")
    return description
