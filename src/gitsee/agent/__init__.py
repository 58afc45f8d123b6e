"""
Agent module - The exploration loop and its per-mode configuration.
"""

from .explorer import (
    ExplorationLoop,
    ExplorationOutcome,
    ExplorationState,
    StepRecord,
    FALLBACK_NOTE,
)
from .modes import ModeProfile, MODE_PROFILES, profile_for, final_answer_description
from .answers import parse_answer, extract_json_object


__all__ = [
    "ExplorationLoop",
    "ExplorationOutcome",
    "ExplorationState",
    "StepRecord",
    "FALLBACK_NOTE",
    "ModeProfile",
    "MODE_PROFILES",
    "profile_for",
    "final_answer_description",
    "parse_answer",
    "extract_json_object",
]
