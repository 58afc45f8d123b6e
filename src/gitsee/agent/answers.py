"""
Interpretation of submitted exploration answers.

Structured modes expect a JSON object; anything that does not parse degrades
to a record carrying the raw text as its summary with empty collections, so
callers always receive the documented shape.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .modes import AnswerShape, ModeProfile
from ..models import FeaturesSummary, FirstPassSummary

logger = logging.getLogger(__name__)


def extract_json_blocks_from_text(text: str) -> List[str]:
    """Extract all fenced code blocks from a text string."""
    lines = text.strip().split("\n")

    start_index: Optional[int] = None
    matches: List[str] = []

    for i, line in enumerate(lines):
        if line.strip().startswith("```"):
            if start_index is None:
                start_index = i + 1
            else:
                matches.append("\n".join(lines[start_index:i]))
                start_index = None

    return matches


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Find a JSON object in text.

    Tries the whole text first, then each fenced block in order.
    """
    candidates = [text.strip()] + extract_json_blocks_from_text(text)
    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def parse_answer(profile: ModeProfile, raw: str) -> Any:
    """
    Turn submitted text into the mode's result payload.

    Returns:
        dict for structured modes, the raw text otherwise
    """
    if profile.answer_shape == AnswerShape.RAW_TEXT:
        return raw

    parsed = extract_json_object(raw)
    if parsed is None:
        logger.warning(f"Failed to parse {profile.mode.value} answer as JSON, treating as raw summary")
        parsed = {}

    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary:
        summary = raw

    if profile.answer_shape == AnswerShape.FIRST_PASS:
        return FirstPassSummary(
            summary=summary,
            key_files=_string_list(parsed.get("key_files")),
            infrastructure=_string_list(parsed.get("infrastructure")),
            dependencies=_string_list(parsed.get("dependencies")),
            user_stories=_string_list(parsed.get("user_stories")),
            pages=_string_list(parsed.get("pages")),
        ).to_dict()

    return FeaturesSummary(
        summary=summary,
        key_files=_string_list(parsed.get("key_files")),
        features=_string_list(parsed.get("features")),
    ).to_dict()
