"""Prompt construction and response parsing shared by the oracle clients."""

import json
import logging
import re

from prediction_ledger.matching.identity import SCHEDULE_TIMEZONE
from prediction_ledger.models.document import ContextDocument
from prediction_ledger.models.prediction import (
    BonusPrediction,
    BonusQuestion,
    Match,
    Prediction,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_SCORE_RE = re.compile(r"(\d+)\s*[-:]\s*(\d+)")

_MAX_GOALS = 10

MATCH_SYSTEM = """\
You are a football prediction expert. Predict the final score of the match \
using the context documents provided. Weigh home advantage, recent form, \
head-to-head results and the community scoring rules.

Return ONLY a JSON object:
{"home": <int>, "away": <int>, "justification": "<one short paragraph>"}\
"""

BONUS_SYSTEM = """\
You are a football expert answering a season bonus question. Choose answers \
only from the listed option IDs and respect the maximum number of selections. \
Use the context documents provided.

Return ONLY a JSON object:
{"selected_option_ids": ["<option id>", ...]}\
"""


def _render_documents(context_documents: list[ContextDocument]) -> str:
    parts = []
    for document in context_documents:
        parts.append(f"--- {document.name} ---\n{document.content}")
    return "\n\n".join(parts)


def build_match_prompt(match: Match, context_documents: list[ContextDocument]) -> str:
    """User prompt for a match prediction."""
    kickoff = match.starts_at.astimezone(SCHEDULE_TIMEZONE).strftime("%Y-%m-%d %H:%M")
    parts = [f"Match: {match.home_team} vs {match.away_team}", f"Kick-off: {kickoff}"]
    if match.matchday is not None:
        parts.append(f"Matchday: {match.matchday}")
    if context_documents:
        parts.append(f"\nContext documents:\n\n{_render_documents(context_documents)}")
    return "\n".join(parts)


def build_bonus_prompt(question: BonusQuestion, context_documents: list[ContextDocument]) -> str:
    """User prompt for a bonus question."""
    parts = [f"Question: {question.text}", f"Maximum selections: {question.max_selections}"]
    parts.append("Options:")
    for option in question.options:
        parts.append(f"  {option.id}: {option.text}")
    if context_documents:
        parts.append(f"\nContext documents:\n\n{_render_documents(context_documents)}")
    return "\n".join(parts)


def _extract_object(raw: str) -> dict[str, object] | None:
    fence_match = _FENCE_RE.search(raw)
    if fence_match:
        raw = fence_match.group(1)
    obj_match = _JSON_OBJECT_RE.search(raw)
    if not obj_match:
        return None
    try:
        data = json.loads(obj_match.group(0))
    except json.JSONDecodeError:
        logger.warning("Malformed JSON in oracle response")
        return None
    return data if isinstance(data, dict) else None


def parse_match_prediction(raw: str) -> Prediction | None:
    """Parse a score from an oracle response.

    Accepts the JSON object format, falling back to a bare "2-1" or "2:1".
    Scores above 10 goals are rejected.
    """
    home: object = None
    away: object = None
    justification = None
    data = _extract_object(raw)
    if data is not None:
        home = data.get("home", data.get("home_goals"))
        away = data.get("away", data.get("away_goals"))
        raw_justification = data.get("justification")
        justification = str(raw_justification) if raw_justification else None
    if not isinstance(home, int) or not isinstance(away, int):
        score_match = _SCORE_RE.search(raw)
        if not score_match:
            logger.warning("No score found in oracle response")
            return None
        home, away = int(score_match.group(1)), int(score_match.group(2))

    if not (0 <= home <= _MAX_GOALS and 0 <= away <= _MAX_GOALS):
        logger.warning("Score out of range from oracle: %s-%s", home, away)
        return None
    return Prediction(home_goals=home, away_goals=away, justification=justification)


def parse_bonus_prediction(raw: str, question: BonusQuestion) -> BonusPrediction | None:
    """Parse selected option IDs, keeping only valid ones up to max_selections."""
    data = _extract_object(raw)
    if data is None:
        logger.warning("No JSON object found in bonus response")
        return None
    selected = data.get("selected_option_ids", data.get("selectedOptionIds"))
    if not isinstance(selected, list):
        return None

    valid_ids = {option.id for option in question.options}
    chosen: list[str] = []
    for option_id in selected:
        option_id = str(option_id)
        if option_id in valid_ids and option_id not in chosen:
            chosen.append(option_id)
    if not chosen:
        logger.warning("No valid option IDs in bonus response for %r", question.text)
        return None
    return BonusPrediction(selected_option_ids=chosen[: question.max_selections])
