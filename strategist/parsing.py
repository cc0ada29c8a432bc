"""Defensive parsers for free-form oracle output.

The oracle is asked for fixed markers (``MOVE:``, ``REASONING:``,
``SCORE:``, ``APPROVED:``) or a JSON plan, but adherence is not
guaranteed. Decision parsing returns a ParseError value instead of
raising, so the retry loop stays a plain function of the reply text.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from strategist.models import Evaluation, GamePhase, StrategicPlan

_MOVE_RE = re.compile(r"\bMOVE[\s*]*[:\-]\s*(.+)", re.IGNORECASE)
_REASONING_RE = re.compile(r"\bREASONING[\s*]*[:\-]\s*(.+)", re.IGNORECASE | re.DOTALL)
_SCORE_RE = re.compile(r"\bSCORE[\s*]*[:\-][\s*\[]*(\d+(?:\.\d+)?)", re.IGNORECASE)
_APPROVED_RE = re.compile(r"\bAPPROVED[\s*]*[:\-][\s*\[]*(true|false|yes|no)\b", re.IGNORECASE)
_SUGGESTIONS_RE = re.compile(r"\bSUGGESTIONS[\s*]*[:\-]\s*(.+)", re.IGNORECASE | re.DOTALL)
# Markers that end a free-text section
_NEXT_MARKER_RE = re.compile(
    r"^[\s*]*(MOVE|REASONING|SCORE|APPROVED|SUGGESTIONS)[\s*]*[:\-]",
    re.IGNORECASE | re.MULTILINE,
)
_MOVE_NUMBER_RE = re.compile(r"^\d+\s*\.+\s*")
_DECORATION = "*`'\"[](){}<>"
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BARE_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)

_NO_REASONING = "No reasoning provided"
DEFAULT_CRITIC_SCORE = 5
APPROVAL_THRESHOLD = 7


@dataclass(frozen=True)
class ParsedDecision:
    notation: str
    rationale: str


@dataclass(frozen=True)
class ParseError:
    reason: str
    raw: str


class PlanParseError(ValueError):
    """The oracle reply did not contain a usable plan."""


def _clean_notation(token: str) -> str:
    """Strip markdown and punctuation around a move token.

    Only decoration is removed; the notation itself is compared exactly
    against the legal set afterwards.
    """
    token = _MOVE_NUMBER_RE.sub("", token.strip().strip(_DECORATION + " "))
    words = token.split()
    if not words:
        return ""
    return words[0].strip(_DECORATION).rstrip(".,;:!?")


def _section(match: re.Match | None) -> str | None:
    """Return a marker's text up to the next marker."""
    if match is None:
        return None
    text = match.group(1)
    following = _NEXT_MARKER_RE.search(text)
    if following:
        text = text[: following.start()]
    text = text.strip().lstrip("*").strip()
    return text or None


def parse_decision(text: str | None) -> ParsedDecision | ParseError:
    """Extract the move and rationale from a ``MOVE:/REASONING:`` reply.

    Args:
        text: Raw oracle reply.

    Returns:
        ParsedDecision, or ParseError when no move token can be found.
    """
    if not text or not text.strip():
        return ParseError("empty response", text or "")

    move_match = _MOVE_RE.search(text)
    if move_match is None:
        return ParseError("no MOVE marker in response", text)

    notation = _clean_notation(move_match.group(1))
    if not notation:
        return ParseError("MOVE marker without a move", text)

    rationale = _section(_REASONING_RE.search(text)) or _NO_REASONING
    return ParsedDecision(notation=notation, rationale=rationale)


def parse_evaluation(text: str | None) -> Evaluation:
    """Parse a critic reply into an Evaluation.

    A missing score defaults to 5. An explicit APPROVED flag wins over
    the score; without one, scores of 7 and above are approved. Scores
    are clamped to 1..10.
    """
    text = text or ""

    score_match = _SCORE_RE.search(text)
    score = int(float(score_match.group(1))) if score_match else DEFAULT_CRITIC_SCORE
    score = max(1, min(10, score))

    approved_match = _APPROVED_RE.search(text)
    if approved_match:
        approved = approved_match.group(1).lower() in ("true", "yes")
    else:
        approved = score >= APPROVAL_THRESHOLD

    rationale = _section(_REASONING_RE.search(text)) or _NO_REASONING
    suggestions_text = _section(_SUGGESTIONS_RE.search(text))
    suggestions = [suggestions_text] if suggestions_text else []

    return Evaluation(
        approved=approved,
        score=score,
        rationale=rationale,
        suggestions=suggestions,
    )


def _string_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if str(v).strip()]
    raise PlanParseError(f"Expected a list of strings, got {type(value).__name__}")


def _pick(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_plan(text: str | None, phase: GamePhase, ply: int) -> tuple[StrategicPlan, str]:
    """Parse a JSON strategy reply into a StrategicPlan.

    Accepts a fenced ```json block or the outermost ``{...}`` in the
    reply. The strategy may be nested under ``"strategy"`` or be the
    top-level object. Both the camelCase keys the prompt asks for and
    snake_case keys are accepted.

    Args:
        text: Raw oracle reply.
        phase: Phase the plan is created in.
        ply: Ply count the plan is created at.

    Returns:
        Tuple of (plan, reasoning text).

    Raises:
        PlanParseError: If no JSON object or no primary goal is present.
    """
    if not text or not text.strip():
        raise PlanParseError("empty plan response")

    fenced = _FENCED_JSON_RE.search(text)
    bare = _BARE_JSON_RE.search(text)
    candidate = fenced.group(1) if fenced else bare.group(0) if bare else None
    if candidate is None:
        raise PlanParseError("no JSON object in plan response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"invalid plan JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PlanParseError("plan JSON is not an object")

    strategy = data.get("strategy", data)
    if not isinstance(strategy, dict):
        raise PlanParseError("plan 'strategy' is not an object")

    goal = _pick(strategy, "primaryGoal", "primary_goal")
    if not goal:
        raise PlanParseError("plan has no primary goal")

    plan = StrategicPlan(
        primary_goal=goal,
        tactical_patterns=_string_list(strategy.get("tacticalPatterns", strategy.get("tactical_patterns"))),
        coordination_note=_pick(strategy, "coordinationNote", "pieceCoordination", "coordination_note"),
        key_squares=_string_list(strategy.get("keySquares", strategy.get("key_squares"))),
        pawn_plan=_pick(strategy, "pawnPlan", "pawnStructure", "pawn_plan"),
        threat_note=_pick(strategy, "threatNote", "opponentThreats", "threat_note"),
        move_priorities=_string_list(strategy.get("movePriorities", strategy.get("move_priorities"))),
        phase_at_creation=phase,
        created_at_ply=ply,
    )
    reasoning = data.get("reasoning") if isinstance(data.get("reasoning"), str) else ""
    return plan, reasoning
