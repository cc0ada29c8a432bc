"""Recent-move narrative generated by the oracle.

Runs as an independent step before the decision prompt is built. A
failed call never blocks the decision: a plain listing of the moves
is used instead.
"""

from __future__ import annotations

from strategist.log import get_logger
from strategist.oracle import Oracle, OracleError
from strategist.prompts import build_history_prompt

logger = get_logger(__name__)

GAME_START_NARRATIVE = "This is the beginning of the game - no moves have been played yet."


def summarize_history(oracle: Oracle, recent_moves: list[str]) -> str:
    """Ask the oracle what the recent moves are about.

    Args:
        oracle: Reasoning oracle.
        recent_moves: The last few SAN moves, oldest first.

    Returns:
        Narrative text. Never raises on oracle failure.
    """
    if not recent_moves:
        return GAME_START_NARRATIVE

    try:
        return oracle.complete(
            build_history_prompt(recent_moves),
            temperature=0.3,
            max_tokens=300,
        )
    except OracleError as exc:
        logger.warning("History narrative unavailable: %s", exc)
        return (
            f"Recent moves: {', '.join(recent_moves)}. "
            "Unable to provide detailed analysis due to technical issues."
        )
