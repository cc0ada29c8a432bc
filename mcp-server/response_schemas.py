"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to keep the calling agent's context
small. Plan files under data/sessions/ are NOT affected, only MCP
return values.

Move lists are rendered as PGN move text (1.e4 e5 2.Nf3 ...), which
reads naturally for an LLM agent.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session(state: dict) -> dict:
    """Minify a session state dict for MCP response.

    Compacts the move list to a PGN string and replaces the legal move
    list with its count.

    Args:
        state: Full session state dict (as produced by _build_session_state).

    Returns:
        Minified dict.
    """
    result = {}

    for key in (
        "session_id", "fen", "last_move_san", "phase", "side_to_move",
        "engine_color", "strategy", "is_game_over", "result",
    ):
        if key in state:
            result[key] = state[key]

    move_list = state.get("move_list", [])
    if isinstance(move_list, list):
        result["move_list"] = _moves_to_pgn_string(move_list)
    else:
        result["move_list"] = move_list

    legal_moves = state.get("legal_moves", [])
    result["legal_moves_count"] = len(legal_moves) if isinstance(legal_moves, list) else 0

    opening = state.get("current_opening")
    result["current_opening"] = opening.get("name") if isinstance(opening, dict) else None

    return result


def minify_plan(plan: dict | None) -> dict | None:
    """Keep the actionable parts of a plan: goal, key squares, priorities."""
    if plan is None:
        return None
    return {
        "primary_goal": plan.get("primary_goal"),
        "key_squares": plan.get("key_squares", []),
        "move_priorities": plan.get("move_priorities", [])[:3],
        "phase_at_creation": plan.get("phase_at_creation"),
        "created_at_ply": plan.get("created_at_ply"),
    }


def minify_decision(decision: dict, full_plan: bool = False) -> dict:
    """Minify a DecisionResult dict for MCP response.

    Attempts are reduced to move/score/approved, empty warnings and a
    null opening are dropped, and the plan is shortened unless
    ``full_plan`` is set (stateless callers echo it back verbatim).

    Args:
        decision: Full ``DecisionResult.to_dict()`` output.
        full_plan: Keep the whole plan dict.

    Returns:
        Minified dict.
    """
    result = {}

    for key in (
        "move", "rationale", "resulting_fen", "phase", "is_check",
        "is_checkmate", "is_stalemate", "is_terminal", "strategy",
        "iterations", "fallback_used", "forced",
    ):
        if key in decision:
            result[key] = decision[key]

    attempts = decision.get("attempts")
    if isinstance(attempts, list):
        result["attempts"] = [
            {"move": a.get("move"), "score": a.get("score"), "approved": a.get("approved")}
            for a in attempts
        ]

    plan = decision.get("plan")
    result["plan"] = plan if full_plan else minify_plan(plan)

    if decision.get("opening"):
        result["opening"] = decision["opening"]
    if decision.get("warnings"):
        result["warnings"] = decision["warnings"]

    # Removed fields: oracle_move, full attempt rationales and suggestions

    return result


def minify_scored_moves(candidates: list[dict], limit: int) -> list[dict]:
    """Reduce scored candidates to notation, score and description."""
    return [
        {"move": c.get("notation"), "score": c.get("score"), "description": c.get("description")}
        for c in candidates[:limit]
    ]


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str]) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'
    """
    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}.{move}")
        else:
            parts.append(move)
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_SCHEMA = {
    "session_id": str,
    "fen": str,
    "last_move_san": (str, type(None)),
    "phase": str,
    "side_to_move": str,
    "engine_color": (str, type(None)),
    "strategy": str,
    "is_game_over": bool,
    "result": (str, type(None)),
    "move_list": str,
    "legal_moves_count": int,
    "current_opening": (str, type(None)),
}

DECISION_SCHEMA = {
    "move": str,
    "rationale": str,
    "resulting_fen": str,
    "phase": str,
    "is_check": bool,
    "is_checkmate": bool,
    "is_stalemate": bool,
    "is_terminal": bool,
    "strategy": str,
    "iterations": int,
    "fallback_used": bool,
    "forced": bool,
    "plan": (dict, type(None)),
}

PLAN_SCHEMA = {
    "plan": (dict, type(None)),
    "reasoning": str,
    "last_refreshed_at_ply": int,
}

SCORED_MOVES_SCHEMA = {
    "fen": str,
    "phase": str,
    "moves": list,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when STRATEGIST_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("STRATEGIST_VALIDATE") != "1":
        return []

    if not isinstance(response, dict):
        return [f"Response is not a dict: {type(response).__name__}"]

    errors = []
    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        types = expected_types if isinstance(expected_types, tuple) else (expected_types,)
        # bool is an int subclass; keep int fields strict
        if int in types and bool not in types and isinstance(value, bool):
            errors.append(f"Key '{key}': expected int, got bool")
        elif not isinstance(value, types):
            type_names = ", ".join(t.__name__ for t in types)
            errors.append(f"Key '{key}': expected ({type_names}), got {type(value).__name__}")

    return errors
