"""MCP server for the chess strategist.

Exposes the LLM-driven decision engine as FastMCP tools. Sessions are
kept in memory keyed by UUID; each session owns a board, its SAN move
history and a decision engine whose strategic plan is persisted to
data/sessions/<session_id>/tactical-plan.json.
"""

from __future__ import annotations

import sys
import uuid
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

import chess
from mcp.server.fastmcp import FastMCP

from strategist.config import STRATEGIES, EngineConfig
from strategist.engine import DecisionEngine, check_position, load_board, read_prior_plan
from strategist.errors import INVALID_REQUEST, ORACLE_UNAVAILABLE, DecisionError
from strategist.log import get_logger, setup_logging
from strategist.oracle import GeminiOracle, Oracle, OracleError
from strategist.phase import board_phase, ply_from_board
from strategist.plan import JsonPlanStore, StrategicPlanCache
from strategist.prompts import side_name
from strategist.scoring import score_moves as _score_moves

from response_schemas import (  # noqa: E402
    minify_decision,
    minify_plan,
    minify_scored_moves,
    minify_session,
)

logger = get_logger("mcp")

mcp = FastMCP("chess-strategist")

# In-memory session store: session_id -> {engine, board, history, metadata}
_sessions: dict[str, dict] = {}

_config = EngineConfig.from_env()
_DATA_DIR = _PROJECT_ROOT / _config.data_dir

# Created on first use so the server starts without an API key
_oracle: Oracle | None = None


def _get_oracle() -> Oracle:
    global _oracle
    if _oracle is None:
        _oracle = GeminiOracle(_config.model, _config.api_key, _config.oracle_timeout)
    return _oracle


def _session_dir(session_id: str) -> Path:
    return _DATA_DIR / "sessions" / session_id


def _build_session_state(session_id: str, session: dict) -> dict:
    """Build a full state dict from the in-memory session record.

    Args:
        session_id: UUID of the session.
        session: Internal session record.

    Returns:
        Dict with position, history, phase and game status.
    """
    board: chess.Board = session["board"]
    engine: DecisionEngine = session["engine"]
    history: list[str] = session["history"]

    return {
        "session_id": session_id,
        "fen": board.fen(),
        "move_list": list(history),
        "last_move_san": history[-1] if history else None,
        "phase": engine.phase_of(board, ply_from_board(board)).value,
        "side_to_move": side_name(board.turn),
        "engine_color": engine.config.engine_color,
        "strategy": engine.config.strategy,
        "is_game_over": board.is_game_over(),
        "result": board.result() if board.is_game_over() else None,
        "legal_moves": [board.san(m) for m in board.legal_moves],
        "current_opening": engine.book.identify_opening(history),
    }


def _get_session(session_id: str) -> dict | None:
    return _sessions.get(session_id)


def _session_not_found(session_id: str) -> dict:
    return {"error": f"Session not found: {session_id}"}


def _unknown_strategy(strategy: str) -> dict:
    return DecisionError(
        INVALID_REQUEST, f"Unknown strategy: {strategy}. Expected one of {list(STRATEGIES)}",
    ).to_dict()


# ---------------------------------------------------------------------------
# Session tools
# ---------------------------------------------------------------------------


@mcp.tool()
def new_session(
    engine_color: str | None = None,
    strategy: str | None = None,
    starting_fen: str | None = None,
) -> dict:
    """Start a new game session for the decision engine.

    Args:
        engine_color: 'white' or 'black' to restrict the engine to one side,
            or None to let it move for whichever side is to move.
        strategy: 'single' or 'critic'. Defaults to the configured strategy.
        starting_fen: Optional custom starting position FEN.

    Returns:
        Session state dict with the initial position.
    """
    try:
        config = _config.with_overrides(engine_color=engine_color, strategy=strategy)
    except ValueError as exc:
        return DecisionError(INVALID_REQUEST, str(exc)).to_dict()

    fen = starting_fen or chess.STARTING_FEN
    try:
        board = load_board(fen)
    except DecisionError as exc:
        return exc.to_dict()

    try:
        oracle = _get_oracle()
    except OracleError as exc:
        return DecisionError(ORACLE_UNAVAILABLE, str(exc)).to_dict()

    session_id = str(uuid.uuid4())
    cache = StrategicPlanCache(
        oracle,
        JsonPlanStore(_session_dir(session_id)),
        refresh_interval=config.refresh_interval,
    )
    session = {
        "engine": DecisionEngine(oracle, config, plan_cache=cache),
        "board": board,
        "starting_fen": fen,
        "history": [],
    }
    _sessions[session_id] = session
    logger.info("New session %s (%s, engine plays %s)", session_id, config.strategy,
                config.engine_color or "either side")
    return minify_session(_build_session_state(session_id, session))


@mcp.tool()
def make_move(session_id: str, move: str) -> dict:
    """Play a move for the opponent of the engine.

    Args:
        session_id: UUID of the session.
        move: Move in SAN (e.g. 'e4', 'Nf3', 'O-O') or UCI notation.

    Returns:
        Updated session state dict after the move.
    """
    session = _get_session(session_id)
    if session is None:
        return _session_not_found(session_id)

    board: chess.Board = session["board"]
    if board.is_game_over():
        return {"error": f"Game is already over. Result: {board.result()}"}

    try:
        chess_move = board.parse_san(move)
    except ValueError:
        try:
            chess_move = chess.Move.from_uci(move)
        except ValueError:
            chess_move = None

    if chess_move is None or chess_move not in board.legal_moves:
        legal = [board.san(m) for m in board.legal_moves]
        return {"error": f"Illegal move: {move}. Legal moves: {legal}"}

    session["history"].append(board.san(chess_move))
    board.push(chess_move)
    return minify_session(_build_session_state(session_id, session))


@mcp.tool()
def decide_move(session_id: str, strategy: str | None = None) -> dict:
    """Have the decision engine choose and play a move in the session.

    Args:
        session_id: UUID of the session.
        strategy: Optional per-call override: 'single' or 'critic'.

    Returns:
        Minified decision dict plus the updated move list, or
        {"error": category, "message": detail} on failure.
    """
    session = _get_session(session_id)
    if session is None:
        return _session_not_found(session_id)
    if strategy is not None and strategy not in STRATEGIES:
        return _unknown_strategy(strategy)

    board: chess.Board = session["board"]
    engine: DecisionEngine = session["engine"]
    try:
        result = engine.decide(
            board.fen(),
            session["history"],
            ply_from_board(board),
            strategy=strategy,
        )
    except DecisionError as exc:
        return exc.to_dict()

    session["history"].append(result.move)
    board.push_san(result.move)

    response = minify_decision(result.to_dict())
    response["session_id"] = session_id
    response["move_list"] = minify_session(_build_session_state(session_id, session))["move_list"]
    return response


@mcp.tool()
def decide_position(
    fen: str,
    move_history: list[str] | None = None,
    ply_count: int | None = None,
    prior_plan: dict | None = None,
    strategy: str | None = None,
) -> dict:
    """Choose a move for any position without a session.

    The returned plan is complete so a stateless caller can pass it back
    as ``prior_plan`` on its next call.

    Args:
        fen: Position to move in.
        move_history: SAN moves that led to the position.
        ply_count: Ply count of the position (defaults to history length).
        prior_plan: Plan dict returned by an earlier call.
        strategy: 'single' or 'critic'.

    Returns:
        Minified decision dict with the full plan, or an error dict.
    """
    if strategy is not None and strategy not in STRATEGIES:
        return _unknown_strategy(strategy)

    # Input errors are reported before the oracle is built
    try:
        check_position(load_board(fen), _config.engine_turn)
        seed = read_prior_plan(prior_plan)
        engine = DecisionEngine(_get_oracle(), _config)
        result = engine.decide(fen, move_history, ply_count, prior_plan=seed, strategy=strategy)
    except DecisionError as exc:
        return exc.to_dict()
    except OracleError as exc:
        return DecisionError(ORACLE_UNAVAILABLE, str(exc)).to_dict()
    return minify_decision(result.to_dict(), full_plan=True)


# ---------------------------------------------------------------------------
# Plan tools
# ---------------------------------------------------------------------------


def _plan_response(engine: DecisionEngine, warning: str | None = None) -> dict:
    cache = engine.plan_cache
    response = {
        "plan": minify_plan(cache.plan.to_dict()) if cache.plan is not None else None,
        "reasoning": cache.reasoning,
        "last_refreshed_at_ply": cache.last_refreshed_at_ply,
    }
    if warning:
        response["warning"] = warning
    return response


@mcp.tool()
def get_plan(session_id: str) -> dict:
    """Get the session's current strategic plan without regenerating it.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the plan (or None), its reasoning and refresh ply.
    """
    session = _get_session(session_id)
    if session is None:
        return _session_not_found(session_id)
    return _plan_response(session["engine"])


@mcp.tool()
def refresh_plan(session_id: str) -> dict:
    """Regenerate the session's strategic plan now.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the new plan; a failed regeneration keeps the previous
        (or neutral) plan and adds a warning.
    """
    session = _get_session(session_id)
    if session is None:
        return _session_not_found(session_id)

    board: chess.Board = session["board"]
    engine: DecisionEngine = session["engine"]
    _, warning = engine.current_plan(
        board.fen(), session["history"], ply_from_board(board), force=True,
    )
    return _plan_response(engine, warning)


@mcp.tool()
def reset_session(session_id: str) -> dict:
    """Reset a session to its starting position and clear its plan.

    Args:
        session_id: UUID of the session.

    Returns:
        Session state dict at the starting position.
    """
    session = _get_session(session_id)
    if session is None:
        return _session_not_found(session_id)

    session["board"] = chess.Board(session["starting_fen"])
    session["history"] = []
    session["engine"].plan_cache.clear()
    return minify_session(_build_session_state(session_id, session))


# ---------------------------------------------------------------------------
# Analysis tools
# ---------------------------------------------------------------------------


@mcp.tool()
def score_moves(fen: str, limit: int = 10) -> dict:
    """Score every legal move of a position with the static heuristic.

    Does not call the reasoning oracle.

    Args:
        fen: Position to score.
        limit: Maximum number of moves to return (best first).

    Returns:
        Dict with fen, phase and the scored moves.
    """
    try:
        board = load_board(fen)
    except DecisionError as exc:
        return exc.to_dict()

    phase = board_phase(
        board,
        opening_max_ply=_config.opening_max_ply,
        endgame_material=_config.endgame_material,
    )
    candidates = [c.to_dict() for c in _score_moves(board)]
    return {
        "fen": board.fen(),
        "phase": phase.value,
        "moves": minify_scored_moves(candidates, max(1, limit)),
    }


if __name__ == "__main__":
    setup_logging()
    mcp.run()
