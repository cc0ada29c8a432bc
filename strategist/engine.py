"""Decision engine: validates a position, gathers context and runs a decision protocol.

Typical use::

    engine = DecisionEngine(GeminiOracle(), EngineConfig.from_env())
    result = engine.decide(fen, move_history=["e4", "e5"])
    print(result.move, result.rationale)

Input errors (bad FEN, no legal moves, game over, wrong side) raise
DecisionError before the oracle is ever called. Oracle trouble is
absorbed by the retry loops; if they run dry the engine either plays a
flagged fallback move or raises ``exhausted-retries`` /
``oracle-unavailable``, depending on ``fallback_on_exhaustion``.
"""

from __future__ import annotations

import chess

from strategist.config import STRATEGIES, EngineConfig
from strategist.critic import NoProposal, run_proposer_critic
from strategist.errors import (
    ALREADY_TERMINAL,
    EXHAUSTED_RETRIES,
    INVALID_REQUEST,
    INVALID_POSITION,
    NO_LEGAL_MOVES,
    NOT_TO_MOVE,
    ORACLE_UNAVAILABLE,
    DecisionError,
)
from strategist.log import get_logger
from strategist.models import DecisionResult, GamePhase, MoveCandidate, StrategicPlan
from strategist.narrative import summarize_history
from strategist.openings import OpeningBook
from strategist.oracle import Oracle
from strategist.phase import board_phase, ply_from_board
from strategist.plan import StrategicPlanCache
from strategist.prompts import DecisionContext, position_notes, render_board, side_name
from strategist.retry import run_single_role
from strategist.scoring import score_moves

logger = get_logger(__name__)

FORCED_RATIONALE = "Only legal move in the position."
FALLBACK_RATIONALE = "No valid move from the oracle; playing the highest-scored heuristic move."


def load_board(fen: str | None) -> chess.Board:
    """Parse and sanity-check a FEN.

    Raises:
        DecisionError: ``invalid-position`` if the FEN is missing, malformed
            or describes an impossible position.
    """
    if not fen or not fen.strip():
        raise DecisionError(INVALID_POSITION, "A FEN position is required")
    try:
        board = chess.Board(fen.strip())
    except ValueError as exc:
        raise DecisionError(INVALID_POSITION, f"Invalid FEN: {exc}") from exc
    if not board.is_valid():
        raise DecisionError(INVALID_POSITION, f"Illegal position: {board.status()!r}")
    return board


def _outcome_label(board: chess.Board) -> str:
    outcome = board.outcome()
    if outcome is None:
        return "game over"
    return outcome.termination.name.lower().replace("_", " ")


def check_position(board: chess.Board, engine_turn: chess.Color | None = None) -> None:
    """Reject positions the engine must not move in.

    Order: no legal moves (checkmate or stalemate), game already over
    by rule, wrong side to move.

    Args:
        board: Position to check.
        engine_turn: Side the engine plays, or None for either side.

    Raises:
        DecisionError: With the matching input-error category.
    """
    if not any(board.legal_moves):
        raise DecisionError(
            NO_LEGAL_MOVES,
            f"{side_name(board.turn).capitalize()} has no legal moves ({_outcome_label(board)})",
        )
    if board.is_game_over():
        raise DecisionError(ALREADY_TERMINAL, f"Game is already over ({_outcome_label(board)})")
    if engine_turn is not None and board.turn != engine_turn:
        raise DecisionError(
            NOT_TO_MOVE,
            f"Not {side_name(engine_turn)}'s turn; {side_name(board.turn)} is to move",
        )


def read_prior_plan(prior_plan: StrategicPlan | dict | None) -> StrategicPlan | None:
    """Accept a caller-echoed plan as a StrategicPlan or its dict form.

    Raises:
        DecisionError: ``invalid-request`` if the dict cannot be read as a plan.
    """
    if prior_plan is None or isinstance(prior_plan, StrategicPlan):
        return prior_plan
    if not isinstance(prior_plan, dict):
        raise DecisionError(
            INVALID_REQUEST, f"prior_plan must be an object, got {type(prior_plan).__name__}",
        )
    try:
        return StrategicPlan.from_dict(prior_plan)
    except (TypeError, ValueError) as exc:
        raise DecisionError(INVALID_REQUEST, f"Invalid prior_plan: {exc}") from exc


class DecisionEngine:
    """Chooses one legal move per call for the side to move.

    Args:
        oracle: Reasoning oracle used for decisions, critic reviews,
            narratives and plans.
        config: Engine tunables; defaults to ``EngineConfig()``.
        plan_cache: Session plan cache; a memory-backed one is created if None.
        book: Opening book; the built-in catalog if None.
    """

    def __init__(
        self,
        oracle: Oracle,
        config: EngineConfig | None = None,
        plan_cache: StrategicPlanCache | None = None,
        book: OpeningBook | None = None,
    ) -> None:
        self.oracle = oracle
        self.config = config if config is not None else EngineConfig()
        self.plan_cache = (
            plan_cache if plan_cache is not None
            else StrategicPlanCache(oracle, refresh_interval=self.config.refresh_interval)
        )
        self.book = book if book is not None else OpeningBook()

    # ------------------------------------------------------------------
    # Input checks
    # ------------------------------------------------------------------

    def check_position(self, board: chess.Board) -> None:
        """Reject positions the engine must not move in (see ``check_position``)."""
        check_position(board, self.config.engine_turn)

    def _ply(self, board: chess.Board, history: list[str], ply_count: int | None) -> int:
        if ply_count is not None:
            return ply_count
        if history:
            return len(history)
        return ply_from_board(board)

    def phase_of(self, board: chess.Board, ply: int) -> GamePhase:
        return board_phase(
            board,
            ply,
            opening_max_ply=self.config.opening_max_ply,
            endgame_material=self.config.endgame_material,
        )

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def current_plan(
        self,
        fen: str,
        move_history: list[str] | None = None,
        ply_count: int | None = None,
        *,
        force: bool = False,
    ) -> tuple[StrategicPlan, str | None]:
        """Return the session plan for a position, refreshing it if due.

        Args:
            fen: Position the plan is for.
            move_history: SAN moves played so far.
            ply_count: Ply of the position; derived like ``decide`` if None.
            force: Regenerate regardless of the refresh cadence.

        Returns:
            Tuple of (plan, warning or None).

        Raises:
            DecisionError: ``invalid-position`` for a bad FEN.
        """
        board = load_board(fen)
        history = list(move_history or [])
        ply = self._ply(board, history, ply_count)
        phase = self.phase_of(board, ply)
        if force:
            plan = self.plan_cache.refresh(board, history, ply, phase=phase)
        else:
            plan = self.plan_cache.get(board, history, ply, phase=phase)
        return plan, self.plan_cache.last_warning

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def decide(
        self,
        fen: str,
        move_history: list[str] | None = None,
        ply_count: int | None = None,
        prior_plan: StrategicPlan | dict | None = None,
        strategy: str | None = None,
    ) -> DecisionResult:
        """Choose a move for the side to move in ``fen``.

        Args:
            fen: Position to move in.
            move_history: SAN moves that led to the position, oldest first.
            ply_count: Ply of the position. Defaults to ``len(move_history)``,
                or the FEN move counters when there is no history.
            prior_plan: Plan echoed back by a stateless caller; seeds an
                empty plan cache.
            strategy: ``"single"`` or ``"critic"``; the configured default if None.

        Returns:
            DecisionResult for a move in the legal set.

        Raises:
            DecisionError: On input errors, or when no move could be chosen
                and fallback is disabled.
        """
        strategy = strategy or self.config.strategy
        if strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES}, got {strategy!r}")

        board = load_board(fen)
        self.check_position(board)
        seed = read_prior_plan(prior_plan)

        history = list(move_history or [])
        ply = self._ply(board, history, ply_count)
        phase = self.phase_of(board, ply)
        candidates = score_moves(board)
        logger.info(
            "Deciding for %s at ply %d (%s, %d legal moves, %s)",
            side_name(board.turn), ply, phase.value, len(candidates), strategy,
        )

        if seed is not None:
            self.plan_cache.seed(seed)

        opening = self.book.identify_opening(history)
        opening_name = opening["name"] if opening else None

        if len(candidates) == 1 and self.config.short_circuit_forced:
            logger.info("Only one legal move: %s", candidates[0].notation)
            return self._result(
                board, candidates[0], FORCED_RATIONALE, phase, strategy,
                plan=self.plan_cache.plan,
                attempts=[] if strategy == "critic" else None,
                forced=True,
                opening=opening_name,
            )

        warnings: list[str] = []
        recent = history[-self.config.recent_moves:] if self.config.recent_moves else []
        narrative = summarize_history(self.oracle, recent) if self.config.narrate_history else ""

        plan = None
        if self.config.use_plan:
            plan = self.plan_cache.get(board, history, ply, phase=phase, narrative=narrative)
            if self.plan_cache.last_warning:
                warnings.append(self.plan_cache.last_warning)

        context = DecisionContext(
            fen=board.fen(),
            board_display=render_board(board),
            side_to_move=side_name(board.turn),
            phase=phase,
            candidates=candidates,
            recent_moves=recent,
            narrative=narrative,
            plan=plan,
            opening=opening,
            opening_reference=self.book.reference_text() if phase == GamePhase.OPENING else "",
            notes=position_notes(board),
        )

        if strategy == "critic":
            result = self._decide_with_critic(board, context, phase, plan, opening_name)
        else:
            result = self._decide_single(board, context, phase, plan, opening_name)
        result.warnings = warnings + result.warnings
        logger.info(
            "Decided %s after %d iteration(s)%s",
            result.move, result.iterations, " (fallback)" if result.fallback_used else "",
        )
        return result

    def _decide_single(
        self,
        board: chess.Board,
        context: DecisionContext,
        phase: GamePhase,
        plan: StrategicPlan | None,
        opening: str | None,
    ) -> DecisionResult:
        outcome = run_single_role(self.oracle, context, max_attempts=self.config.max_attempts)
        if outcome.accepted:
            return self._result(
                board, outcome.candidate, outcome.rationale, phase, "single",
                plan=plan,
                iterations=outcome.attempts_used,
                oracle_move=outcome.oracle_move,
                opening=opening,
            )

        invalid = ", ".join(outcome.retry.invalid_notations) or "none"
        if outcome.oracle_unavailable:
            category = ORACLE_UNAVAILABLE
            message = f"Oracle failed on all {outcome.attempts_used} attempts"
        else:
            category = EXHAUSTED_RETRIES
            message = f"No legal move after {outcome.attempts_used} attempts (rejected: {invalid})"

        if not self.config.fallback_on_exhaustion:
            raise DecisionError(category, message)

        logger.warning("%s; falling back to %s", message, context.candidates[0].notation)
        return self._result(
            board, context.candidates[0], FALLBACK_RATIONALE, phase, "single",
            plan=plan,
            iterations=outcome.attempts_used,
            fallback_used=True,
            oracle_move=outcome.oracle_move,
            opening=opening,
            warnings=[message],
        )

    def _decide_with_critic(
        self,
        board: chess.Board,
        context: DecisionContext,
        phase: GamePhase,
        plan: StrategicPlan | None,
        opening: str | None,
    ) -> DecisionResult:
        try:
            outcome = run_proposer_critic(
                self.oracle, context, board, max_iterations=self.config.max_iterations,
            )
        except NoProposal as exc:
            category = ORACLE_UNAVAILABLE if exc.oracle_failed else EXHAUSTED_RETRIES
            if not self.config.fallback_on_exhaustion:
                raise DecisionError(category, str(exc)) from exc
            logger.warning("%s; falling back to %s", exc, context.candidates[0].notation)
            return self._result(
                board, context.candidates[0], FALLBACK_RATIONALE, phase, "critic",
                plan=plan,
                attempts=[],
                iterations=0,
                fallback_used=True,
                opening=opening,
                warnings=[str(exc)],
            )

        return self._result(
            board, outcome.candidate, outcome.rationale, phase, "critic",
            plan=plan,
            attempts=outcome.attempts,
            iterations=outcome.iterations,
            fallback_used=outcome.fallback_used,
            oracle_move=outcome.candidate.notation,
            opening=opening,
        )

    def _result(
        self,
        board: chess.Board,
        candidate: MoveCandidate,
        rationale: str,
        phase: GamePhase,
        strategy: str,
        **extra,
    ) -> DecisionResult:
        """Apply the chosen move to a copy of the board and build the response."""
        after = board.copy()
        after.push(chess.Move.from_uci(candidate.uci))
        return DecisionResult(
            move=candidate.notation,
            rationale=rationale,
            resulting_fen=after.fen(),
            phase=phase,
            is_check=after.is_check(),
            is_checkmate=after.is_checkmate(),
            is_stalemate=after.is_stalemate(),
            is_terminal=after.is_game_over(),
            strategy=strategy,
            **extra,
        )
