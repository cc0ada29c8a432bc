"""Prompt construction for the reasoning oracle.

Builds the deterministic text the oracle sees: board rendering, phase
guidance, the scored move list, recent-move narrative, the active plan
and, on retries, feedback about the rejected notation. Every prompt
that asks for a move lists the exact SAN of every move it may choose.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import chess

from strategist.models import (
    AttemptRecord,
    DecisionRequest,
    GamePhase,
    MoveCandidate,
    RetryState,
    StrategicPlan,
)
from strategist.phase import material_sum

# Unicode piece symbols
PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

DECISION_SYSTEM = (
    "You are a chess expert. Always respond in the exact format requested: "
    "MOVE: [notation] REASONING: [analysis]"
)
CRITIC_SYSTEM = (
    "You are a strict chess coach reviewing candidate moves. Always respond with "
    "SCORE, APPROVED, REASONING and SUGGESTIONS lines."
)
PLAN_SYSTEM = "You are a chess strategist. Respond with a single JSON object."

_RESPONSE_FORMAT = """Respond in this exact format:
MOVE: [move notation copied exactly from the list above]
REASONING: [your analysis of why this move is best]

Example:
MOVE: Nf6
REASONING: This develops the knight to a natural square, controls the center and prepares castling."""

OPENING_GUIDANCE = """OPENING PRINCIPLES:
- Develop knights and bishops before moving the same piece twice
- Fight for the central squares e4, d4, e5 and d5
- Castle early to secure the king
- Follow established opening theory; the reference below lists standard lines"""

MIDDLEGAME_GUIDANCE = """MIDDLEGAME STRATEGY:
- Do not chase every capture; a quiet move that builds lasting pressure is often stronger
- Think 3-5 moves ahead: decide which position you want and how your pieces coordinate
- Improve piece placement: rooks to open files, knights to outposts, bishops on long diagonals
- Create weaknesses in the opponent's pawns and restrict their pieces
- Use tactics (forks, pins, skewers, discovered attacks) when they fit the plan
- Create multiple threats so the opponent cannot defend everything"""

ENDGAME_GUIDANCE = """ENDGAME PRINCIPLES:
- Activate the king: centralize it or bring it toward passed pawns
- Create, support and advance passed pawns; rooks belong behind passed pawns
- Use opposition and triangulation in king and pawn endings
- When ahead, trade pieces rather than pawns; when behind, keep pieces and seek counterplay
- Prefer precise technique over flashy moves and watch for stalemate tricks"""

_PHASE_GUIDANCE = {
    GamePhase.OPENING: OPENING_GUIDANCE,
    GamePhase.MIDDLEGAME: MIDDLEGAME_GUIDANCE,
    GamePhase.ENDGAME: ENDGAME_GUIDANCE,
}


def phase_guidance(phase: GamePhase) -> str:
    return _PHASE_GUIDANCE[phase]


def render_board(board: chess.Board) -> str:
    """Render the board as a text grid with rank and file labels (White at bottom)."""
    lines = ["  a b c d e f g h"]
    for rank in range(7, -1, -1):
        row = [str(rank + 1)]
        for file in range(8):
            piece = board.piece_at(chess.square(file, rank))
            row.append(PIECE_SYMBOLS[piece.symbol()] if piece else ".")
        lines.append(" ".join(row) + f" {rank + 1}")
    lines.append("  a b c d e f g h")
    return "\n".join(lines)


def side_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


def position_notes(board: chess.Board) -> list[str]:
    """Static facts about the position for the prompt."""
    white = material_sum(board, chess.WHITE)
    black = material_sum(board, chess.BLACK)
    mover = side_name(board.turn)
    notes = [
        f"Material: white {white}, black {black} (balance {white - black:+d} for white)",
    ]
    if board.is_check():
        notes.append(f"The {mover} king is in check - the move must address it")
    else:
        notes.append(f"The {mover} king is not in check")
    return notes


@dataclass
class DecisionContext:
    """Everything about one decision that does not change between attempts."""

    fen: str
    board_display: str
    side_to_move: str
    phase: GamePhase
    candidates: list[MoveCandidate]
    recent_moves: list[str] = field(default_factory=list)
    narrative: str = ""
    plan: StrategicPlan | None = None
    opening: dict | None = None
    opening_reference: str = ""
    notes: list[str] = field(default_factory=list)

    @property
    def legal_notations(self) -> tuple[str, ...]:
        return tuple(c.notation for c in self.candidates)


def describe_candidate(candidate: MoveCandidate) -> str:
    features = []
    if candidate.gives_mate:
        features.append("checkmate")
    elif candidate.gives_check:
        features.append("check")
    if candidate.is_castling:
        features.append("castling")
    suffix = f" [{', '.join(features)}]" if features else ""
    return f"{candidate.notation} - {candidate.description}{suffix} (heuristic score {candidate.score})"


def format_candidates(candidates: list[MoveCandidate]) -> str:
    return "\n".join(
        f"{i}. {describe_candidate(c)}" for i, c in enumerate(candidates, 1)
    )


def format_plan(plan: StrategicPlan) -> str:
    """Render a plan as a prompt excerpt."""
    lines = [f"Primary goal: {plan.primary_goal}"]
    if plan.tactical_patterns:
        lines.append("Tactical patterns: " + "; ".join(plan.tactical_patterns))
    if plan.coordination_note:
        lines.append(f"Piece coordination: {plan.coordination_note}")
    if plan.key_squares:
        lines.append("Key squares: " + ", ".join(plan.key_squares))
    if plan.pawn_plan:
        lines.append(f"Pawn structure: {plan.pawn_plan}")
    if plan.threat_note:
        lines.append(f"Opponent threats: {plan.threat_note}")
    if plan.move_priorities:
        lines.append("Move priorities: " + "; ".join(plan.move_priorities))
    return "\n".join(lines)


def _context_sections(context: DecisionContext) -> list[str]:
    """Sections shared by the single-role and proposer prompts."""
    recent = ", ".join(context.recent_moves) if context.recent_moves else "Game just started"
    sections = [
        f"Here's the current board position:\n\n{context.board_display}",
        f"Current FEN: {context.fen}\nIt's {context.side_to_move}'s turn to move.",
        f"GAME PHASE: {context.phase.value.upper()}\n"
        f"Recent moves (last {len(context.recent_moves)}): {recent}",
        "POSITION NOTES:\n" + "\n".join(f"- {n}" for n in context.notes),
    ]
    if context.narrative:
        sections.append(f"HISTORICAL MOVE ANALYSIS:\n{context.narrative}")
    if context.plan is not None and context.plan.phase_at_creation == context.phase:
        sections.append(
            "CURRENT STRATEGIC PLAN (keep playing toward it unless the position demands otherwise):\n"
            + format_plan(context.plan)
        )
    return sections


def _phase_sections(context: DecisionContext) -> list[str]:
    sections = [phase_guidance(context.phase)]
    if context.phase == GamePhase.OPENING:
        if context.opening is not None:
            sections.append(
                f"Current opening: {context.opening['name']} - {context.opening['description']}"
            )
        if context.opening_reference:
            sections.append(f"OPENING THEORY REFERENCE:\n{context.opening_reference}")
    return sections


def build_decision_request(context: DecisionContext, state: RetryState) -> DecisionRequest:
    """Build the single-role prompt for the current attempt.

    On retries the previously rejected notations and the literal list of
    legal notations are appended so the oracle can copy one exactly.
    """
    sections = [f"You are a chess expert playing as {context.side_to_move}."]
    sections += _context_sections(context)
    sections.append("Available moves:\n" + format_candidates(context.candidates))
    sections += _phase_sections(context)

    feedback = None
    if state.attempt_index > 0:
        rejected = ", ".join(state.invalid_notations) or "(no move given)"
        if state.last_invalid_notation:
            reason = f"{state.last_invalid_notation} is not a legal move in this position."
        else:
            reason = "the reply did not contain a MOVE line."
        feedback = (
            f"PREVIOUS ATTEMPT REJECTED: {reason}\n"
            f"Rejected so far: {rejected}\n"
            "You must copy one of these notations exactly: "
            + ", ".join(context.legal_notations)
        )
        sections.append(feedback)

    sections.append(_RESPONSE_FORMAT)
    return DecisionRequest(
        prompt="\n\n".join(sections),
        attempt=state.attempt_index + 1,
        phase=context.phase,
        legal_notations=context.legal_notations,
        feedback=feedback,
    )


def build_selector_prompt(
    context: DecisionContext,
    pool: list[MoveCandidate],
    attempts: list[AttemptRecord],
    feedback: str | None = None,
) -> str:
    """Prompt for the proposer: choose one move from the remaining pool."""
    sections = [
        f"You are the Move Selector, a chess expert playing as {context.side_to_move}. "
        "Your job is to choose the BEST move from the available options."
    ]
    sections += _context_sections(context)
    sections.append("Available moves:\n" + format_candidates(pool))

    rejected = [a for a in attempts if not a.evaluation.approved]
    if rejected:
        sections.append(
            "Previously rejected moves (do not propose them again):\n"
            + "\n".join(
                f"- {a.candidate.notation} (score {a.evaluation.score}/10 - {a.evaluation.rationale})"
                for a in rejected
            )
        )
    sections += _phase_sections(context)
    if feedback:
        sections.append(
            f"{feedback}\nYou must copy one of these notations exactly: "
            + ", ".join(c.notation for c in pool)
        )
    sections.append(_RESPONSE_FORMAT)
    return "\n\n".join(sections)


def build_critic_prompt(
    context: DecisionContext,
    candidate: MoveCandidate,
    board_after: chess.Board,
) -> str:
    """Prompt for the critic: judge one candidate, shown one ply ahead."""
    sections = [
        f"You are the Move Evaluator, a chess expert evaluating a candidate move for {context.side_to_move}.",
        f"Current board position:\n\n{context.board_display}",
        f"Candidate move: {candidate.notation} ({candidate.description})",
        f"Board position after the move:\n\n{render_board(board_after)}",
        f"GAME PHASE: {context.phase.value.upper()}",
        phase_guidance(context.phase),
    ]
    if context.plan is not None and context.plan.phase_at_creation == context.phase:
        sections.append("CURRENT STRATEGIC PLAN:\n" + format_plan(context.plan))
    sections.append(
        "Evaluate this move on a scale of 1-10 considering material balance, king safety, "
        "piece activity, pawn structure, tactical soundness and positional value.\n"
        "A move scoring 7+ should be approved, 4-6 needs improvement, 1-3 should be rejected."
    )
    sections.append(
        "Respond in this exact format:\n"
        "SCORE: [number 1-10]\n"
        "APPROVED: [true/false]\n"
        "REASONING: [strengths and weaknesses of the move]\n"
        "SUGGESTIONS: [optional ideas if not approved]"
    )
    return "\n\n".join(sections)


def build_history_prompt(recent_moves: list[str]) -> str:
    """Prompt asking the oracle to narrate recent moves."""
    return (
        f"You are a chess expert analyzing recent moves in a game. "
        f"Here are the last {len(recent_moves)} moves played:\n\n"
        f"Recent moves: {', '.join(recent_moves)}\n\n"
        "Briefly describe:\n"
        "1. What opening or pattern is being played\n"
        "2. The strategic themes behind these moves\n"
        "3. Any tactical motifs you notice\n"
        "4. What each side is trying to achieve\n\n"
        "Keep it concise."
    )


def build_plan_prompt(
    board: chess.Board,
    phase: GamePhase,
    recent_moves: list[str],
    narrative: str,
    prior_plan: StrategicPlan | None,
    ply: int,
) -> str:
    """Prompt asking the oracle for a multi-move strategy as JSON."""
    prior = (
        json.dumps(prior_plan.to_dict(), indent=2)
        if prior_plan is not None else "No previous strategy established"
    )
    example = {
        "strategy": {
            "primaryGoal": "Main strategic objective for the next few moves",
            "tacticalPatterns": ["Specific tactical pattern 1", "Specific tactical pattern 2"],
            "pieceCoordination": "How pieces should work together",
            "keySquares": ["e4", "d5"],
            "pawnStructure": "Pawn structure goals and weaknesses to target",
            "opponentThreats": "What to watch out for from the opponent",
            "movePriorities": ["Priority 1: specific idea", "Priority 2: specific idea"],
        },
        "reasoning": "Why this strategy fits the current position",
    }
    sections = [
        "# TACTICAL STRATEGY ANALYSIS",
        "Develop a strategy for "
        f"{side_name(board.turn)} that will guide the next 3-5 moves.",
        f"FEN: {board.fen()}\nGame phase: {phase.value}\nPly: {ply}\n"
        f"Move history: {' '.join(recent_moves) if recent_moves else '(none)'}",
        f"Board:\n{render_board(board)}",
        "Position notes:\n" + "\n".join(f"- {n}" for n in position_notes(board)),
    ]
    if narrative:
        sections.append(f"Historical analysis:\n{narrative}")
    sections += [
        f"Current strategy (keep continuity where it still fits):\n{prior}",
        phase_guidance(phase),
        "The strategy must be consistent with the position's strengths, adapt to the "
        "opponent's likely replies and name concrete squares and ideas.",
        "Respond with a JSON object in a ```json block shaped like:\n"
        + json.dumps(example, indent=2),
    ]
    return "\n\n".join(sections)
