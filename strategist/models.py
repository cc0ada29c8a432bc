"""Shared data models for the chess strategist.

MoveCandidate, Evaluation, AttemptRecord and StrategicPlan are the
contract between the scorer, the decision loops, the plan cache and
the outer surfaces (MCP server, CLI).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class GamePhase(str, Enum):
    """Phase of the game, derived from ply count and material."""

    OPENING = "opening"
    MIDDLEGAME = "middlegame"
    ENDGAME = "endgame"


@dataclass
class MoveCandidate:
    """A legal move annotated with static features and a heuristic score."""

    notation: str
    uci: str
    origin: str
    destination: str
    moving_piece: str
    captured_piece: str | None = None
    promotion: str | None = None
    is_castling: bool = False
    gives_check: bool = False
    gives_mate: bool = False
    score: int = 0
    description: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Evaluation:
    """Critic verdict on a single candidate move."""

    approved: bool
    score: int
    rationale: str
    suggestions: list[str] = field(default_factory=list)


@dataclass
class AttemptRecord:
    """One proposer/critic round: the candidate and how it was judged."""

    candidate: MoveCandidate
    evaluation: Evaluation

    def to_dict(self) -> dict:
        return {
            "move": self.candidate.notation,
            "score": self.evaluation.score,
            "approved": self.evaluation.approved,
            "rationale": self.evaluation.rationale,
            "suggestions": list(self.evaluation.suggestions),
        }


@dataclass
class StrategicPlan:
    """Multi-move strategic intent, refreshed every few plies."""

    primary_goal: str
    tactical_patterns: list[str] = field(default_factory=list)
    coordination_note: str = ""
    key_squares: list[str] = field(default_factory=list)
    pawn_plan: str = ""
    threat_note: str = ""
    move_priorities: list[str] = field(default_factory=list)
    phase_at_creation: GamePhase = GamePhase.OPENING
    created_at_ply: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["phase_at_creation"] = self.phase_at_creation.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> StrategicPlan:
        """Rebuild a plan from its ``to_dict`` form.

        Raises:
            ValueError: If ``primary_goal`` is missing or the phase is unknown.
        """
        goal = data.get("primary_goal")
        if not isinstance(goal, str) or not goal.strip():
            raise ValueError("Plan is missing primary_goal")
        return cls(
            primary_goal=goal,
            tactical_patterns=[str(p) for p in data.get("tactical_patterns", [])],
            coordination_note=str(data.get("coordination_note", "")),
            key_squares=[str(s) for s in data.get("key_squares", [])],
            pawn_plan=str(data.get("pawn_plan", "")),
            threat_note=str(data.get("threat_note", "")),
            move_priorities=[str(p) for p in data.get("move_priorities", [])],
            phase_at_creation=GamePhase(data.get("phase_at_creation", "opening")),
            created_at_ply=int(data.get("created_at_ply", 0)),
        )


@dataclass
class RetryState:
    """Bookkeeping for one single-role decision call."""

    attempt_index: int = 0
    max_attempts: int = 5
    last_invalid_notation: str | None = None
    invalid_notations: list[str] = field(default_factory=list)
    oracle_failures: int = 0


@dataclass(frozen=True)
class DecisionRequest:
    """The prompt sent to the oracle for one attempt. Never mutated."""

    prompt: str
    attempt: int
    phase: GamePhase
    legal_notations: tuple[str, ...]
    feedback: str | None = None


@dataclass
class DecisionResult:
    """Outcome of a decision call, in the shape returned to callers."""

    move: str
    rationale: str
    resulting_fen: str
    phase: GamePhase
    is_check: bool
    is_checkmate: bool
    is_stalemate: bool
    is_terminal: bool
    strategy: str = "single"
    plan: StrategicPlan | None = None
    attempts: list[AttemptRecord] | None = None
    iterations: int = 1
    fallback_used: bool = False
    forced: bool = False
    oracle_move: str | None = None
    opening: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "move": self.move,
            "rationale": self.rationale,
            "resulting_fen": self.resulting_fen,
            "phase": self.phase.value,
            "is_check": self.is_check,
            "is_checkmate": self.is_checkmate,
            "is_stalemate": self.is_stalemate,
            "is_terminal": self.is_terminal,
            "strategy": self.strategy,
            "plan": self.plan.to_dict() if self.plan is not None else None,
            "attempts": (
                [a.to_dict() for a in self.attempts]
                if self.attempts is not None else None
            ),
            "iterations": self.iterations,
            "fallback_used": self.fallback_used,
            "forced": self.forced,
            "oracle_move": self.oracle_move,
            "opening": self.opening,
            "warnings": list(self.warnings),
        }
