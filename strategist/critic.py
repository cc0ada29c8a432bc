"""Two-role decision protocol: a proposer picks, a critic judges.

Each round the proposer chooses one move from the pool of legal moves
not yet rejected, and the critic scores it one ply ahead. An approved
move ends the loop. A rejected move leaves the pool; when the pool is
empty or the iteration bound is hit, the best-scored attempt so far is
played regardless of approval.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import chess

from strategist.log import get_logger
from strategist.models import AttemptRecord, Evaluation, MoveCandidate
from strategist.oracle import Oracle, OracleError
from strategist.parsing import ParseError, parse_decision, parse_evaluation
from strategist.prompts import (
    CRITIC_SYSTEM,
    DECISION_SYSTEM,
    DecisionContext,
    build_critic_prompt,
    build_selector_prompt,
)

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 5
# Oracle requests the proposer may spend on one proposal
PROPOSAL_ATTEMPTS = 2


class NoProposal(Exception):
    """The proposer could not name a move from the remaining pool."""

    def __init__(self, message: str, oracle_failed: bool = False) -> None:
        super().__init__(message)
        self.oracle_failed = oracle_failed


@dataclass
class CriticOutcome:
    """Terminal result of the proposer/critic loop."""

    candidate: MoveCandidate
    evaluation: Evaluation
    rationale: str
    attempts: list[AttemptRecord]
    fallback_used: bool = False
    proposals: dict[str, str] = field(default_factory=dict)

    @property
    def iterations(self) -> int:
        return len(self.attempts)


def propose(
    oracle: Oracle,
    context: DecisionContext,
    pool: list[MoveCandidate],
    attempts: list[AttemptRecord],
) -> tuple[MoveCandidate, str]:
    """Ask the proposer for one move from ``pool``.

    A notation outside the pool is treated like an unparseable reply and
    retried once with corrective feedback; it is never returned.

    Returns:
        Tuple of (chosen candidate, proposer reasoning).

    Raises:
        NoProposal: If the pool is empty or no usable proposal was made.
    """
    if not pool:
        raise NoProposal("no candidate moves left to propose")

    by_notation = {c.notation: c for c in pool}
    feedback = None
    oracle_failures = 0

    for _ in range(PROPOSAL_ATTEMPTS):
        prompt = build_selector_prompt(context, pool, attempts, feedback)
        try:
            raw = oracle.complete(prompt, system=DECISION_SYSTEM, temperature=0.1, max_tokens=400)
        except OracleError as exc:
            logger.warning("Proposer oracle failure: %s", exc)
            oracle_failures += 1
            feedback = None
            continue

        parsed = parse_decision(raw)
        if isinstance(parsed, ParseError):
            logger.warning("Proposer reply unparseable: %s", parsed.reason)
            feedback = "PREVIOUS REPLY REJECTED: it did not contain a MOVE line."
            continue

        candidate = by_notation.get(parsed.notation)
        if candidate is None:
            logger.warning("Proposer named %r, which is not in the remaining pool", parsed.notation)
            feedback = f"PREVIOUS REPLY REJECTED: {parsed.notation} is not one of the available moves."
            continue

        return candidate, parsed.rationale

    raise NoProposal(
        "proposer did not name an available move",
        oracle_failed=oracle_failures == PROPOSAL_ATTEMPTS,
    )


def evaluate(
    oracle: Oracle,
    context: DecisionContext,
    board: chess.Board,
    candidate: MoveCandidate,
) -> Evaluation:
    """Have the critic judge a candidate, simulated one ply ahead.

    Never raises: an unplayable candidate or an oracle failure yields a
    rejecting evaluation with score 1.
    """
    after = board.copy()
    try:
        after.push_san(candidate.notation)
    except ValueError:
        return Evaluation(
            approved=False,
            score=1,
            rationale="Move is invalid or illegal",
            suggestions=["Choose a different move"],
        )

    try:
        raw = oracle.complete(
            build_critic_prompt(context, candidate, after),
            system=CRITIC_SYSTEM,
            temperature=0.1,
            max_tokens=400,
        )
    except OracleError as exc:
        logger.warning("Critic oracle failure for %s: %s", candidate.notation, exc)
        return Evaluation(
            approved=False,
            score=1,
            rationale="Error evaluating move",
            suggestions=["Try a different move"],
        )
    return parse_evaluation(raw)


def best_attempt(attempts: list[AttemptRecord]) -> AttemptRecord:
    """Highest critic score; the earliest attempt wins ties."""
    return max(attempts, key=lambda a: a.evaluation.score)


def run_proposer_critic(
    oracle: Oracle,
    context: DecisionContext,
    board: chess.Board,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> CriticOutcome:
    """Iterate proposer and critic until approval, an empty pool, or the bound.

    Args:
        oracle: Reasoning oracle used for both roles.
        context: Per-decision context.
        board: Position before the move (not modified).
        max_iterations: Upper bound on proposer/critic rounds.

    Returns:
        CriticOutcome with the full attempt history.

    Raises:
        NoProposal: If the proposer fails before any attempt was recorded.
    """
    pool = list(context.candidates)
    attempts: list[AttemptRecord] = []
    proposals: dict[str, str] = {}

    while len(attempts) < max_iterations:
        try:
            candidate, reasoning = propose(oracle, context, pool, attempts)
        except NoProposal as exc:
            if not attempts:
                raise
            logger.warning("Proposer gave up after %d attempts: %s", len(attempts), exc)
            break

        proposals[candidate.notation] = reasoning
        evaluation = evaluate(oracle, context, board, candidate)
        attempts.append(AttemptRecord(candidate=candidate, evaluation=evaluation))
        logger.info(
            "Round %d: %s scored %d/10 (%s)",
            len(attempts), candidate.notation, evaluation.score,
            "approved" if evaluation.approved else "rejected",
        )

        if evaluation.approved:
            return CriticOutcome(
                candidate=candidate,
                evaluation=evaluation,
                rationale=reasoning,
                attempts=attempts,
                proposals=proposals,
            )

        pool = [c for c in pool if c.notation != candidate.notation]
        if not pool:
            break

    best = best_attempt(attempts)
    logger.warning(
        "No move approved in %d rounds; playing best reviewed move %s (%d/10)",
        len(attempts), best.candidate.notation, best.evaluation.score,
    )
    return CriticOutcome(
        candidate=best.candidate,
        evaluation=best.evaluation,
        rationale=proposals.get(best.candidate.notation, best.evaluation.rationale),
        attempts=attempts,
        fallback_used=True,
        proposals=proposals,
    )
