"""Single-role decision protocol: ask, parse, validate, retry.

The loop moves through REQUESTING -> PARSING -> VALIDATING and ends in
ACCEPTED or EXHAUSTED. A reply without a move, a notation outside the
legal set and an oracle failure all cost one attempt; each retry
carries the rejected notation and the full legal list as feedback.
Validation is an exact string match against the legal SAN set.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from strategist.log import get_logger
from strategist.models import DecisionRequest, MoveCandidate, RetryState
from strategist.oracle import Oracle, OracleError
from strategist.parsing import ParseError, ParsedDecision, parse_decision
from strategist.prompts import DECISION_SYSTEM, DecisionContext, build_decision_request

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class LoopState(str, Enum):
    REQUESTING = "requesting"
    PARSING = "parsing"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"


@dataclass
class SingleRoleOutcome:
    """Terminal result of the single-role loop."""

    state: LoopState
    retry: RetryState
    candidate: MoveCandidate | None = None
    rationale: str = ""
    oracle_move: str | None = None
    requests: list[DecisionRequest] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.state is LoopState.ACCEPTED

    @property
    def attempts_used(self) -> int:
        return len(self.requests)

    @property
    def oracle_unavailable(self) -> bool:
        """True when every attempt failed at the transport level."""
        return self.retry.oracle_failures == self.attempts_used and self.attempts_used > 0


def advance(
    state: RetryState,
    parsed: ParsedDecision | ParseError,
    legal: dict[str, MoveCandidate],
) -> tuple[LoopState, RetryState, MoveCandidate | None]:
    """Validate one parsed reply and compute the next loop state.

    Pure: returns a new RetryState rather than mutating ``state``.

    Args:
        state: Retry bookkeeping before this attempt.
        parsed: Parser output for the attempt's reply.
        legal: Legal candidates keyed by exact SAN.

    Returns:
        Tuple of (next loop state, updated retry state, accepted candidate or None).
    """
    if isinstance(parsed, ParsedDecision):
        candidate = legal.get(parsed.notation)
        if candidate is not None:
            return LoopState.ACCEPTED, state, candidate
        invalid = parsed.notation
    else:
        invalid = None

    next_state = replace(
        state,
        attempt_index=state.attempt_index + 1,
        last_invalid_notation=invalid,
        invalid_notations=state.invalid_notations + ([invalid] if invalid else []),
    )
    if next_state.attempt_index < next_state.max_attempts:
        return LoopState.REQUESTING, next_state, None
    return LoopState.EXHAUSTED, next_state, None


def run_single_role(
    oracle: Oracle,
    context: DecisionContext,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> SingleRoleOutcome:
    """Run the validation/retry loop until a legal move is accepted or attempts run out.

    Args:
        oracle: Reasoning oracle.
        context: Per-decision context (position, scored moves, plan, ...).
        max_attempts: Upper bound on oracle requests.

    Returns:
        SingleRoleOutcome in state ACCEPTED or EXHAUSTED. Never raises
        on oracle or parse failures.
    """
    legal = {c.notation: c for c in context.candidates}
    retry = RetryState(max_attempts=max_attempts)
    requests: list[DecisionRequest] = []
    last_notation: str | None = None

    while True:
        request = build_decision_request(context, retry)
        requests.append(request)

        try:
            raw = oracle.complete(
                request.prompt,
                system=DECISION_SYSTEM,
                temperature=0.1,
                max_tokens=400,
            )
        except OracleError as exc:
            logger.warning("Attempt %d/%d: oracle failure: %s", request.attempt, max_attempts, exc)
            retry = replace(retry, oracle_failures=retry.oracle_failures + 1)
            parsed: ParsedDecision | ParseError = ParseError(f"oracle failure: {exc}", "")
        else:
            parsed = parse_decision(raw)

        if isinstance(parsed, ParsedDecision):
            last_notation = parsed.notation
        elif parsed.raw:
            logger.warning("Attempt %d/%d: unparseable reply (%s)", request.attempt, max_attempts, parsed.reason)

        loop_state, retry, candidate = advance(retry, parsed, legal)

        if loop_state is LoopState.ACCEPTED:
            logger.info("Attempt %d: accepted %s", request.attempt, candidate.notation)
            return SingleRoleOutcome(
                state=loop_state,
                retry=retry,
                candidate=candidate,
                rationale=parsed.rationale,
                oracle_move=parsed.notation,
                requests=requests,
            )

        if isinstance(parsed, ParsedDecision):
            logger.warning("Attempt %d/%d: illegal notation %r", request.attempt, max_attempts, parsed.notation)

        if loop_state is LoopState.EXHAUSTED:
            logger.warning("No legal move after %d attempts", len(requests))
            return SingleRoleOutcome(
                state=loop_state,
                retry=retry,
                oracle_move=last_notation,
                requests=requests,
            )
