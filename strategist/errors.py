"""Structured decision errors with stable category strings.

Every terminal failure of a decision call is a DecisionError whose
``category`` is one of the constants below. Outer surfaces render it
as ``{"error": category, "message": detail}``.
"""

from __future__ import annotations

INVALID_POSITION = "invalid-position"
NO_LEGAL_MOVES = "no-legal-moves"
NOT_TO_MOVE = "not-to-move"
ALREADY_TERMINAL = "already-terminal"
ORACLE_UNAVAILABLE = "oracle-unavailable"
EXHAUSTED_RETRIES = "exhausted-retries"
INVALID_REQUEST = "invalid-request"

CATEGORIES = (
    INVALID_POSITION,
    NO_LEGAL_MOVES,
    NOT_TO_MOVE,
    ALREADY_TERMINAL,
    ORACLE_UNAVAILABLE,
    EXHAUSTED_RETRIES,
    INVALID_REQUEST,
)


class DecisionError(Exception):
    """A decision call failed explicitly; no move was produced."""

    def __init__(self, category: str, message: str) -> None:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown error category: {category}")
        super().__init__(message)
        self.category = category
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.category, "message": self.message}
