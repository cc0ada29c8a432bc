"""Shared test fixtures with dual-mode support (scripted vs live oracle).

Usage:
    pytest tests/                  # Fast, scripted oracle (no network)
    pytest tests/ --live           # Also run tests marked live against Gemini

Fixtures:
    scripted_oracle    - ScriptedOracle factory replaying canned replies.
    tmp_data_dir       - Temporary data directory for plan files.
    enable_validation  - Sets STRATEGIST_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os

import chess
import pytest

from strategist.oracle import Oracle, OracleError


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --live CLI flag for real Gemini tests."""
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests against the real Gemini API (needs GEMINI_API_KEY).",
    )


def pytest_configure(config):
    """Register the live marker."""
    config.addinivalue_line(
        "markers", "live: mark test as calling the real Gemini API"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--live"):
        return
    skip_live = pytest.mark.skip(reason="needs --live")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Scripted oracle
# ---------------------------------------------------------------------------


class ScriptedOracle(Oracle):
    """Oracle that replays canned replies in order.

    Each entry is either a reply string or an Exception instance, which
    is raised as OracleError. Once the script runs out the last entry
    repeats (or ``default`` is used if given).

    Attributes:
        calls: List of dicts with prompt, system, temperature, max_tokens.
    """

    def __init__(self, replies=(), default: str | Exception | None = None) -> None:
        self._replies = list(replies)
        self._default = default
        self.calls: list[dict] = []

    def complete(self, prompt, *, system=None, temperature=0.2, max_tokens=400):
        self.calls.append({
            "prompt": prompt,
            "system": system,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if len(self._replies) > 1 or (self._replies and self._default is not None):
            reply = self._replies.pop(0)
        elif self._replies:
            reply = self._replies[0]
        elif self._default is not None:
            reply = self._default
        else:
            raise OracleError("script exhausted")
        if isinstance(reply, Exception):
            raise OracleError(str(reply))
        return reply

    @property
    def prompts(self) -> list[str]:
        return [c["prompt"] for c in self.calls]


class RoutingOracle(Oracle):
    """Oracle that answers by prompt kind: narrative, plan, decision or critic.

    Each route is a ScriptedOracle so tests can script one role without
    counting the calls of the others.
    """

    def __init__(
        self,
        decision=(),
        critic=(),
        plan=(),
        narrative=("Both sides are developing normally.",),
    ) -> None:
        self.decision = ScriptedOracle(decision)
        self.critic = ScriptedOracle(critic)
        self.plan = ScriptedOracle(plan)
        self.narrative = ScriptedOracle(narrative)
        self.calls: list[str] = []

    def complete(self, prompt, *, system=None, temperature=0.2, max_tokens=400):
        if prompt.startswith("# TACTICAL STRATEGY ANALYSIS"):
            route, name = self.plan, "plan"
        elif "analyzing recent moves" in prompt:
            route, name = self.narrative, "narrative"
        elif prompt.startswith("You are the Move Evaluator"):
            route, name = self.critic, "critic"
        else:
            route, name = self.decision, "decision"
        self.calls.append(name)
        return route.complete(prompt, system=system, temperature=temperature, max_tokens=max_tokens)


def move_reply(move: str, reasoning: str = "It is a good move.") -> str:
    return f"MOVE: {move}\nREASONING: {reasoning}"


def critic_reply(score: int, approved: bool | None = None, reasoning: str = "Reviewed.") -> str:
    lines = [f"SCORE: {score}"]
    if approved is not None:
        lines.append(f"APPROVED: {'true' if approved else 'false'}")
    lines.append(f"REASONING: {reasoning}")
    return "\n".join(lines)


PLAN_JSON = """```json
{
  "strategy": {
    "primaryGoal": "Control the center and castle kingside",
    "tacticalPatterns": ["Pin the f6 knight"],
    "pieceCoordination": "Knights support the e4 pawn",
    "keySquares": ["e4", "d5"],
    "pawnStructure": "Keep the e4-d4 center",
    "opponentThreats": "Watch the b4 bishop pin",
    "movePriorities": ["Develop Nf3", "Castle"]
  },
  "reasoning": "Standard development."
}
```"""


@pytest.fixture()
def scripted_oracle():
    """Factory for ScriptedOracle instances."""
    return ScriptedOracle


# ---------------------------------------------------------------------------
# Boards
# ---------------------------------------------------------------------------


# Black king h8 in check from the a8 rook; Kf6 covers g7, so Kh7 is the only move
SINGLE_MOVE_FEN = "R6k/8/5K2/8/8/8/8/8 b - - 0 1"


@pytest.fixture()
def start_board():
    return chess.Board()


@pytest.fixture()
def tmp_data_dir(tmp_path):
    """Empty data directory for plan persistence tests."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set STRATEGIST_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("STRATEGIST_VALIDATE")
    os.environ["STRATEGIST_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("STRATEGIST_VALIDATE", None)
    else:
        os.environ["STRATEGIST_VALIDATE"] = original
