"""End-to-end tests for strategist.engine.DecisionEngine with scripted oracles.

Run:
    pytest tests/test_engine.py -v            # scripted oracle
    pytest tests/test_engine.py -v --live     # plus one real Gemini decision
"""

from __future__ import annotations

import os

import chess
import pytest

from conftest import PLAN_JSON, SINGLE_MOVE_FEN, RoutingOracle, critic_reply, move_reply
from strategist.config import EngineConfig
from strategist.engine import DecisionEngine
from strategist.errors import (
    ALREADY_TERMINAL,
    EXHAUSTED_RETRIES,
    INVALID_POSITION,
    NO_LEGAL_MOVES,
    NOT_TO_MOVE,
    INVALID_REQUEST,
    ORACLE_UNAVAILABLE,
    DecisionError,
)
from strategist.models import GamePhase
from strategist.oracle import OracleError
from strategist.scoring import score_moves

SCHOLARS_FEN = "r1bqkbnr/pppp1ppp/2n5/4p3/2B1P3/5Q2/PPPP1PPP/RNB1K1NR w KQkq - 2 4"
ROOK_ENDGAME_FEN = "8/5pk1/6p1/8/8/6P1/r4PK1/4R3 w - - 0 31"


def _engine(oracle, **config) -> DecisionEngine:
    return DecisionEngine(oracle, EngineConfig(**config))


def _legal_sans(fen: str) -> set[str]:
    board = chess.Board(fen)
    return {board.san(m) for m in board.legal_moves}


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------


class TestInputErrors:
    @pytest.mark.parametrize("fen", ["", None, "not a fen", "8/8/8/8/8/8/8/8 w - - 0 1"])
    def test_invalid_position(self, fen):
        oracle = RoutingOracle()
        with pytest.raises(DecisionError) as excinfo:
            _engine(oracle).decide(fen)
        assert excinfo.value.category == INVALID_POSITION
        assert oracle.calls == []

    def test_checkmated_side_has_no_legal_moves(self):
        board = chess.Board(SCHOLARS_FEN)
        board.push_san("Qxf7#")
        oracle = RoutingOracle()
        with pytest.raises(DecisionError) as excinfo:
            _engine(oracle).decide(board.fen())
        assert excinfo.value.category == NO_LEGAL_MOVES
        assert excinfo.value.to_dict()["error"] == "no-legal-moves"
        assert oracle.calls == []

    def test_insufficient_material_is_terminal(self):
        oracle = RoutingOracle()
        with pytest.raises(DecisionError) as excinfo:
            _engine(oracle).decide("8/8/4k3/8/8/4K3/8/8 w - - 0 1")
        assert excinfo.value.category == ALREADY_TERMINAL
        assert oracle.calls == []

    def test_wrong_side_to_move(self):
        oracle = RoutingOracle()
        with pytest.raises(DecisionError) as excinfo:
            _engine(oracle, engine_color="black").decide(chess.STARTING_FEN)
        assert excinfo.value.category == NOT_TO_MOVE
        assert oracle.calls == []

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            _engine(RoutingOracle()).decide(chess.STARTING_FEN, strategy="committee")

    @pytest.mark.parametrize("prior_plan", [{"key_squares": ["e4"]}, ["e4"], "plan"])
    def test_unreadable_prior_plan(self, prior_plan):
        oracle = RoutingOracle()
        with pytest.raises(DecisionError) as excinfo:
            _engine(oracle).decide(chess.STARTING_FEN, prior_plan=prior_plan)
        assert excinfo.value.category == INVALID_REQUEST
        assert "prior_plan" in excinfo.value.message
        assert oracle.calls == []


# ---------------------------------------------------------------------------
# Single-role strategy
# ---------------------------------------------------------------------------


class TestSingleRole:
    def test_accepted_move(self):
        oracle = RoutingOracle(decision=[move_reply("e4", "Take the center.")], plan=[PLAN_JSON])
        result = _engine(oracle).decide(chess.STARTING_FEN, [])

        assert result.move == "e4"
        assert result.rationale == "Take the center."
        assert result.phase == GamePhase.OPENING
        assert result.iterations == 1
        assert not result.fallback_used
        assert result.attempts is None
        assert result.oracle_move == "e4"
        assert result.plan.primary_goal == "Control the center and castle kingside"
        assert result.warnings == []
        after = chess.Board(chess.STARTING_FEN)
        after.push_san("e4")
        assert result.resulting_fen == after.fen()

    def test_always_illegal_falls_back_after_bound(self):
        oracle = RoutingOracle(decision=[move_reply("Ke2")], plan=[PLAN_JSON])
        result = _engine(oracle).decide(chess.STARTING_FEN)

        assert oracle.calls.count("decision") == 5
        assert result.fallback_used
        assert result.iterations == 5
        assert result.move == score_moves(chess.Board())[0].notation
        assert result.move in _legal_sans(chess.STARTING_FEN)
        assert result.oracle_move == "Ke2"
        assert any("No legal move after 5 attempts" in w for w in result.warnings)

    def test_always_illegal_without_fallback_raises(self):
        oracle = RoutingOracle(decision=[move_reply("Ke2")], plan=[PLAN_JSON])
        engine = _engine(oracle, fallback_on_exhaustion=False)
        with pytest.raises(DecisionError) as excinfo:
            engine.decide(chess.STARTING_FEN)
        assert excinfo.value.category == EXHAUSTED_RETRIES

    def test_oracle_down_without_fallback(self):
        oracle = RoutingOracle(decision=[OracleError("down")], plan=[PLAN_JSON])
        engine = _engine(oracle, fallback_on_exhaustion=False, max_attempts=3)
        with pytest.raises(DecisionError) as excinfo:
            engine.decide(chess.STARTING_FEN)
        assert excinfo.value.category == ORACLE_UNAVAILABLE
        assert oracle.calls.count("decision") == 3

    def test_plan_failure_is_a_warning(self):
        oracle = RoutingOracle(decision=[move_reply("d4")], plan=[OracleError("down")])
        result = _engine(oracle).decide(chess.STARTING_FEN)

        assert result.move == "d4"
        assert result.plan.primary_goal == "Develop pieces and control the center"
        assert result.warnings and result.warnings[0].startswith("Plan regeneration failed")

    def test_plan_disabled(self):
        oracle = RoutingOracle(decision=[move_reply("d4")])
        result = _engine(oracle, use_plan=False).decide(chess.STARTING_FEN)
        assert result.plan is None
        assert "plan" not in oracle.calls

    def test_plan_refreshed_on_cadence(self):
        oracle = RoutingOracle(decision=[move_reply("Nf3")], plan=[PLAN_JSON])
        engine = _engine(oracle, narrate_history=False)
        for ply in (0, 2, 4, 6):
            engine.decide(chess.STARTING_FEN, [], ply)
        # Regenerated at ply 0 and ply 4 only
        assert oracle.calls.count("plan") == 2

    def test_prior_plan_seeds_stateless_call(self):
        oracle = RoutingOracle(decision=[move_reply("e4")], plan=[PLAN_JSON])
        prior = {"primary_goal": "Echoed goal", "phase_at_creation": "opening", "created_at_ply": 0}
        result = _engine(oracle).decide(chess.STARTING_FEN, [], 1, prior_plan=prior)

        assert result.plan.primary_goal == "Echoed goal"
        assert "plan" not in oracle.calls
        assert "Echoed goal" in oracle.decision.prompts[0]

    def test_narrative_and_opening(self):
        board = chess.Board()
        for san in ("e4", "c5"):
            board.push_san(san)
        oracle = RoutingOracle(decision=[move_reply("Nf3")], plan=[PLAN_JSON])
        result = _engine(oracle).decide(board.fen(), ["e4", "c5"])

        assert oracle.calls[0] == "narrative"
        assert result.opening == "Sicilian Defense"
        prompt = oracle.decision.prompts[0]
        assert "Both sides are developing normally." in prompt
        assert "Current opening: Sicilian Defense" in prompt

    def test_narration_disabled(self):
        oracle = RoutingOracle(decision=[move_reply("Nf3")], plan=[PLAN_JSON])
        _engine(oracle, narrate_history=False).decide(
            "rnbqkbnr/pp1ppppp/8/2p5/4P3/8/PPPP1PPP/RNBQKBNR w KQkq c6 0 2", ["e4", "c5"],
        )
        assert "narrative" not in oracle.calls

    def test_checkmate_flags(self):
        oracle = RoutingOracle(decision=[move_reply("Qxf7#", "Mate.")], plan=[PLAN_JSON])
        result = _engine(oracle).decide(SCHOLARS_FEN)

        assert result.move == "Qxf7#"
        assert result.is_check
        assert result.is_checkmate
        assert result.is_terminal
        assert not result.is_stalemate


# ---------------------------------------------------------------------------
# Forced moves and phases
# ---------------------------------------------------------------------------


class TestForcedAndPhase:
    def test_single_legal_move_short_circuits(self):
        oracle = RoutingOracle(decision=["MOVE: Qxa8\nREASONING: nonsense"])
        result = _engine(oracle).decide(SINGLE_MOVE_FEN)

        assert result.move == "Kh7"
        assert result.iterations == 1
        assert result.forced
        assert oracle.calls == []

    def test_single_legal_move_accepted_from_oracle(self):
        oracle = RoutingOracle(decision=[move_reply("Kh7")], plan=[PLAN_JSON])
        result = _engine(oracle, short_circuit_forced=False).decide(SINGLE_MOVE_FEN)

        assert result.move == "Kh7"
        assert result.iterations == 1
        assert not result.forced
        assert not result.fallback_used

    def test_ply_zero_is_opening(self):
        oracle = RoutingOracle(decision=[move_reply("e4")], plan=[PLAN_JSON])
        result = _engine(oracle).decide(chess.STARTING_FEN, [], 0)
        assert result.phase == GamePhase.OPENING

    def test_low_material_at_ply_30_is_endgame(self):
        oracle = RoutingOracle(decision=[move_reply("Re7")], plan=[PLAN_JSON])
        result = _engine(oracle).decide(ROOK_ENDGAME_FEN, None, 30)

        assert result.phase == GamePhase.ENDGAME
        assert result.move == "Re7"
        assert "ENDGAME PRINCIPLES" in oracle.decision.prompts[0]


# ---------------------------------------------------------------------------
# Proposer/critic strategy
# ---------------------------------------------------------------------------


class TestCriticStrategy:
    def test_approved_move(self):
        oracle = RoutingOracle(
            decision=[move_reply("e4", "Center.")],
            critic=[critic_reply(8, True)],
            plan=[PLAN_JSON],
        )
        result = _engine(oracle, strategy="critic").decide(chess.STARTING_FEN)

        assert result.strategy == "critic"
        assert result.move == "e4"
        assert result.iterations == 1
        assert len(result.attempts) == 1
        assert result.attempts[0].evaluation.approved

    def test_all_rejected_plays_max_score(self):
        oracle = RoutingOracle(
            decision=[move_reply(m) for m in ("a4", "h4", "Nf3", "b4", "g4")],
            critic=[critic_reply(s, False) for s in (3, 5, 6, 2, 1)],
            plan=[PLAN_JSON],
        )
        result = _engine(oracle).decide(chess.STARTING_FEN, strategy="critic")

        assert result.fallback_used
        assert result.iterations == 5
        best = max(result.attempts, key=lambda a: a.evaluation.score)
        assert result.move == best.candidate.notation == "Nf3"

    def test_iterations_bounded(self):
        oracle = RoutingOracle(
            decision=[move_reply(m) for m in ("a4", "h4", "Nf3")],
            critic=[critic_reply(2, False)],
            plan=[PLAN_JSON],
        )
        result = _engine(oracle, strategy="critic", max_iterations=3).decide(chess.STARTING_FEN)
        assert result.iterations == 3
        assert len(result.attempts) <= 3

    def test_proposer_never_answers_falls_back(self):
        oracle = RoutingOracle(decision=["no move here"], plan=[PLAN_JSON])
        result = _engine(oracle, strategy="critic").decide(chess.STARTING_FEN)

        assert result.fallback_used
        assert result.attempts == []
        assert result.iterations == 0
        assert result.move in _legal_sans(chess.STARTING_FEN)

    def test_proposer_down_without_fallback(self):
        oracle = RoutingOracle(decision=[OracleError("down")], plan=[PLAN_JSON])
        engine = _engine(oracle, strategy="critic", fallback_on_exhaustion=False)
        with pytest.raises(DecisionError) as excinfo:
            engine.decide(chess.STARTING_FEN)
        assert excinfo.value.category == ORACLE_UNAVAILABLE


# ---------------------------------------------------------------------------
# Legality property
# ---------------------------------------------------------------------------


_POSITIONS = [
    chess.STARTING_FEN,
    SCHOLARS_FEN,
    ROOK_ENDGAME_FEN,
    "r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1",
    "4k3/P7/8/8/8/8/8/4K3 w - - 0 1",
]

_REPLIES = ["MOVE: Zz9", "", "MOVE: e4", "MOVE: O-O\nREASONING: safety", "MOVE: a8=Q+"]


class TestNeverIllegal:
    @pytest.mark.parametrize("fen", _POSITIONS)
    @pytest.mark.parametrize("reply", _REPLIES)
    @pytest.mark.parametrize("strategy", ["single", "critic"])
    def test_move_always_legal(self, fen, reply, strategy):
        oracle = RoutingOracle(decision=[reply], critic=[critic_reply(4)], plan=[PLAN_JSON])
        result = _engine(oracle, strategy=strategy).decide(fen)

        assert result.move in _legal_sans(fen)
        assert result.iterations <= 5
        board = chess.Board(fen)
        board.push_san(result.move)
        assert board.fen() == result.resulting_fen


# ---------------------------------------------------------------------------
# Live oracle
# ---------------------------------------------------------------------------


@pytest.mark.live
def test_live_gemini_decision():
    from strategist.oracle import GeminiOracle

    config = EngineConfig.from_env(os.environ)
    engine = DecisionEngine(GeminiOracle(config.model, config.api_key, config.oracle_timeout), config)
    result = engine.decide(chess.STARTING_FEN, [])
    assert result.move in _legal_sans(chess.STARTING_FEN)
