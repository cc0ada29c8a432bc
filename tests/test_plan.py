"""Tests for strategist.plan: plan stores and the refresh-cadence cache."""

from __future__ import annotations

import json

import chess

from conftest import PLAN_JSON, ScriptedOracle
from strategist.models import GamePhase, StrategicPlan
from strategist.oracle import OracleError
from strategist.plan import (
    PLAN_STORAGE_KEY,
    JsonPlanStore,
    MemoryPlanStore,
    StrategicPlanCache,
    neutral_plan,
)
from strategist.prompts import PLAN_SYSTEM


def _cache(replies=(PLAN_JSON,), store=None, interval=3):
    oracle = ScriptedOracle(list(replies))
    return StrategicPlanCache(oracle, store, refresh_interval=interval), oracle


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class TestMemoryPlanStore:
    def test_round_trip_and_clear(self):
        store = MemoryPlanStore()
        assert store.get("k") is None
        store.put("k", {"plan": {"primary_goal": "x"}})
        assert store.get("k") == {"plan": {"primary_goal": "x"}}
        store.clear("k")
        assert store.get("k") is None

    def test_returns_copies(self):
        store = MemoryPlanStore()
        record = {"plan": {"key_squares": ["e4"]}}
        store.put("k", record)
        record["plan"]["key_squares"].append("d4")
        assert store.get("k")["plan"]["key_squares"] == ["e4"]


class TestJsonPlanStore:
    def test_atomic_write_and_read(self, tmp_data_dir):
        store = JsonPlanStore(tmp_data_dir / "sessions" / "abc")
        store.put(PLAN_STORAGE_KEY, {"plan": {"primary_goal": "x"}, "created_at_ply": 3})

        path = tmp_data_dir / "sessions" / "abc" / "tactical-plan.json"
        assert path.exists()
        assert not path.with_suffix(".tmp").exists()
        assert json.loads(path.read_text(encoding="utf-8"))["created_at_ply"] == 3
        assert store.get(PLAN_STORAGE_KEY)["plan"]["primary_goal"] == "x"

    def test_missing_file(self, tmp_data_dir):
        assert JsonPlanStore(tmp_data_dir).get(PLAN_STORAGE_KEY) is None

    def test_corrupted_file_backed_up(self, tmp_data_dir):
        path = tmp_data_dir / "tactical-plan.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonPlanStore(tmp_data_dir)

        assert store.get(PLAN_STORAGE_KEY) is None
        assert (tmp_data_dir / "tactical-plan.bak").read_text(encoding="utf-8") == "{not json"

    def test_clear_removes_file(self, tmp_data_dir):
        store = JsonPlanStore(tmp_data_dir)
        store.put(PLAN_STORAGE_KEY, {"plan": {}})
        store.clear(PLAN_STORAGE_KEY)
        store.clear(PLAN_STORAGE_KEY)
        assert not (tmp_data_dir / "tactical-plan.json").exists()


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestStrategicPlanCache:
    def test_first_get_generates(self, start_board):
        cache, oracle = _cache()
        plan = cache.get(start_board, [], 0)

        assert plan.primary_goal == "Control the center and castle kingside"
        assert plan.phase_at_creation == GamePhase.OPENING
        assert cache.regenerations == 1
        assert cache.last_refreshed_at_ply == 0
        assert cache.reasoning == "Standard development."
        assert oracle.calls[0]["system"] == PLAN_SYSTEM
        assert oracle.calls[0]["temperature"] == 0.6

    def test_small_delta_returns_same_object(self, start_board):
        cache, oracle = _cache()
        first = cache.get(start_board, [], 0)
        second = cache.get(start_board, ["e4", "e5"], 2)

        assert second is first
        assert len(oracle.calls) == 1

    def test_delta_at_interval_regenerates_once(self, start_board):
        cache, oracle = _cache()
        cache.get(start_board, [], 0)
        cache.get(start_board, [], 3)
        cache.get(start_board, [], 4)

        assert len(oracle.calls) == 2
        assert cache.last_refreshed_at_ply == 3

    def test_ply_going_backwards_regenerates(self, start_board):
        cache, oracle = _cache()
        cache.get(start_board, [], 10)
        cache.get(start_board, [], 0)
        assert len(oracle.calls) == 2

    def test_failure_without_previous_plan_uses_neutral(self, start_board):
        cache, _ = _cache([OracleError("down")])
        plan = cache.get(start_board, [], 0)

        assert plan == neutral_plan(GamePhase.OPENING, 0)
        assert cache.last_warning.startswith("Plan regeneration failed")

    def test_failure_keeps_previous_plan(self, start_board):
        cache, _ = _cache([PLAN_JSON, "no json at all"])
        first = cache.get(start_board, [], 0)
        second = cache.get(start_board, [], 3)

        assert second is first
        assert cache.last_warning is not None
        assert cache.last_refreshed_at_ply == 3

    def test_failed_refresh_keeps_cadence(self, start_board):
        cache, oracle = _cache([OracleError("down")])
        cache.get(start_board, [], 0)
        cache.get(start_board, [], 1)
        assert len(oracle.calls) == 1

    def test_clear_resets(self, start_board):
        store = MemoryPlanStore()
        cache, oracle = _cache(store=store)
        cache.get(start_board, [], 6)
        cache.clear()

        assert cache.plan is None
        assert cache.last_refreshed_at_ply == 0
        assert store.get(PLAN_STORAGE_KEY) is None
        cache.get(start_board, [], 1)
        assert len(oracle.calls) == 2

    def test_persisted_record_format(self, start_board):
        store = MemoryPlanStore()
        cache, _ = _cache(store=store)
        cache.get(start_board, [], 0)

        record = store.get(PLAN_STORAGE_KEY)
        assert set(record) == {"plan", "reasoning", "phase", "created_at_ply", "position"}
        assert record["phase"] == "opening"
        assert record["position"] == chess.STARTING_FEN
        assert record["plan"]["primary_goal"] == "Control the center and castle kingside"

    def test_neutral_plan_not_persisted(self, start_board):
        store = MemoryPlanStore()
        cache, _ = _cache([OracleError("down")], store=store)
        cache.get(start_board, [], 0)
        assert store.get(PLAN_STORAGE_KEY) is None

    def test_loads_from_store(self, start_board, tmp_data_dir):
        store = JsonPlanStore(tmp_data_dir)
        writer, _ = _cache(store=store)
        writer.get(start_board, [], 0)

        reader, oracle = _cache(store=JsonPlanStore(tmp_data_dir))
        assert reader.plan.primary_goal == "Control the center and castle kingside"
        reader.get(start_board, [], 2)
        assert oracle.calls == []

    def test_seed_only_fills_empty_cache(self, start_board):
        cache, oracle = _cache()
        echoed = StrategicPlan(primary_goal="Echoed", created_at_ply=4)
        assert cache.seed(echoed)
        assert cache.get(start_board, [], 5) is echoed
        assert oracle.calls == []
        assert not cache.seed(StrategicPlan(primary_goal="Other"))

    def test_refresh_forces_regeneration(self, start_board):
        cache, oracle = _cache()
        cache.get(start_board, [], 0)
        cache.refresh(start_board, [], 1)
        assert len(oracle.calls) == 2
        assert cache.last_refreshed_at_ply == 1

    def test_prior_plan_in_regeneration_prompt(self, start_board):
        cache, oracle = _cache()
        cache.get(start_board, [], 0)
        cache.get(start_board, [], 3)
        assert "Control the center and castle kingside" in oracle.prompts[1]
