"""Strategic plan cache and its storage.

The cache holds one StrategicPlan per session and regenerates it
through the oracle every ``refresh_interval`` plies. Stores persist the
plan record under a single fixed key; JsonPlanStore writes it as a JSON
file with atomic replace so a crash never leaves a half-written plan.

Plan record format::

    {"plan": {...}, "reasoning": str, "phase": str,
     "created_at_ply": int, "position": fen}
"""

from __future__ import annotations

import json
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

import chess

from strategist.log import get_logger
from strategist.models import GamePhase, StrategicPlan
from strategist.oracle import Oracle, OracleError
from strategist.parsing import PlanParseError, parse_plan
from strategist.phase import board_phase
from strategist.prompts import PLAN_SYSTEM, build_plan_prompt

logger = get_logger(__name__)

PLAN_STORAGE_KEY = "tactical-plan"
DEFAULT_REFRESH_INTERVAL = 3


def neutral_plan(phase: GamePhase, ply: int) -> StrategicPlan:
    """Fixed plan used when no plan could ever be generated."""
    return StrategicPlan(
        primary_goal="Develop pieces and control the center",
        tactical_patterns=[
            "Control key central squares",
            "Develop pieces harmoniously",
            "Maintain king safety",
        ],
        coordination_note="Coordinate pieces for central control",
        key_squares=["e4", "e5", "d4", "d5"],
        pawn_plan="Maintain a solid pawn structure",
        threat_note="Watch for tactical shots and counterplay",
        move_priorities=["Develop pieces", "Control center", "Castle"],
        phase_at_creation=phase,
        created_at_ply=ply,
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class PlanStore(ABC):
    """Session-scoped key/value storage for plan records."""

    @abstractmethod
    def get(self, key: str) -> dict | None:
        """Return the record under ``key`` or None."""

    @abstractmethod
    def put(self, key: str, record: dict) -> None:
        """Store ``record`` under ``key``, replacing any previous one."""

    @abstractmethod
    def clear(self, key: str) -> None:
        """Remove the record under ``key`` if present."""


class MemoryPlanStore(PlanStore):
    """In-process store; records live as long as the object."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        record = self._records.get(key)
        return json.loads(json.dumps(record)) if record is not None else None

    def put(self, key: str, record: dict) -> None:
        self._records[key] = json.loads(json.dumps(record))

    def clear(self, key: str) -> None:
        self._records.pop(key, None)


class JsonPlanStore(PlanStore):
    """One JSON file per key inside a session directory."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(self, key: str) -> dict | None:
        """Load a record, backing up and ignoring a corrupted file."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Plan file must contain a JSON object")
            return data
        except (json.JSONDecodeError, ValueError):
            backup = path.with_suffix(".bak")
            shutil.copy2(path, backup)
            logger.warning("Corrupted plan file %s backed up to %s", path, backup)
            return None

    def put(self, key: str, record: dict) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        target = self._path(key)
        tmp = target.with_suffix(".tmp")
        tmp.write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, target)

    def clear(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class StrategicPlanCache:
    """Per-session plan cache refreshed on a fixed ply cadence.

    ``get`` never raises on oracle or parse failures: it keeps the last
    good plan (or the neutral plan) and records a warning instead.
    """

    def __init__(
        self,
        oracle: Oracle,
        store: PlanStore | None = None,
        *,
        refresh_interval: int = DEFAULT_REFRESH_INTERVAL,
        key: str = PLAN_STORAGE_KEY,
    ) -> None:
        if refresh_interval < 1:
            raise ValueError("refresh_interval must be >= 1")
        self._oracle = oracle
        self._store = store if store is not None else MemoryPlanStore()
        self._key = key
        self.refresh_interval = refresh_interval

        self._plan: StrategicPlan | None = None
        self._reasoning = ""
        self._last_refreshed_at_ply = 0
        self.regenerations = 0
        self.last_warning: str | None = None

        self._load()

    @property
    def plan(self) -> StrategicPlan | None:
        return self._plan

    @property
    def reasoning(self) -> str:
        return self._reasoning

    @property
    def last_refreshed_at_ply(self) -> int:
        return self._last_refreshed_at_ply

    def _load(self) -> None:
        record = self._store.get(self._key)
        if record is None:
            return
        try:
            self._plan = StrategicPlan.from_dict(record["plan"])
            self._reasoning = str(record.get("reasoning", ""))
            self._last_refreshed_at_ply = int(record.get("created_at_ply", self._plan.created_at_ply))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable stored plan: %s", exc)
            self._plan = None

    def is_stale(self, ply: int) -> bool:
        """True when the plan must be regenerated at ``ply``.

        A ply behind the last refresh (undo, new game without clear)
        also counts as stale.
        """
        if self._plan is None:
            return True
        delta = ply - self._last_refreshed_at_ply
        return delta < 0 or delta >= self.refresh_interval

    def seed(self, plan: StrategicPlan, reasoning: str = "") -> bool:
        """Adopt a caller-supplied plan if the cache is empty.

        Returns:
            True if the plan was adopted.
        """
        if self._plan is not None:
            return False
        self._plan = plan
        self._reasoning = reasoning
        self._last_refreshed_at_ply = plan.created_at_ply
        return True

    def get(
        self,
        board: chess.Board,
        history: list[str],
        ply: int,
        *,
        phase: GamePhase | None = None,
        narrative: str = "",
    ) -> StrategicPlan:
        """Return the current plan, regenerating it when stale.

        Args:
            board: Current position (not modified).
            history: SAN moves played so far, oldest first.
            ply: Ply count of ``board``.
            phase: Phase to stamp on a new plan; derived from the board if None.
            narrative: Optional recent-move narrative for the plan prompt.

        Returns:
            The cached, regenerated, previous or neutral plan.
        """
        self.last_warning = None
        if not self.is_stale(ply):
            return self._plan
        return self.refresh(board, history, ply, phase=phase, narrative=narrative)

    def refresh(
        self,
        board: chess.Board,
        history: list[str],
        ply: int,
        *,
        phase: GamePhase | None = None,
        narrative: str = "",
    ) -> StrategicPlan:
        """Regenerate the plan now, regardless of cadence."""
        self.last_warning = None
        phase = phase if phase is not None else board_phase(board, ply)
        prompt = build_plan_prompt(board, phase, history[-10:], narrative, self._plan, ply)
        self.regenerations += 1

        try:
            raw = self._oracle.complete(prompt, system=PLAN_SYSTEM, temperature=0.6, max_tokens=800)
            plan, reasoning = parse_plan(raw, phase, ply)
        except (OracleError, PlanParseError) as exc:
            self.last_warning = f"Plan regeneration failed: {exc}"
            logger.warning(self.last_warning)
            if self._plan is None:
                self._plan = neutral_plan(phase, ply)
                self._reasoning = "Neutral default plan"
            self._last_refreshed_at_ply = ply
            return self._plan

        self._plan = plan
        self._reasoning = reasoning
        self._last_refreshed_at_ply = ply
        self._store.put(self._key, {
            "plan": plan.to_dict(),
            "reasoning": reasoning,
            "phase": phase.value,
            "created_at_ply": ply,
            "position": board.fen(),
        })
        logger.info("Plan refreshed at ply %d: %s", ply, plan.primary_goal)
        return plan

    def clear(self) -> None:
        """Drop the plan and its stored record (new session or reset)."""
        self._plan = None
        self._reasoning = ""
        self._last_refreshed_at_ply = 0
        self.last_warning = None
        self._store.clear(self._key)
