"""Engine configuration.

Defaults live on the dataclass; ``EngineConfig.from_env()`` overlays
``STRATEGIST_*`` environment variables for the CLI and MCP server.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace

import chess

STRATEGIES = ("single", "critic")

# env var -> (field name, parser)
_ENV_FIELDS = {
    "STRATEGIST_MODEL": ("model", str),
    "STRATEGIST_STRATEGY": ("strategy", str),
    "STRATEGIST_MAX_ATTEMPTS": ("max_attempts", int),
    "STRATEGIST_MAX_ITERATIONS": ("max_iterations", int),
    "STRATEGIST_REFRESH_INTERVAL": ("refresh_interval", int),
    "STRATEGIST_ORACLE_TIMEOUT": ("oracle_timeout", float),
    "STRATEGIST_RECENT_MOVES": ("recent_moves", int),
    "STRATEGIST_ENGINE_COLOR": ("engine_color", str),
    "STRATEGIST_DATA_DIR": ("data_dir", str),
    "STRATEGIST_OPENING_MAX_PLY": ("opening_max_ply", int),
    "STRATEGIST_ENDGAME_MATERIAL": ("endgame_material", int),
}

_ENV_FLAGS = {
    "STRATEGIST_FALLBACK": "fallback_on_exhaustion",
    "STRATEGIST_SHORT_CIRCUIT": "short_circuit_forced",
    "STRATEGIST_NARRATE": "narrate_history",
    "STRATEGIST_USE_PLAN": "use_plan",
}


def _parse_flag(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """Tunables for the decision engine, oracle and plan cache."""

    model: str = "gemini-2.5-flash"
    api_key: str | None = None
    strategy: str = "single"
    max_attempts: int = 5
    max_iterations: int = 5
    refresh_interval: int = 3
    oracle_timeout: float = 30.0
    fallback_on_exhaustion: bool = True
    short_circuit_forced: bool = True
    narrate_history: bool = True
    use_plan: bool = True
    recent_moves: int = 6
    engine_color: str | None = None
    data_dir: str = "data"
    opening_max_ply: int = 8
    endgame_material: int = 20

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES}, got {self.strategy!r}")
        if self.engine_color not in (None, "white", "black"):
            raise ValueError(f"engine_color must be 'white', 'black' or None, got {self.engine_color!r}")
        for name in ("max_attempts", "max_iterations", "refresh_interval"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.oracle_timeout <= 0:
            raise ValueError("oracle_timeout must be positive")

    @property
    def engine_turn(self) -> chess.Color | None:
        """The side the engine plays as a python-chess color, or None for either."""
        if self.engine_color is None:
            return None
        return chess.WHITE if self.engine_color == "white" else chess.BLACK

    def with_overrides(self, **overrides) -> EngineConfig:
        """Return a copy with the given fields replaced (None values ignored)."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if v is not None and k in known}
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EngineConfig:
        """Build a config from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Returns:
            EngineConfig with env overrides applied.

        Raises:
            ValueError: If a numeric or flag variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        for var, (name, parse) in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                values[name] = parse(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid value for {var}: {raw!r}") from exc

        for var, name in _ENV_FLAGS.items():
            raw = env.get(var)
            if raw:
                values[name] = _parse_flag(var, raw)

        api_key = env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY")
        if api_key:
            values["api_key"] = api_key

        return cls(**values)
