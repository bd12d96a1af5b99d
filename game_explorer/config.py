"""Run configuration for the interaction-cycle engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Dict

from dotenv import load_dotenv

from .knowledge import Action, ActionKind

# Actuator timeouts per action kind (milliseconds). Wait actions get their own
# duration plus this much headroom.
ACTION_TIMEOUTS_MS: Dict[ActionKind, int] = {
    ActionKind.KEY: 3_000,
    ActionKind.TYPE: 5_000,
    ActionKind.CLICK: 20_000,
    ActionKind.WAIT: 3_000,
}

_ENV_PREFIX = "GAME_EXPLORER_"


def action_timeout_ms(action: Action) -> int:
    base = ACTION_TIMEOUTS_MS.get(action.kind, 3_000)
    if action.kind == ActionKind.WAIT:
        return base + (action.duration_ms or 1000)
    return base


@dataclass
class EngineConfig:
    """Tunable limits of a single run.

    All durations are milliseconds. The defaults are the values the engine
    was calibrated with against casual browser games.
    """

    max_actions_per_run: int = 10
    max_consecutive_no_change: int = 3
    settle_delay_ms: int = 800
    discovery_retry_delay_ms: int = 2_000
    escalation_threshold: int = 2
    time_budget_ms: int = 120_000

    def __post_init__(self) -> None:
        if self.max_actions_per_run < 1:
            raise ValueError("max_actions_per_run must be at least 1")
        if self.max_consecutive_no_change < 1:
            raise ValueError("max_consecutive_no_change must be at least 1")
        for name in ("settle_delay_ms", "discovery_retry_delay_ms", "escalation_threshold", "time_budget_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    @classmethod
    def from_env(cls, **overrides: int) -> "EngineConfig":
        """Build a config from ``GAME_EXPLORER_*`` variables (``.env`` is honoured).

        e.g. ``GAME_EXPLORER_MAX_ACTIONS_PER_RUN=25``. Explicit keyword
        overrides win over the environment.
        """
        load_dotenv()
        values: Dict[str, int] = {}
        for f in fields(cls):
            raw = os.getenv(_ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            try:
                values[f.name] = int(raw)
            except ValueError as exc:
                raise ValueError(f"{_ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}") from exc
        values.update(overrides)
        return cls(**values)
