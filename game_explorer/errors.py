"""Error taxonomy for Game-Explorer.

Only configuration problems are raised to callers. Everything that goes wrong
while a run is in progress is represented as data (a failed `ActionResult`, an
unavailable snapshot, or a `StopReason` on the run summary).
"""

from __future__ import annotations

from enum import Enum


class GameExplorerError(Exception):
    """Base class for errors raised by this package."""


class EngineConfigurationError(GameExplorerError):
    """The engine was wired without a usable actuator or perception source."""


class ActionTimeoutError(GameExplorerError):
    """An actuator call exceeded its per-action timeout."""

    def __init__(self, operation: str, timeout_ms: int) -> None:
        super().__init__(f'Operation "{operation}" exceeded timeout of {timeout_ms}ms')
        self.operation = operation
        self.timeout_ms = timeout_ms


class StopReason(str, Enum):
    """Why a run (or a single cycle) stopped making progress."""

    ACTUATOR_FAILURE = "actuator_failure"
    PERCEPTION_FAILURE = "perception_failure"
    CATALOG_EXHAUSTION = "catalog_exhaustion"
    BUDGET_EXCEEDED = "budget_exceeded"
    NO_CHANGE_LIMIT = "no_change_limit"
    CYCLES_COMPLETED = "cycles_completed"
    CONFIGURATION_ERROR = "configuration_error"
