"""Game-Explorer: automated exploratory testing of browser games.

Given a heuristic description of a game's likely controls, the package builds a
prioritised catalog of trial inputs, drives a bounded observe → act → wait →
observe loop against a page, and judges from before/after snapshots whether
each input made the game react.

Key sub-modules:

knowledge.py           – Data model: actions, results, descriptors, snapshots, transition graph.
action_catalog.py      – Tiered catalog construction and retry variations.
retry_ledger.py        – Consecutive-failure counting and escalation.
state_detector.py      – Screenshot- and structure-based change detection.
interaction_engine.py  – The cycle engine and its multi-cycle driver.
browser.py             – Playwright implementations of the actuator/perception capabilities.
config.py              – Run limits and per-action timeouts.
"""

from .action_catalog import ActionCatalogBuilder
from .config import EngineConfig
from .errors import EngineConfigurationError, GameExplorerError, StopReason
from .interaction_engine import InteractionCycleEngine, RunBudget, RunSummary
from .knowledge import (
    Action,
    ActionKind,
    ActionResult,
    ChangeResult,
    EngineState,
    GameDescriptor,
    PerceptionSnapshot,
)
from .retry_ledger import RetryLedger
from .state_detector import ScreenshotStrategy, StateChangeDetector, StructuralStrategy

__all__ = [
    "Action",
    "ActionCatalogBuilder",
    "ActionKind",
    "ActionResult",
    "ChangeResult",
    "EngineConfig",
    "EngineConfigurationError",
    "EngineState",
    "GameDescriptor",
    "GameExplorerError",
    "InteractionCycleEngine",
    "PerceptionSnapshot",
    "RetryLedger",
    "RunBudget",
    "RunSummary",
    "ScreenshotStrategy",
    "StateChangeDetector",
    "StopReason",
    "StructuralStrategy",
]
