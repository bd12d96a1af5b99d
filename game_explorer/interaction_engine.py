"""The observe → act → wait → observe driver for Game-Explorer.

`InteractionCycleEngine` owns the action catalog, the retry ledger, a cyclic
cursor and the run counters. It talks to the page only through two injected
capabilities (an `Actuator` and a `PerceptionSource`) and never lets an
in-run failure escape: failed actions become failed `ActionResult`s and failed
captures become unavailable snapshots.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Protocol, runtime_checkable

from .action_catalog import ActionCatalogBuilder
from .config import EngineConfig
from .errors import EngineConfigurationError, StopReason
from .knowledge import (
    Action,
    ActionIdentity,
    ActionResult,
    ChangeResult,
    EngineState,
    GameDescriptor,
    PerceptionSnapshot,
    TransitionGraph,
)
from .retry_ledger import RetryLedger
from .state_detector import StateChangeDetector

logger = logging.getLogger(__name__)


@runtime_checkable
class Actuator(Protocol):
    """Executes one primitive action. Must honour its own per-call timeout."""

    async def execute(self, action: Action) -> ActionResult: ...


@runtime_checkable
class PerceptionSource(Protocol):
    """Produces snapshots; best-effort, returns an unavailable snapshot on failure.

    Sources may also provide ``async discover() -> list[Action]`` for the
    observe-first variant of the cycle.
    """

    async def snapshot(self) -> PerceptionSnapshot: ...


@dataclass
class RunBudget:
    time_budget_ms: int = 120_000
    max_cycles: Optional[int] = None
    observe_first: bool = False


@dataclass
class RunSummary:
    game: str
    state: EngineState
    stop_reason: Optional[StopReason]
    actions_performed: int
    successful_actions: int
    failed_actions: int
    perception_failures: int
    screens_navigated: int
    elapsed_ms: float
    abandoned: List[str] = field(default_factory=list)
    effective_actions: List[str] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list, repr=False)

    def to_json(self) -> Dict[str, Any]:
        return {
            "game": self.game,
            "state": self.state.value,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "actions_performed": self.actions_performed,
            "successful_actions": self.successful_actions,
            "failed_actions": self.failed_actions,
            "perception_failures": self.perception_failures,
            "screens_navigated": self.screens_navigated,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "abandoned": self.abandoned,
            "effective_actions": self.effective_actions,
            "actions": [a.to_json() for a in self.actions],
        }


class InteractionCycleEngine:
    """Drives bounded interaction cycles against one page under test.

    One instance per game/page; cycles are strictly sequential.
    """

    def __init__(
        self,
        actuator: Optional[Actuator] = None,
        perception: Optional[PerceptionSource] = None,
        detector: Optional[StateChangeDetector] = None,
        config: Optional[EngineConfig] = None,
        descriptor: Optional[GameDescriptor] = None,
        catalog_builder: Optional[ActionCatalogBuilder] = None,
    ) -> None:
        self._actuator: Optional[Actuator] = None
        self._perception: Optional[PerceptionSource] = None
        self.attach(actuator=actuator, perception=perception)

        self._detector = detector or StateChangeDetector()
        self._config = config or EngineConfig()
        self._builder = catalog_builder or ActionCatalogBuilder()
        self._ledger = RetryLedger(self._config.escalation_threshold)
        self._graph = TransitionGraph()

        self._descriptor = descriptor or GameDescriptor.unknown()
        self._catalog: List[Action] = self._builder.build(self._descriptor)
        self._in_cycle = False
        self._reset_run_state()

    # ------------------------------------------------------------------
    # wiring --------------------------------------------------------------

    def attach(
        self,
        actuator: Optional[Actuator] = None,
        perception: Optional[PerceptionSource] = None,
    ) -> None:
        """Set (or replace) the capabilities. Objects lacking the required methods are rejected."""
        if actuator is not None:
            if not callable(getattr(actuator, "execute", None)):
                raise EngineConfigurationError(f"{type(actuator).__name__} has no execute() method")
            self._actuator = actuator
        if perception is not None:
            if not callable(getattr(perception, "snapshot", None)):
                raise EngineConfigurationError(f"{type(perception).__name__} has no snapshot() method")
            self._perception = perception

    def build_catalog(self, descriptor: GameDescriptor) -> List[Action]:
        self._descriptor = descriptor
        self._catalog = self._builder.build(descriptor)
        self._cursor = 0
        self._pending.clear()
        return list(self._catalog)

    def _reset_run_state(self) -> None:
        self._state = EngineState.IDLE
        self._stop_reason: Optional[StopReason] = None
        self._cursor = 0
        self._pending: Deque[Action] = deque()
        self._action_history: List[Action] = []
        self._state_history: List[PerceptionSnapshot] = []
        self._baseline: Optional[PerceptionSnapshot] = None
        self._last_change: Optional[ChangeResult] = None
        self._total_actions = 0
        self._successful_actions = 0
        self._failed_actions = 0
        self._perception_failures = 0
        self._cycle_failure: Optional[StopReason] = None
        self._consecutive_no_change = 0
        self._started_at: Optional[float] = None
        self._elapsed_ms = 0.0
        self._ledger.clear()
        self._graph.clear()

    def reset(self) -> None:
        """Drop all run state and return to `Idle`. The catalog is kept."""
        self._reset_run_state()
        logger.debug("Engine reset")

    # ------------------------------------------------------------------
    # read accessors ------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def stop_reason(self) -> Optional[StopReason]:
        return self._stop_reason

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def ledger(self) -> RetryLedger:
        return self._ledger

    @property
    def descriptor(self) -> GameDescriptor:
        return self._descriptor

    @property
    def total_actions_executed(self) -> int:
        return self._total_actions

    @property
    def successful_action_count(self) -> int:
        return self._successful_actions

    @property
    def consecutive_no_change(self) -> int:
        return self._consecutive_no_change

    @property
    def last_change(self) -> Optional[ChangeResult]:
        return self._last_change

    @property
    def cycle_failure(self) -> Optional[StopReason]:
        """`ACTUATOR_FAILURE` or `PERCEPTION_FAILURE` for the latest cycle, None when it went through."""
        return self._cycle_failure

    @property
    def elapsed_ms(self) -> float:
        if self._started_at is not None and not self._state.terminal:
            return (time.monotonic() - self._started_at) * 1000
        return self._elapsed_ms

    def catalog(self) -> List[Action]:
        return list(self._catalog)

    def action_history(self) -> List[Action]:
        return list(self._action_history)

    def state_history(self) -> List[PerceptionSnapshot]:
        return list(self._state_history)

    def transition_graph(self) -> TransitionGraph:
        return self._graph

    def has_state_changed(self) -> bool:
        """Compare the fingerprints of the two most recent snapshots."""
        if len(self._state_history) < 2:
            return False
        return self._state_history[-1].fingerprint != self._state_history[-2].fingerprint

    def summary(self) -> RunSummary:
        return RunSummary(
            game=self._descriptor.name,
            state=self._state,
            stop_reason=self._stop_reason,
            actions_performed=self._total_actions,
            successful_actions=self._successful_actions,
            failed_actions=self._failed_actions,
            perception_failures=self._perception_failures,
            screens_navigated=self._graph.state_count,
            elapsed_ms=self.elapsed_ms,
            abandoned=sorted(f"{kind.value}:{label}" for kind, label in self._ledger.abandoned),
            effective_actions=self._graph.effective_actions(),
            actions=list(self._action_history),
        )

    # ------------------------------------------------------------------
    # cycles ----------------------------------------------------------------

    async def observe(self) -> PerceptionSnapshot:
        """Capture a snapshot and make it the baseline for the next action."""
        self._require_capabilities()
        snap = await self._capture()
        self._state_history.append(snap)
        self._baseline = snap
        return snap

    async def run_cycle(self) -> bool:
        """Run one cycle with the next catalog action. Returns True when the page changed."""
        if not self._begin_cycle():
            return False
        try:
            action = self._select_action()
            if action is None:
                self._finish(EngineState.EXHAUSTED, StopReason.CATALOG_EXHAUSTION)
                return False
            return await self._execute_cycle(action)
        finally:
            self._in_cycle = False

    async def run_cycle_observe_first(self) -> bool:
        """Like `run_cycle`, but a freshly discovered action overrides the catalog once."""
        if not self._begin_cycle():
            return False
        try:
            discovered = await self._discover()
            if not discovered and self._supports_discovery():
                logger.info("No interactive elements found, retrying discovery once")
                await asyncio.sleep(self._config.discovery_retry_delay_ms / 1000)
                discovered = await self._discover()
            if discovered:
                logger.info("Using discovered action %s ahead of the catalog", discovered[0].describe())
                return await self._execute_cycle(discovered[0])
            action = self._select_action()
            if action is None:
                self._finish(EngineState.EXHAUSTED, StopReason.CATALOG_EXHAUSTION)
                return False
            return await self._execute_cycle(action)
        finally:
            self._in_cycle = False

    async def run_until_budget_or_completion(self, budget: Optional[RunBudget] = None) -> RunSummary:
        """Run cycles until the engine leaves `Running` or a budget ceiling is hit."""
        self._require_capabilities()
        budget = budget or RunBudget(time_budget_ms=self._config.time_budget_ms)
        if self._state == EngineState.IDLE:
            self._start()
        if self._baseline is None and self._state == EngineState.RUNNING:
            await self.observe()

        cycles = 0
        while self._state == EngineState.RUNNING:
            if budget.max_cycles is not None and cycles >= budget.max_cycles:
                self._finish(EngineState.COMPLETED, StopReason.CYCLES_COMPLETED)
                break
            if self.elapsed_ms >= budget.time_budget_ms:
                logger.info("Time budget of %dms used up", budget.time_budget_ms)
                self._finish(EngineState.EXHAUSTED, StopReason.BUDGET_EXCEEDED)
                break
            if self._total_actions >= self._config.max_actions_per_run:
                self._finish(EngineState.EXHAUSTED, StopReason.BUDGET_EXCEEDED)
                break
            logger.debug("Cycle %d (%d actions so far)", cycles + 1, self._total_actions)
            if budget.observe_first:
                await self.run_cycle_observe_first()
            else:
                await self.run_cycle()
            cycles += 1

        summary = self.summary()
        logger.info(
            "Run finished: state=%s reason=%s actions=%d changed=%d failed=%d screens=%d",
            summary.state.value,
            summary.stop_reason.value if summary.stop_reason else None,
            summary.actions_performed,
            summary.successful_actions,
            summary.failed_actions,
            summary.screens_navigated,
        )
        return summary

    # ------------------------------------------------------------------
    # helpers ---------------------------------------------------------------

    def _begin_cycle(self) -> bool:
        self._require_capabilities()
        if self._in_cycle:
            raise RuntimeError("run_cycle() must not be called concurrently on the same engine")
        if self._state.terminal:
            return False
        if self._state == EngineState.IDLE:
            self._start()
        if self._total_actions >= self._config.max_actions_per_run:
            logger.info("Max actions reached (%d)", self._config.max_actions_per_run)
            self._finish(EngineState.EXHAUSTED, StopReason.BUDGET_EXCEEDED)
            return False
        self._in_cycle = True
        return True

    def _require_capabilities(self) -> None:
        missing = [
            name
            for name, cap in (("actuator", self._actuator), ("perception source", self._perception))
            if cap is None
        ]
        if missing:
            self._finish(EngineState.ABORTED, StopReason.CONFIGURATION_ERROR)
            raise EngineConfigurationError(f"No {' or '.join(missing)} attached to the engine")

    def _start(self) -> None:
        self._state = EngineState.RUNNING
        self._started_at = time.monotonic()
        logger.info("Starting run for %s with %d catalog actions", self._descriptor.name, len(self._catalog))

    def _finish(self, state: EngineState, reason: StopReason) -> None:
        if self._state.terminal:
            return
        self._elapsed_ms = self.elapsed_ms
        self._state = state
        self._stop_reason = reason
        logger.info("Engine %s (%s)", state.value, reason.value)

    def _select_action(self) -> Optional[Action]:
        while self._pending:
            candidate = self._pending.popleft()
            if not self._ledger.is_abandoned(candidate.identity):
                return candidate
        if not self._catalog:
            return None
        for _ in range(len(self._catalog)):
            candidate = self._catalog[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._catalog)
            if not self._ledger.is_abandoned(candidate.identity):
                return candidate
        return None

    async def _execute_cycle(self, template: Action) -> bool:
        action = template.replay()
        self._cycle_failure = None
        before = self._baseline or PerceptionSnapshot.unavailable(
            "no baseline snapshot captured", self._detector.strategy_name
        )

        result = await self._invoke(action)
        action.attach_result(result)
        self._action_history.append(action)
        self._total_actions += 1
        identity = action.identity

        if not result.success:
            self._failed_actions += 1
            self._cycle_failure = StopReason.ACTUATOR_FAILURE
            count = self._ledger.record_failure(identity)
            logger.warning("Action %s failed (attempt %d): %s", action.describe(), count, result.error)
            if self._ledger.should_escalate(identity):
                self._ledger.escalate(identity, abandon=self._in_catalog(identity))
                self._queue_variations(template)
                if self._catalog_exhausted():
                    self._finish(EngineState.EXHAUSTED, StopReason.CATALOG_EXHAUSTION)
            self._last_change = ChangeResult(False, 0, f"Action failed: {result.error}")
            return False

        self._ledger.record_success(identity)
        await asyncio.sleep(self._config.settle_delay_ms / 1000)
        after = await self._capture()
        if not after.available:
            self._perception_failures += 1
            self._cycle_failure = StopReason.PERCEPTION_FAILURE
        change = self._detector.compare(before, after)
        self._last_change = change

        if change.changed:
            self._consecutive_no_change = 0
            self._successful_actions += 1
            logger.info(
                "State change after %s (confidence: %d%%): %s",
                action.describe(),
                change.confidence,
                change.description,
            )
        else:
            self._consecutive_no_change += 1
            logger.info("No state change after %s: %s", action.describe(), change.description)

        # the baseline is normally already the latest entry
        if before.available and (not self._state_history or self._state_history[-1] is not before):
            self._state_history.append(before)
        self._state_history.append(after)
        self._graph.add_transition(before, action, after, change)
        self._baseline = after

        if self._consecutive_no_change >= self._config.max_consecutive_no_change:
            self._finish(EngineState.EXHAUSTED, StopReason.NO_CHANGE_LIMIT)
        return change.changed

    async def _invoke(self, action: Action) -> ActionResult:
        started = time.time()
        logger.debug("Executing %s", action.describe())
        try:
            result = await self._actuator.execute(action)  # type: ignore[union-attr]
        except Exception as exc:
            logger.warning("Actuator raised while executing %s: %s", action.describe(), exc)
            return ActionResult.failure(f"{type(exc).__name__}: {exc}", started)
        if not isinstance(result, ActionResult):
            return ActionResult.failure(f"actuator returned {type(result).__name__}, not ActionResult", started)
        return result

    async def _capture(self) -> PerceptionSnapshot:
        try:
            snap = await self._perception.snapshot()  # type: ignore[union-attr]
        except Exception as exc:
            logger.warning("Snapshot capture failed: %s", exc)
            return PerceptionSnapshot.unavailable(f"capture failed: {exc}", self._detector.strategy_name)
        if snap is None:
            return PerceptionSnapshot.unavailable("perception source returned nothing", self._detector.strategy_name)
        return snap

    def _supports_discovery(self) -> bool:
        return callable(getattr(self._perception, "discover", None))

    async def _discover(self) -> List[Action]:
        if not self._supports_discovery():
            return []
        try:
            found = await self._perception.discover()  # type: ignore[union-attr]
        except Exception as exc:
            logger.warning("Discovery failed (normal after DOM changes): %s", str(exc)[:100])
            return []
        return [a for a in (found or []) if not self._ledger.is_abandoned(a.identity)]

    def _queue_variations(self, failed: Action) -> None:
        queued = {a.identity for a in self._pending}
        for variation in self._builder.create_action_variations(failed, self._descriptor):
            if variation.identity in queued or self._ledger.is_abandoned(variation.identity):
                continue
            queued.add(variation.identity)
            self._pending.append(variation)

    def _in_catalog(self, identity: ActionIdentity) -> bool:
        return any(a.identity == identity for a in self._catalog)

    def _catalog_exhausted(self) -> bool:
        if self._pending:
            return False
        return all(self._ledger.is_abandoned(a.identity) for a in self._catalog)
