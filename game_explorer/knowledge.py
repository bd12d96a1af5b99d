"""Data structures that form the *knowledge* backbone of Game-Explorer.

Actions and their results, the descriptor handed over by the game-analysis
step, perception snapshots, and the transition graph that links observed
page states through the actions executed between them.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

import networkx as nx


class ActionKind(str, Enum):
    """Supported interaction primitives."""

    CLICK = "click"
    TYPE = "type"
    KEY = "key"
    WAIT = "wait"


class RenderingKind(str, Enum):
    CANVAS = "canvas"
    DOM = "dom"
    WEBGL = "webgl"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class StartHint(str, Enum):
    """How the analysis step thinks the game is started."""

    BUTTON = "button"
    KEY = "key"
    AUTO = "auto"


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXHAUSTED = "exhausted"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (EngineState.EXHAUSTED, EngineState.COMPLETED, EngineState.ABORTED)


ActionIdentity = Tuple[ActionKind, Optional[str]]


@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None
    executed_at: float = field(default_factory=time.time)
    duration_ms: float = 0.0

    @classmethod
    def failure(cls, error: str, started: float) -> "ActionResult":
        now = time.time()
        return cls(success=False, error=error, executed_at=now, duration_ms=(now - started) * 1000)


@dataclass
class Action:
    """One primitive instruction the engine can issue.

    Catalog entries act as templates; each execution works on a copy obtained
    from `replay()` so that a result is attached exactly once per execution.
    """

    kind: ActionKind
    target: Optional[str] = None
    value: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: float = field(default_factory=time.time, compare=False)
    result: Optional[ActionResult] = field(default=None, compare=False)

    # -- constructors ------------------------------------------------------
    @classmethod
    def key(cls, name: str) -> "Action":
        return cls(ActionKind.KEY, value=name)

    @classmethod
    def click(cls, target: str, label: Optional[str] = None) -> "Action":
        return cls(ActionKind.CLICK, target=target, value=label)

    @classmethod
    def type_text(cls, text: str, target: Optional[str] = None) -> "Action":
        return cls(ActionKind.TYPE, target=target, value=text)

    @classmethod
    def wait(cls, duration_ms: int) -> "Action":
        return cls(ActionKind.WAIT, duration_ms=duration_ms)

    # ----------------------------------------------------------------------
    @property
    def identity(self) -> ActionIdentity:
        """Key used for retry/failure tracking: ``(kind, value or target)``.

        Waits are told apart by their duration.
        """
        if self.kind == ActionKind.WAIT:
            return (self.kind, f"{self.duration_ms or 0}ms")
        return (self.kind, self.value if self.value is not None else self.target)

    def replay(self) -> "Action":
        """Fresh, result-less copy stamped with the current time."""
        return replace(self, created_at=time.time(), result=None)

    def attach_result(self, result: ActionResult) -> None:
        if self.result is not None:
            raise ValueError(f"result already attached to {self.describe()}")
        self.result = result

    def describe(self) -> str:
        if self.kind == ActionKind.WAIT:
            return f"wait {self.duration_ms or 0}ms"
        if self.kind == ActionKind.KEY:
            return f"key {self.value}"
        if self.kind == ActionKind.TYPE:
            return f"type {self.value!r}" + (f" into {self.target}" if self.target else "")
        return f"click {self.target}" + (f" ({self.value})" if self.value else "")

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "target": self.target,
            "value": self.value,
            "duration_ms": self.duration_ms,
            "created_at": self.created_at,
        }
        if self.result is not None:
            data["result"] = {
                "success": self.result.success,
                "error": self.result.error,
                "executed_at": self.result.executed_at,
                "duration_ms": self.result.duration_ms,
            }
        return data


@dataclass(frozen=True)
class GameDescriptor:
    """Static guess about a game's controls, produced by the analysis step.

    Read-only to the engine.
    """

    name: str = "unknown"
    rendering_kind: RenderingKind = RenderingKind.UNKNOWN
    candidate_keys: Tuple[str, ...] = ()
    candidate_gestures: FrozenSet[str] = frozenset()
    start_hint: StartHint = StartHint.AUTO
    start_label: Optional[str] = None
    confidence: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within 0..100, got {self.confidence}")
        # ordered set semantics for keys
        deduped = tuple(dict.fromkeys(self.candidate_keys))
        if deduped != self.candidate_keys:
            object.__setattr__(self, "candidate_keys", deduped)

    @classmethod
    def unknown(cls) -> "GameDescriptor":
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameDescriptor":
        """Accept the analysis payload in either camelCase or snake_case."""

        def pick(*names: str, default: Any = None) -> Any:
            for n in names:
                if n in data and data[n] is not None:
                    return data[n]
            return default

        rendering = str(pick("renderingKind", "rendering_kind", "gameType", default="unknown")).lower()
        hint = str(pick("startHint", "start_hint", "startAction", default="auto")).lower()
        try:
            rendering_kind = RenderingKind(rendering)
        except ValueError:
            rendering_kind = RenderingKind.UNKNOWN
        try:
            start_hint = StartHint(hint)
        except ValueError:
            start_hint = StartHint.AUTO
        confidence = int(pick("confidence", default=0))
        return cls(
            name=str(pick("name", "gameName", default="unknown")),
            rendering_kind=rendering_kind,
            candidate_keys=tuple(str(k) for k in pick("candidateKeys", "candidate_keys", "keyboardKeys", default=[])),
            candidate_gestures=frozenset(
                str(g).lower() for g in pick("candidateGestures", "candidate_gestures", "mouseActions", default=[])
            ),
            start_hint=start_hint,
            start_label=pick("startLabel", "start_label", "startActionLabel"),
            confidence=max(0, min(100, confidence)),
        )


@dataclass
class PerceptionSnapshot:
    """Comparable fingerprint of the page at one instant.

    `markup`/`text` are filled by the structural strategy, `raw` by the
    screenshot strategy. Two snapshots are only comparable when `strategy`
    matches.
    """

    fingerprint: str
    element_count: int = 0
    captured_at: float = field(default_factory=time.time)
    strategy: str = "screenshot"
    markup: str = field(default="", repr=False)
    text: str = field(default="", repr=False)
    raw: Optional[bytes] = field(default=None, repr=False)
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.error is None

    @classmethod
    def unavailable(cls, reason: str, strategy: str = "screenshot") -> "PerceptionSnapshot":
        return cls(fingerprint="", element_count=0, strategy=strategy, error=reason)


@dataclass(frozen=True)
class ChangeResult:
    changed: bool
    confidence: int
    description: str


class TransitionGraph:
    """Directed multigraph of snapshot fingerprints linked by executed actions."""

    def __init__(self) -> None:
        self._g: nx.MultiDiGraph = nx.MultiDiGraph()

    def add_transition(
        self,
        before: PerceptionSnapshot,
        action: Action,
        after: PerceptionSnapshot,
        result: ChangeResult,
    ) -> None:
        if not (before.available and after.available):
            return
        for snap in (before, after):
            if snap.fingerprint not in self._g:
                self._g.add_node(snap.fingerprint, element_count=snap.element_count, first_seen=snap.captured_at)
        kind, label = action.identity
        self._g.add_edge(
            before.fingerprint,
            after.fingerprint,
            key=f"{kind.value}:{label}",
            changed=result.changed,
            confidence=result.confidence,
        )

    @property
    def state_count(self) -> int:
        return self._g.number_of_nodes()

    def effective_actions(self) -> List[str]:
        """Edge keys of actions that moved the page to a different state."""
        seen: Dict[str, None] = {}
        for u, v, k, data in self._g.edges(keys=True, data=True):
            if u != v and data.get("changed"):
                seen.setdefault(k, None)
        return list(seen)

    def clear(self) -> None:
        self._g.clear()

    def to_networkx(self) -> nx.MultiDiGraph:
        return self._g
