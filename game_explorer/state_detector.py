"""Decide from before/after snapshots whether an action changed the page.

Two strategies are available and a run must stick to one of them:

ScreenshotStrategy  – works from opaque image bytes; identical bytes mean no
                      change, otherwise the relative size delta grades how
                      convincing the change is.
StructuralStrategy  – works from page-derived material (truncated markup,
                      truncated visible text, element count).

Neither strategy treats a missing snapshot as evidence of change.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import List, Optional, Sequence

from .knowledge import ChangeResult, PerceptionSnapshot

logger = logging.getLogger(__name__)

SIGNIFICANT_DELTA = 0.05
MARKUP_LIMIT = 5000
TEXT_LIMIT = 2000


class ChangeStrategy:
    """Base class: builds snapshots and compares two of them."""

    name: str = ""

    def compare(self, before: PerceptionSnapshot, after: PerceptionSnapshot) -> ChangeResult:
        missing = _missing_reason(before, after, self.name)
        if missing is not None:
            return ChangeResult(changed=False, confidence=0, description=missing)
        return self._compare(before, after)

    def _compare(self, before: PerceptionSnapshot, after: PerceptionSnapshot) -> ChangeResult:
        raise NotImplementedError


class ScreenshotStrategy(ChangeStrategy):
    name = "screenshot"

    def snapshot(self, image: bytes, element_count: int = 0) -> PerceptionSnapshot:
        return PerceptionSnapshot(
            fingerprint=hashlib.sha256(image).hexdigest(),
            element_count=element_count,
            strategy=self.name,
            raw=image,
        )

    def _compare(self, before: PerceptionSnapshot, after: PerceptionSnapshot) -> ChangeResult:
        if before.raw is None or after.raw is None:
            # no image bytes to size up, the fingerprints are all there is
            if before.fingerprint == after.fingerprint:
                return ChangeResult(False, 95, "Screenshot fingerprints match (no state change detected)")
            return ChangeResult(True, 60, "Screenshot fingerprint changed")
        a, b = before.raw, after.raw
        if a == b:
            return ChangeResult(False, 95, "Screenshots are identical (no state change detected)")
        avg = (len(a) + len(b)) / 2
        size_diff = abs(len(a) - len(b)) / avg if avg else 0.0
        if size_diff > SIGNIFICANT_DELTA:
            return ChangeResult(True, 85, f"Significant state change detected (size differs by {size_diff:.1%})")
        return ChangeResult(True, 60, "Minor state change detected")


class StructuralStrategy(ChangeStrategy):
    name = "structural"

    def snapshot(self, markup: str, text: str, element_count: int) -> PerceptionSnapshot:
        markup = (markup or "")[:MARKUP_LIMIT]
        text = (text or "")[:TEXT_LIMIT]
        canon = json.dumps({"html": markup, "bodyText": text, "elementCount": element_count}, sort_keys=True)
        return PerceptionSnapshot(
            fingerprint=hashlib.sha256(canon.encode("utf-8")).hexdigest(),
            element_count=element_count,
            strategy=self.name,
            markup=markup,
            text=text,
        )

    def _compare(self, before: PerceptionSnapshot, after: PerceptionSnapshot) -> ChangeResult:
        if before.fingerprint != after.fingerprint:
            return ChangeResult(True, 90, "Page fingerprint changed")
        if before.markup[:MARKUP_LIMIT] != after.markup[:MARKUP_LIMIT]:
            return ChangeResult(True, 90, "Page markup changed")
        if before.text[:TEXT_LIMIT] != after.text[:TEXT_LIMIT]:
            return ChangeResult(True, 90, "Visible text changed")
        base = before.element_count
        delta = abs(after.element_count - base) / base if base > 0 else 0.0
        if delta > SIGNIFICANT_DELTA:
            return ChangeResult(True, 90, f"Element count changed by {delta:.1%}")
        return ChangeResult(False, 85, "Page state unchanged")


class StateChangeDetector:
    """Thin facade over one `ChangeStrategy` (screenshot by default)."""

    def __init__(self, strategy: Optional[ChangeStrategy] = None) -> None:
        self.strategy = strategy or ScreenshotStrategy()

    @property
    def strategy_name(self) -> str:
        return self.strategy.name

    def compare(self, before: PerceptionSnapshot, after: PerceptionSnapshot) -> ChangeResult:
        result = self.strategy.compare(before, after)
        logger.debug(
            "compare[%s] changed=%s confidence=%d: %s",
            self.strategy.name,
            result.changed,
            result.confidence,
            result.description,
        )
        return result

    def detect_progression(self, snapshots: Sequence[PerceptionSnapshot]) -> List[ChangeResult]:
        """Compare each snapshot with its predecessor."""
        return [self.compare(snapshots[i - 1], snapshots[i]) for i in range(1, len(snapshots))]


def _missing_reason(before: PerceptionSnapshot, after: PerceptionSnapshot, strategy: str) -> Optional[str]:
    if before is None or not before.available:
        return f"Before snapshot unavailable: {before.error if before is not None else 'not captured'}"
    if after is None or not after.available:
        return f"After snapshot unavailable: {after.error if after is not None else 'not captured'}"
    if before.strategy != after.strategy or before.strategy != strategy:
        return f"Snapshots not comparable ({before.strategy} vs {after.strategy}, detector uses {strategy})"
    return None
