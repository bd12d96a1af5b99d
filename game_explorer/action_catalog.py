"""Prioritised action catalog built from a game descriptor.

The catalog encodes a prior over how casual web games take input: start keys
first, then movement, then action keys, then pointer clicks, and finally a
neutral wait. Every tier has a fallback so a catalog is never empty, even when
the analysis step produced nothing useful.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

from .knowledge import Action, ActionIdentity, ActionKind, GameDescriptor, StartHint

logger = logging.getLogger(__name__)

START_KEYS: Tuple[str, ...] = ("Space", "Enter", "Escape")
ARROW_KEYS: Tuple[str, ...] = ("ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight")
WASD_KEYS: Tuple[str, ...] = ("w", "a", "s", "d")
ACTION_KEYS: Tuple[str, ...] = ("Space", "z", "x", "c", "Enter", "Control")
FALLBACK_ACTION_KEYS: Tuple[str, ...] = ("Space", "z", "x")
START_BUTTON_WORDS: Tuple[str, ...] = ("play", "start", "begin")

CANVAS_CENTER_TARGET = "canvas:center"
FIRST_BUTTON_TARGET = "button"

SETTLE_WAIT_MS = 1000
VARIATION_WAIT_MS = 1500


def button_selector(label: str) -> str:
    """Playwright selector for the first button whose text contains `label`."""
    escaped = label.replace("\\", "\\\\").replace('"', '\\"')
    return f'button:has-text("{escaped}")'


def _bidirectional(pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    table: Dict[str, str] = {}
    for a, b in pairs:
        table[a] = b
        table[b] = a
    return table


# Key substitutions tried when a key keeps failing.
KEY_SUBSTITUTIONS: Dict[str, str] = _bidirectional(
    list(zip(ARROW_KEYS, ("w", "s", "a", "d"))) + [("Space", "Enter")]
)


class ActionCatalogBuilder:
    """Turn a `GameDescriptor` into an ordered, cyclic list of candidate actions."""

    def build(self, descriptor: GameDescriptor) -> List[Action]:
        catalog: List[Action] = []
        seen: set[ActionIdentity] = set()

        def emit(actions: Iterable[Action]) -> None:
            for a in actions:
                if a.kind == ActionKind.KEY and a.identity in seen:
                    continue
                seen.add(a.identity)
                catalog.append(a)

        emit(self._start_tier(descriptor))
        emit(Action.key(k) for k in self._movement_keys(descriptor))
        emit(Action.key(k) for k in self._action_keys(descriptor))
        emit(self._pointer_tier(descriptor))
        catalog.append(Action.wait(SETTLE_WAIT_MS))

        logger.info(
            "Built catalog of %d actions for %s: %s",
            len(catalog),
            descriptor.name,
            ", ".join(a.describe() for a in catalog),
        )
        return catalog

    # ------------------------------------------------------------------
    # tiers -------------------------------------------------------------

    def _start_tier(self, descriptor: GameDescriptor) -> List[Action]:
        actions: List[Action] = []
        label = (descriptor.start_label or "").strip()
        if descriptor.start_hint == StartHint.BUTTON and label:
            if any(word in label.lower() for word in START_BUTTON_WORDS):
                actions.append(Action.click(button_selector(label), f"Click {label}"))
            else:
                logger.debug("Start button %r does not look like a start control, skipping", label)
        keys = _intersect(START_KEYS, descriptor.candidate_keys) or list(START_KEYS)
        actions.extend(Action.key(k) for k in keys)
        return actions

    def _movement_keys(self, descriptor: GameDescriptor) -> List[str]:
        lowered = [k.lower() for k in descriptor.candidate_keys]
        keys: List[str] = []
        if any(k.startswith("arrow") for k in lowered):
            keys.extend(ARROW_KEYS)
        if any(k in WASD_KEYS for k in lowered):
            keys.extend(WASD_KEYS)
        return keys or list(ARROW_KEYS)

    def _action_keys(self, descriptor: GameDescriptor) -> List[str]:
        return _intersect(ACTION_KEYS, descriptor.candidate_keys) or list(FALLBACK_ACTION_KEYS)

    def _pointer_tier(self, descriptor: GameDescriptor) -> List[Action]:
        if "click" not in descriptor.candidate_gestures:
            return []
        return [
            Action.click(CANVAS_CENTER_TARGET, "Click canvas center"),
            Action.click(FIRST_BUTTON_TARGET, "Click first button"),
        ]

    # ------------------------------------------------------------------
    def create_action_variations(self, failed_action: Action, descriptor: GameDescriptor) -> List[Action]:
        """Alternatives to try after `failed_action` was given up on.

        Returns an empty list when no substitution applies; the caller then
        simply continues with the catalog order.
        """
        variations: List[Action] = []
        if failed_action.kind == ActionKind.KEY and failed_action.value:
            substitute = KEY_SUBSTITUTIONS.get(failed_action.value) or KEY_SUBSTITUTIONS.get(
                failed_action.value.lower()
            )
            if substitute:
                variations.append(Action.key(substitute))
        elif failed_action.kind == ActionKind.CLICK and "center" in (failed_action.target or ""):
            variations.append(Action.click(FIRST_BUTTON_TARGET, "Click first button"))

        if variations:
            variations.append(Action.wait(VARIATION_WAIT_MS))
            logger.debug(
                "Variations for %s on %s: %s",
                failed_action.describe(),
                descriptor.name,
                [v.describe() for v in variations],
            )
        return variations


def _intersect(whitelist: Sequence[str], candidates: Sequence[str]) -> List[str]:
    """Whitelist entries present in `candidates` (case-insensitive), whitelist order."""
    lowered = {c.lower() for c in candidates}
    return [k for k in whitelist if k.lower() in lowered]
