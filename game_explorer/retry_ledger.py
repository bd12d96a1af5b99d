"""Per-action failure bookkeeping with a fixed escalation threshold."""

from __future__ import annotations

import logging
from typing import Dict, Set

from .knowledge import ActionIdentity

logger = logging.getLogger(__name__)


class RetryLedger:
    """Counts consecutive failures per action identity.

    An identity whose count goes past `threshold` should be escalated: its
    counter is evicted and, for catalog entries, the action is abandoned for
    the rest of the run. Only catalog identities are abandoned, so the set
    never outgrows the catalog.
    There is no backoff; every attempt already costs a bounded amount of time.
    """

    def __init__(self, threshold: int = 2) -> None:
        self.threshold = threshold
        self._failures: Dict[ActionIdentity, int] = {}
        self._abandoned: Set[ActionIdentity] = set()

    def record_failure(self, identity: ActionIdentity) -> int:
        count = self._failures.get(identity, 0) + 1
        self._failures[identity] = count
        return count

    def record_success(self, identity: ActionIdentity) -> None:
        self._failures.pop(identity, None)

    def failure_count(self, identity: ActionIdentity) -> int:
        return self._failures.get(identity, 0)

    def should_escalate(self, identity: ActionIdentity) -> bool:
        return self._failures.get(identity, 0) > self.threshold

    def escalate(self, identity: ActionIdentity, abandon: bool = True) -> None:
        """Evict the counter; with `abandon` the identity is also skipped from now on."""
        count = self._failures.pop(identity, 0)
        if abandon:
            self._abandoned.add(identity)
        logger.info(
            "%s %s:%s after %d consecutive failures",
            "Abandoning" if abandon else "Dropping",
            identity[0].value,
            identity[1],
            count,
        )

    def is_abandoned(self, identity: ActionIdentity) -> bool:
        return identity in self._abandoned

    @property
    def abandoned(self) -> Set[ActionIdentity]:
        return set(self._abandoned)

    def __len__(self) -> int:
        return len(self._failures)

    def clear(self) -> None:
        self._failures.clear()
        self._abandoned.clear()
