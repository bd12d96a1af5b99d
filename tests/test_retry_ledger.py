from __future__ import annotations

from game_explorer.knowledge import Action
from game_explorer.retry_ledger import RetryLedger

UP = Action.key("ArrowUp").identity
CENTER = Action.click("canvas:center").identity


def test_escalates_after_three_consecutive_failures() -> None:
    ledger = RetryLedger()

    assert ledger.record_failure(UP) == 1
    assert ledger.record_failure(UP) == 2
    assert not ledger.should_escalate(UP)
    assert ledger.record_failure(UP) == 3
    assert ledger.should_escalate(UP)


def test_success_resets_counter() -> None:
    ledger = RetryLedger()
    ledger.record_failure(UP)
    ledger.record_failure(UP)

    ledger.record_success(UP)

    assert ledger.failure_count(UP) == 0
    assert len(ledger) == 0
    ledger.record_failure(UP)
    ledger.record_failure(UP)
    assert not ledger.should_escalate(UP)


def test_identities_are_tracked_independently() -> None:
    ledger = RetryLedger()
    for _ in range(3):
        ledger.record_failure(UP)
    ledger.record_failure(CENTER)

    assert ledger.should_escalate(UP)
    assert not ledger.should_escalate(CENTER)


def test_escalate_evicts_and_abandons() -> None:
    ledger = RetryLedger()
    for _ in range(3):
        ledger.record_failure(UP)

    ledger.escalate(UP)

    assert ledger.failure_count(UP) == 0
    assert len(ledger) == 0
    assert ledger.is_abandoned(UP)
    assert not ledger.is_abandoned(CENTER)

    ledger.clear()
    assert not ledger.is_abandoned(UP)


def test_identity_uses_value_before_target() -> None:
    a = Action.click("canvas:center", "Click canvas center")
    b = Action.click("canvas:center")

    assert a.identity != b.identity
    assert b.identity[1] == "canvas:center"


def test_escalate_without_abandon_only_evicts() -> None:
    ledger = RetryLedger()
    for _ in range(3):
        ledger.record_failure(CENTER)

    ledger.escalate(CENTER, abandon=False)

    assert ledger.failure_count(CENTER) == 0
    assert not ledger.is_abandoned(CENTER)
    assert ledger.abandoned == set()


def test_waits_of_different_length_are_tracked_apart() -> None:
    short, long = Action.wait(1000).identity, Action.wait(1500).identity
    ledger = RetryLedger()
    for _ in range(3):
        ledger.record_failure(short)

    ledger.escalate(short)

    assert short != long
    assert not ledger.is_abandoned(long)
