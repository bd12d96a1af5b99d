from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

import pytest

from game_explorer import browser
from game_explorer.browser import (
    CANVAS_CENTER_JS,
    VISIBLE_BUTTONS_JS,
    PlaywrightActuator,
    PlaywrightPerception,
    PollingPerception,
)
from game_explorer.knowledge import Action, ActionKind, PerceptionSnapshot
from game_explorer.state_detector import ScreenshotStrategy

SHOTS = ScreenshotStrategy()


class FakeKeyboard:
    def __init__(self, delay_s: float = 0.0) -> None:
        self.pressed: List[str] = []
        self._delay_s = delay_s

    async def press(self, key: str) -> None:
        await asyncio.sleep(self._delay_s)
        self.pressed.append(key)


class FakeMouse:
    def __init__(self) -> None:
        self.clicks: List[Tuple[int, int]] = []

    async def click(self, x: int, y: int) -> None:
        self.clicks.append((x, y))


class FakePage:
    def __init__(
        self,
        canvas: Optional[dict] = None,
        buttons: Optional[List[str]] = None,
        key_delay_s: float = 0.0,
    ) -> None:
        self.keyboard = FakeKeyboard(key_delay_s)
        self.mouse = FakeMouse()
        self._canvas = canvas
        self._buttons = buttons or []
        self.scripts: List[str] = []

    async def evaluate(self, script: str, *args: Any) -> Any:
        self.scripts.append(script)
        if script == CANVAS_CENTER_JS:
            return self._canvas
        if script == VISIBLE_BUTTONS_JS:
            return self._buttons[: args[0]]
        raise AssertionError("unexpected script")


class CountingSource:
    def __init__(self) -> None:
        self.calls = 0

    async def snapshot(self) -> PerceptionSnapshot:
        self.calls += 1
        return SHOTS.snapshot(b"frame")


def _run(coro):
    return asyncio.run(coro)


def test_key_press_succeeds() -> None:
    page = FakePage()

    result = _run(PlaywrightActuator(page).execute(Action.key("Space")))

    assert result.success
    assert page.keyboard.pressed == ["Space"]


def test_slow_key_press_times_out_as_failed_result(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(browser, "action_timeout_ms", lambda action: 20)
    page = FakePage(key_delay_s=1.0)

    result = _run(PlaywrightActuator(page).execute(Action.key("ArrowUp")))

    assert not result.success
    assert "exceeded timeout of 20ms" in result.error
    assert page.keyboard.pressed == []


def test_canvas_coordinates_are_clicked() -> None:
    page = FakePage()

    result = _run(PlaywrightActuator(page).execute(Action.click("canvas:120,45")))

    assert result.success
    assert page.mouse.clicks == [(120, 45)]


@pytest.mark.parametrize("target", ["canvas:left,top", "canvas:12", "canvas:"])
def test_malformed_canvas_target_fails(target: str) -> None:
    page = FakePage()

    result = _run(PlaywrightActuator(page).execute(Action.click(target)))

    assert not result.success
    assert "Invalid canvas coordinates" in result.error
    assert page.mouse.clicks == []


def test_key_without_value_fails() -> None:
    result = _run(PlaywrightActuator(FakePage()).execute(Action(ActionKind.KEY)))

    assert not result.success
    assert "requires a value" in result.error


def test_discover_prefers_canvas_over_buttons() -> None:
    page = FakePage(canvas={"x": 640.4, "y": 359.6, "width": 800, "height": 600}, buttons=["Play"])

    found = _run(PlaywrightPerception(page).discover())

    assert [a.target for a in found] == ["canvas:640,360"]
    assert VISIBLE_BUTTONS_JS not in page.scripts


def test_discover_falls_back_to_escaped_buttons() -> None:
    page = FakePage(buttons=["Play", 'Say "Go"', "Options"])

    found = _run(PlaywrightPerception(page, max_discovered=2).discover())

    assert [a.target for a in found] == ['button:has-text("Play")', 'button:has-text("Say \\"Go\\"")']
    assert [a.value for a in found] == ["Play", 'Say "Go"']


def test_polling_captures_after_condition_times_out() -> None:
    checks = []

    async def never() -> bool:
        checks.append(1)
        return False

    source = CountingSource()
    polling = PollingPerception(source, never, timeout_ms=30, interval_ms=5)

    snap = _run(polling.snapshot())

    assert snap.available
    assert source.calls == 1
    assert len(checks) > 1


def test_polling_swallows_predicate_errors() -> None:
    async def broken() -> bool:
        raise RuntimeError("page navigated")

    source = CountingSource()
    polling = PollingPerception(source, broken, timeout_ms=10, interval_ms=5)

    assert _run(polling.wait_for_condition()) is False
    assert _run(polling.snapshot()).available
    assert source.calls == 1


def test_polling_returns_once_condition_holds() -> None:
    answers = iter([False, False, True])

    async def eventually() -> bool:
        return next(answers)

    polling = PollingPerception(CountingSource(), eventually, timeout_ms=5000, interval_ms=1)

    assert _run(polling.wait_for_condition()) is True


def test_polling_discovery_without_support_is_empty() -> None:
    assert _run(PollingPerception(CountingSource(), lambda: None).discover()) == []
