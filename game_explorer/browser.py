"""Playwright-backed capabilities for the interaction engine.

PlaywrightActuator     – executes `Action`s with keyboard/mouse primitives,
                         each call bounded by a per-kind timeout.
PlaywrightPerception   – captures screenshot or structural snapshots and
                         discovers clickable candidates (canvas centre, buttons).
PollingPerception      – waits for a caller-supplied predicate before
                         delegating the capture to another source.
open_page              – launches Chromium and navigates to the game URL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

from playwright.async_api import Page, async_playwright

from .action_catalog import CANVAS_CENTER_TARGET, FIRST_BUTTON_TARGET, button_selector
from .config import action_timeout_ms
from .errors import ActionTimeoutError
from .knowledge import Action, ActionKind, ActionResult, PerceptionSnapshot
from .state_detector import ChangeStrategy, ScreenshotStrategy, StructuralStrategy

logger = logging.getLogger(__name__)

Predicate = Callable[[], Awaitable[bool]]

PAGE_STATE_JS = """
() => ({
    html: document.documentElement.outerHTML.substring(0, 5000),
    bodyText: document.body ? document.body.innerText.substring(0, 2000) : '',
    elementCount: document.querySelectorAll('*').length,
})
"""

ELEMENT_COUNT_JS = "() => document.querySelectorAll('*').length"

CANVAS_CENTER_JS = """
() => {
    const canvas = document.querySelector('canvas');
    if (!canvas) return null;
    const rect = canvas.getBoundingClientRect();
    if (rect.width <= 0 || rect.height <= 0) return null;
    return {
        x: rect.left + rect.width / 2,
        y: rect.top + rect.height / 2,
        width: rect.width,
        height: rect.height,
    };
}
"""

VISIBLE_BUTTONS_JS = """
(limit) => {
    const isVisible = (el) => {
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        if (style.display === 'none' || style.visibility === 'hidden') return false;
        if (parseFloat(style.opacity) === 0) return false;
        return rect.width > 0 && rect.height > 0;
    };
    const labels = [];
    for (const el of document.querySelectorAll('button, [role="button"], input[type="button"], input[type="submit"]')) {
        if (labels.length >= limit) break;
        if (!isVisible(el) || el.disabled) continue;
        const label = (el.innerText || el.value || el.getAttribute('aria-label') || '').trim();
        if (label && !labels.includes(label)) labels.push(label);
    }
    return labels;
}
"""


async def _with_timeout(awaitable: Awaitable[Any], timeout_ms: int, operation: str) -> Any:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as exc:
        raise ActionTimeoutError(operation, timeout_ms) from exc


class PlaywrightActuator:
    """Runs actions against a live page. Never raises; failures come back as results."""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def execute(self, action: Action) -> ActionResult:
        started = time.time()
        timeout_ms = action_timeout_ms(action)
        try:
            await _with_timeout(self._perform(action, timeout_ms), timeout_ms, action.describe())
        except Exception as exc:
            logger.warning("%s failed: %s", action.describe(), exc)
            return ActionResult.failure(str(exc), started)
        now = time.time()
        return ActionResult(success=True, executed_at=now, duration_ms=(now - started) * 1000)

    async def _perform(self, action: Action, timeout_ms: int) -> None:
        if action.kind == ActionKind.KEY:
            if not action.value:
                raise ValueError("Key action requires a value")
            await self._page.keyboard.press(action.value)
        elif action.kind == ActionKind.TYPE:
            if action.value is None:
                raise ValueError("Type action requires a value")
            if action.target:
                await self._page.locator(action.target).first.fill(action.value, timeout=timeout_ms)
            else:
                await self._page.keyboard.type(action.value)
        elif action.kind == ActionKind.WAIT:
            await asyncio.sleep((action.duration_ms or 1000) / 1000)
        elif action.kind == ActionKind.CLICK:
            await self._click(action.target or FIRST_BUTTON_TARGET, timeout_ms)
        else:
            raise ValueError(f"Unknown action kind: {action.kind}")

    async def _click(self, target: str, timeout_ms: int) -> None:
        if target.startswith("canvas:"):
            x, y = await self._canvas_point(target, timeout_ms)
            logger.debug("Clicking canvas at (%d, %d)", x, y)
            await self._page.mouse.click(x, y)
            return
        if target == FIRST_BUTTON_TARGET:
            await self._page.locator("button").first.click(timeout=timeout_ms)
            return
        await self._page.locator(target).first.click(timeout=timeout_ms)

    async def _canvas_point(self, target: str, timeout_ms: int) -> tuple[int, int]:
        coords = target[len("canvas:"):]
        if target == CANVAS_CENTER_TARGET:
            box = await self._page.locator("canvas").first.bounding_box(timeout=timeout_ms)
            if box is None:
                raise RuntimeError("Canvas not found on page")
            return round(box["x"] + box["width"] / 2), round(box["y"] + box["height"] / 2)
        try:
            x_str, y_str = coords.split(",", 1)
            return int(x_str), int(y_str)
        except ValueError as exc:
            raise ValueError(f"Invalid canvas coordinates: {target}") from exc


class PlaywrightPerception:
    """Snapshots the page with the given change strategy's material."""

    def __init__(self, page: Page, strategy: Optional[ChangeStrategy] = None, max_discovered: int = 5) -> None:
        self._page = page
        self._strategy = strategy or ScreenshotStrategy()
        self._max_discovered = max_discovered

    @property
    def strategy(self) -> ChangeStrategy:
        return self._strategy

    async def snapshot(self) -> PerceptionSnapshot:
        try:
            if isinstance(self._strategy, StructuralStrategy):
                state = await self._page.evaluate(PAGE_STATE_JS)
                return self._strategy.snapshot(state["html"], state["bodyText"], int(state["elementCount"]))
            if isinstance(self._strategy, ScreenshotStrategy):
                image = await self._page.screenshot()
                count = await self._page.evaluate(ELEMENT_COUNT_JS)
                return self._strategy.snapshot(image, int(count))
            raise TypeError(f"Unsupported strategy {type(self._strategy).__name__}")
        except Exception as exc:
            logger.warning("Failed to capture page state: %s", exc)
            return PerceptionSnapshot.unavailable(str(exc), self._strategy.name)

    async def discover(self) -> List[Action]:
        """Canvas games get a click on the canvas centre; DOM games their visible buttons."""
        canvas = await self._page.evaluate(CANVAS_CENTER_JS)
        if canvas:
            logger.debug("Canvas found: %sx%s", canvas["width"], canvas["height"])
            return [Action.click(f"canvas:{round(canvas['x'])},{round(canvas['y'])}", "Canvas START button")]
        labels = await self._page.evaluate(VISIBLE_BUTTONS_JS, self._max_discovered)
        actions = [Action.click(button_selector(label), label) for label in labels]
        logger.debug("Discovered %d interactive elements", len(actions))
        return actions


class PollingPerception:
    """Waits until `predicate` holds (or `timeout_ms` passes) before each capture."""

    def __init__(self, source: Any, predicate: Predicate, timeout_ms: int = 2000, interval_ms: int = 100) -> None:
        self._source = source
        self._predicate = predicate
        self._timeout_ms = timeout_ms
        self._interval_ms = interval_ms

    async def wait_for_condition(self) -> bool:
        deadline = time.monotonic() + self._timeout_ms / 1000
        while True:
            try:
                if await self._predicate():
                    return True
            except Exception as exc:
                logger.debug("Condition check failed: %s", exc)
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self._interval_ms / 1000)

    async def snapshot(self) -> PerceptionSnapshot:
        if not await self.wait_for_condition():
            logger.debug("Condition not met within %dms, capturing anyway", self._timeout_ms)
        return await self._source.snapshot()

    async def discover(self) -> List[Action]:
        discover = getattr(self._source, "discover", None)
        if discover is None:
            return []
        return await discover()


def selector_visible(page: Page, selector: str) -> Predicate:
    """Predicate for `PollingPerception`: true once `selector` is visible."""

    async def check() -> bool:
        return await page.locator(selector).first.is_visible()

    return check


@asynccontextmanager
async def open_page(url: str, headless: bool = True, timeout_ms: int = 30_000) -> AsyncIterator[Page]:
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=headless)
        try:
            context = await browser.new_context(viewport={"width": 1280, "height": 720})
            page = await context.new_page()
            await page.goto(url, wait_until="load", timeout=timeout_ms)
            await asyncio.sleep(1)
            yield page
        finally:
            await browser.close()
