"""Replays ActionRecords with Playwright locators."""

from __future__ import annotations

import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from stepcache.models.test_result import ActionRecord

logger = logging.getLogger(__name__)


class ReplayError(Exception):
    """A cached action could not be executed (selector gone, element detached...)."""

    def __init__(self, action: ActionRecord, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(
            f"Replay of {action.method} on '{action.selector}' failed: {reason}"
        )


def _arg(action: ActionRecord, index: int = 0, default: str = "") -> str:
    return action.arguments[index] if len(action.arguments) > index else default


async def run_action(page: Page, action: ActionRecord, timeout: int = 10000) -> None:
    """Execute one cached action by selector.

    Args:
        page: Playwright page instance.
        action: The action to replay.
        timeout: Locator timeout in milliseconds (default 10000).
    """
    if not action.selector:
        raise ReplayError(action, "action has no selector")

    logger.debug("Replaying action: %s | selector=%s | args=%s | %s",
                 action.method, action.selector, action.arguments, action.description)

    target = page.locator(action.selector).first
    try:
        match action.method.lower():
            case "click":
                await target.click(timeout=timeout)
            case "fill" | "input" | "type":
                await target.fill(_arg(action), timeout=timeout)
            case "press":
                await target.press(_arg(action, default="Enter"), timeout=timeout)
            case "check":
                await target.check(timeout=timeout)
            case "uncheck":
                await target.uncheck(timeout=timeout)
            case "select" | "selectoption":
                await target.select_option(_arg(action), timeout=timeout)
            case "hover":
                await target.hover(timeout=timeout)
            case "dblclick" | "doubleclick":
                await target.dblclick(timeout=timeout)
            case _:
                logger.warning("Unknown action method '%s', replaying as click", action.method)
                await target.click(timeout=timeout)
    except PlaywrightError as e:
        raise ReplayError(action, str(e).splitlines()[0] if str(e) else type(e).__name__) from e
