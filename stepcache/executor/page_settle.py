"""Bounded wait for the page to go quiet after a step."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel

from stepcache.models.test_result import ActResult

logger = logging.getLogger(__name__)

NAVIGATION_GRACE_MS = 500


class SettleOutcome(BaseModel):
    attempted: bool
    timed_out: bool


async def wait_for_page_settle(
    page: Page,
    url_before: str,
    history: Optional[ActResult] = None,
    log: logging.LoggerAdapter | logging.Logger = logger,
    timeout_ms: int = 3000,
) -> SettleOutcome:
    """Wait for network idle after a step, at most ``timeout_ms``.

    Skipped entirely once an earlier run recorded a timeout for this step.
    A step that did not change the URL is recorded as timed out so later
    runs skip the wait. Never raises.
    """
    if history is not None and history.page_load_wait_timed_out:
        log.debug("Skipping page-settle wait (timed out on an earlier run)")
        return SettleOutcome(attempted=False, timed_out=False)

    timed_out = False
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PlaywrightTimeoutError:
        timed_out = True
        log.debug("Network did not go idle within %dms", timeout_ms)
    except PlaywrightError as e:
        log.debug("Page-settle wait interrupted: %s", e)

    if page.url == url_before:
        log.debug("URL unchanged after step, no navigation wait needed")
        return SettleOutcome(attempted=True, timed_out=True)

    try:
        await page.wait_for_timeout(NAVIGATION_GRACE_MS)
    except PlaywrightError as e:
        log.debug("Navigation grace wait interrupted: %s", e)
    return SettleOutcome(attempted=True, timed_out=timed_out)
