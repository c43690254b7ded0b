"""Host side of action capture.

Injects the page listener, polls its buffer every 300ms, drops
near-duplicate events and turns what remains into replayable ActionRecords.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Optional

from playwright.async_api import BrowserContext, Frame, Page
from playwright.async_api import Error as PlaywrightError

from stepcache.capture.listener import DRAIN_SCRIPT, FLUSH_PENDING_SCRIPT, LISTENER_SCRIPT
from stepcache.executor.action_codec import action_from_captured
from stepcache.models.test_result import ActionRecord

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.3
DEDUPE_WINDOW_MS = 500
FINAL_DRAIN_DELAY_SECONDS = 0.2


class ActionRecorder:
    """Explicit per-session capture context: ``start()``, ``drain()``, ``stop()``."""

    def __init__(
        self,
        page: Page,
        context: Optional[BrowserContext] = None,
        log: logging.LoggerAdapter | logging.Logger = logger,
    ):
        self.page = page
        self.context = context
        self.log = log
        self.actions: list[dict[str, Any]] = []
        self.dropped = 0
        self.capture_failures: list[str] = []
        self._recording = False
        self._poll_task: Optional[asyncio.Task] = None
        self._reinject_tasks: set[asyncio.Task] = set()

    @property
    def recording(self) -> bool:
        return self._recording

    async def start(self) -> None:
        if self._recording:
            await self._inject()
            return
        self._recording = True
        self.actions = []

        if self.context is not None:
            try:
                await self.context.add_init_script(script=LISTENER_SCRIPT)
            except PlaywrightError as e:
                self._capture_failure("init script registration", e)
        if not await self._inject():
            self.log.warning("Listener not active in current document; relying on init script + polling")

        self.page.on("framenavigated", self._on_frame_navigated)
        self._poll_task = asyncio.create_task(self._poll_loop())
        self.log.info("Action capture started")

    async def _inject(self) -> bool:
        try:
            await self.page.evaluate(LISTENER_SCRIPT)
            return True
        except PlaywrightError as e:
            self._capture_failure("listener injection", e)
            return False

    def _capture_failure(self, where: str, error: Exception) -> None:
        message = f"{where}: {error}"
        self.capture_failures.append(message)
        self.log.warning("Capture failure (non-fatal) during %s", message)

    def _on_frame_navigated(self, frame: Frame) -> None:
        if not self._recording or frame != self.page.main_frame:
            return
        self.log.debug("Main frame navigated to %s, re-injecting listener", frame.url)
        task = asyncio.create_task(self._inject())
        self._reinject_tasks.add(task)
        task.add_done_callback(self._reinject_tasks.discard)

    async def _poll_loop(self) -> None:
        while self._recording:
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
            if self.page.is_closed():
                self.log.info("Page closed, stopping capture")
                self._recording = False
                break
            await self.drain()

    async def drain(self) -> int:
        """Move buffered page events into ``actions``. Returns how many were kept."""
        try:
            payload = await self.page.evaluate(DRAIN_SCRIPT)
        except PlaywrightError as e:
            self.log.debug("Drain skipped: %s", e)
            return 0

        payload = payload or {}
        dropped = int(payload.get("dropped") or 0)
        if dropped:
            self.dropped += dropped
            self.log.warning("Page buffer overflowed, %d events dropped", dropped)

        kept = 0
        for event in payload.get("events") or []:
            if self.record(event):
                kept += 1
        return kept

    def record(self, event: dict[str, Any]) -> bool:
        """Append one captured event unless it repeats a recent one."""
        ts = int(event.get("timestamp") or 0)
        for prev in reversed(self.actions):
            if ts - int(prev.get("timestamp") or 0) >= DEDUPE_WINDOW_MS:
                break
            if prev.get("type") == event.get("type") and prev.get("description") == event.get("description"):
                self.log.debug("Dropping duplicate event: %s", event.get("description"))
                return False
        self.actions.append(event)
        self.log.debug("Captured %s: %s", event.get("type"), event.get("description"))
        return True

    def stop_polling(self) -> None:
        """Stop polling without touching the page (safe from signal handlers)."""
        self._recording = False
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()

    async def stop(self) -> list[dict[str, Any]]:
        """Stop polling, flush pending input and drain what is left."""
        self.stop_polling()
        if self._poll_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None

        if not self.page.is_closed():
            try:
                await self.page.evaluate(FLUSH_PENDING_SCRIPT)
            except PlaywrightError as e:
                self.log.debug("Pending-input flush failed: %s", e)
            await asyncio.sleep(FINAL_DRAIN_DELAY_SECONDS)
            await self.drain()
        self.log.info("Action capture stopped (%d actions, %d dropped)", len(self.actions), self.dropped)
        return self.actions

    def actions_for_replay(self) -> list[ActionRecord]:
        """Captured actions as ActionRecords, without ones that have no selector."""
        return [action_from_captured(a) for a in self.actions if a.get("selector")]
