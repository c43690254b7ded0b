"""Record mode — a headed browser that captures what the user does.

Stops on Ctrl+C, on a stop file, or when the page is closed, then drains
the capture buffer and writes the recording (and optionally the case's
step history and API records) before the browser is closed.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import time
from pathlib import Path
from typing import Optional

from stepcache.capture.recorder import ActionRecorder
from stepcache.executor.network_recorder import NetworkRecorder
from stepcache.executor.session import BrowserSession
from stepcache.models.config import FrameworkConfig
from stepcache.models.test_result import ActResult
from stepcache.store.data_store import DataStore
from stepcache.url_utils import normalize_case_url

logger = logging.getLogger(__name__)

STOP_FILE_NAME = ".stop-recording"
STOP_POLL_SECONDS = 0.5


class RecordSession:
    def __init__(
        self,
        config: FrameworkConfig,
        url: str,
        case_id: Optional[str] = None,
        api_urls: Optional[list[str]] = None,
        store: Optional[DataStore] = None,
    ):
        self.config = config
        self.url = normalize_case_url(url)
        self.case_id = case_id
        self.api_urls = api_urls or []
        self.store = store
        self.record_dir = Path(config.record_dir)
        self.stop_file = self.record_dir / STOP_FILE_NAME
        self._stop = asyncio.Event()
        self.recorder: Optional[ActionRecorder] = None

    def request_stop(self) -> None:
        if self.recorder is not None:
            self.recorder.stop_polling()
        self._stop.set()

    def _should_stop(self, session: BrowserSession) -> bool:
        if self._stop.is_set():
            return True
        if self.stop_file.exists():
            logger.info("Stop file found at %s", self.stop_file)
            return True
        return session.page is None or session.page.is_closed()

    async def run(self) -> Path:
        self.record_dir.mkdir(parents=True, exist_ok=True)
        self.stop_file.unlink(missing_ok=True)
        session = BrowserSession(self.config, headless=False)
        loop = asyncio.get_running_loop()
        handler_installed = False
        try:
            loop.add_signal_handler(signal.SIGINT, self.request_stop)
            handler_installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler unavailable; use the stop file to finish recording")

        try:
            page = await session.start()
            network = NetworkRecorder(self.api_urls)
            network.setup_listeners(page)
            self.recorder = ActionRecorder(page, session.context)

            await page.goto(self.url, wait_until="domcontentloaded")
            await self.recorder.start()
            logger.info("Recording on %s. Press Ctrl+C or create %s to finish.", self.url, self.stop_file)

            while not self._should_stop(session):
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._stop.wait(), timeout=STOP_POLL_SECONDS)

            return await self._drain_and_save(session, network)
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)
            self.stop_file.unlink(missing_ok=True)
            await session.close()

    async def _drain_and_save(self, session: BrowserSession, network: NetworkRecorder) -> Path:
        actions = await self.recorder.stop()
        stamp = time.strftime("%Y%m%d-%H%M%S")
        trace_path = await session.stop_trace(f"record-{stamp}")

        record_path = self.record_dir / f"record-{stamp}.json"
        payload = {
            "url": self.url,
            "caseId": self.case_id,
            "recordedAt": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "actions": actions,
            "droppedEvents": self.recorder.dropped,
            "captureFailures": self.recorder.capture_failures,
            "network": network.snapshot(),
            "tracePath": trace_path,
        }
        with open(record_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        with open(record_path.with_name(f"record-{stamp}-steps.txt"), "w", encoding="utf-8") as f:
            f.write("\n".join(a.get("description", "") for a in actions))
        logger.info("Saved %d captured actions to %s", len(actions), record_path)

        if self.store is not None and self.case_id:
            steps = [
                ActResult(
                    success=True,
                    message="recorded",
                    action_description=action.description,
                    actions=[action],
                )
                for action in self.recorder.actions_for_replay()
            ]
            self.store.save_recorded_steps(self.case_id, steps)
            logger.info("Stored %d replayable steps for case %s", len(steps), self.case_id)
            if self.api_urls:
                records = network.build_api_records()
                if records:
                    self.store.save_api_records(self.case_id, records)
        return record_path
