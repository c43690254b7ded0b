"""Orchestrator — wires config, store, AI and scheduler together for the CLI."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from stepcache.ai.agent import BrowserAgent
from stepcache.ai.client import AIClient, set_debug_dir
from stepcache.capture.record_mode import RecordSession
from stepcache.executor.executor import CaseExecutor
from stepcache.executor.scheduler import Scheduler
from stepcache.executor.session import BrowserSession
from stepcache.models.config import FrameworkConfig
from stepcache.models.test_case import TestCase
from stepcache.models.test_result import TestResult
from stepcache.store.data_store import DataStore

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs cases from the data file, or records a new one."""

    def __init__(self, config: FrameworkConfig, store: Optional[DataStore] = None):
        self.config = config
        self.store = store or DataStore(config.data_file)
        set_debug_dir(Path(config.debug_dir))

        # AI is optional: cases whose steps are all cached replay without it.
        self.ai_client: AIClient | None = None
        self.agent: BrowserAgent | None = None
        try:
            self.ai_client = AIClient(
                model=config.ai_model,
                max_tokens=config.ai_max_tokens,
                max_retries=config.ai_max_retries,
                backoff_seconds=config.ai_retry_backoff_seconds,
            )
            self.agent = BrowserAgent(
                self.ai_client,
                max_elements=config.page_state_max_elements,
                action_timeout_ms=config.action_timeout_ms,
            )
        except EnvironmentError as e:
            logger.warning("AI client unavailable: %s. Only cached steps can run.", e)

    def select_cases(self, case_ids: Optional[list[str]] = None) -> list[TestCase]:
        cases = self.store.list_cases()
        if not case_ids:
            return cases
        wanted = set(case_ids)
        selected = [c for c in cases if c.id in wanted]
        missing = wanted - {c.id for c in selected}
        if missing:
            logger.warning("Unknown case id(s): %s", ", ".join(sorted(missing)))
        return selected

    def run(self, case_ids: Optional[list[str]] = None) -> list[TestResult]:
        return asyncio.run(self.run_async(case_ids))

    async def run_async(self, case_ids: Optional[list[str]] = None) -> list[TestResult]:
        cases = self.select_cases(case_ids)
        if not cases:
            logger.warning("No cases to run in %s", self.store.path)
            return []

        start = time.time()
        executor = CaseExecutor(self.config, self.store, self.ai_client, self.agent)
        scheduler = Scheduler(
            executor,
            session_factory=lambda case: BrowserSession(self.config),
            store=self.store,
            max_concurrency=self.config.effective_concurrency,
        )
        results = await scheduler.run(cases)

        passed = sum(1 for r in results if r.status == "passed")
        logger.info("Run complete: %d passed, %d failed (%.1fs, %d AI calls)",
                    passed, len(results) - passed, time.time() - start,
                    self.ai_client.call_count if self.ai_client else 0)
        return results

    def record(self, url: str, case_id: Optional[str] = None, api_urls: Optional[list[str]] = None) -> Path:
        session = RecordSession(self.config, url, case_id=case_id, api_urls=api_urls, store=self.store)
        return asyncio.run(session.run())
