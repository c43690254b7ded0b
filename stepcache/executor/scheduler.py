"""Runs cases in fixed-size batches, one browser session each."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from stepcache.models.test_case import TestCase
from stepcache.models.test_result import TestResult
from stepcache.store.data_store import DataStore, StoreError

from .executor import CaseExecutor
from .session import BrowserSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5


class Scheduler:
    """Runs cases ``max_concurrency`` at a time.

    Every case gets a fresh session from ``session_factory`` that is closed
    whatever happens, and its result is merged into the store as soon as it
    finishes. One case failing never affects its batch siblings.
    """

    def __init__(
        self,
        executor: CaseExecutor,
        session_factory: Callable[[TestCase], BrowserSession],
        store: Optional[DataStore] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.executor = executor
        self.session_factory = session_factory
        self.store = store
        self.max_concurrency = max(1, max_concurrency)
        self.batch_sizes: list[int] = []

    async def run(self, cases: list[TestCase]) -> list[TestResult]:
        self.batch_sizes = []
        if not cases:
            return []
        width = min(self.max_concurrency, len(cases))
        total_batches = (len(cases) + width - 1) // width
        logger.info("Running %d case(s), %d at a time", len(cases), width)

        results: list[TestResult] = []
        for start in range(0, len(cases), width):
            batch = cases[start:start + width]
            self.batch_sizes.append(len(batch))
            logger.info("Batch %d/%d: %s", start // width + 1, total_batches,
                        ", ".join(c.id for c in batch))
            results.extend(await asyncio.gather(*(self._run_one(c) for c in batch)))
        return results

    async def _run_one(self, case: TestCase) -> TestResult:
        session = self.session_factory(case)
        try:
            result = await self.executor.execute(case, session)
        except Exception as e:
            logger.error("[%s] Executor crashed: %s", case.id, e)
            now = time.strftime("%Y-%m-%dT%H:%M:%S%z")
            result = TestResult(
                id=case.id, name=case.name, url=case.url,
                expected_result=case.expected_result,
                status="failed", error=str(e) or type(e).__name__,
                start_time=now, end_time=now, duration=0,
            )
        finally:
            try:
                await session.close()
            except Exception as e:
                logger.warning("[%s] Session close failed: %s", case.id, e)

        self._persist(result)
        return result

    def _persist(self, result: TestResult) -> None:
        if self.store is None:
            return
        try:
            self.store.save_results([result])
        except (StoreError, OSError) as e:
            logger.error("[%s] Could not save result: %s", result.id, e)
