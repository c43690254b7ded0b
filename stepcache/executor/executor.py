"""Case executor — runs one case in one browser session."""

from __future__ import annotations

import logging
import time
from typing import Optional

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from stepcache.ai.agent import BrowserAgent
from stepcache.ai.client import AIClient, ProviderAuthError
from stepcache.models.config import FrameworkConfig
from stepcache.models.test_case import TestCase
from stepcache.models.test_result import ActResult, StepResult, TestResult
from stepcache.store.data_store import DataStore
from stepcache.url_utils import normalize_case_url

from .api_validation import validate_api_requests
from .assertion_checker import AssertionFailure, AssertionVerifier
from .case_log import CaseLog
from .network_recorder import NetworkRecorder
from .page_settle import wait_for_page_settle
from .session import BrowserSession
from .step_engine import StepEngine

logger = logging.getLogger(__name__)


class ApiValidationError(Exception):
    """Captured API requests do not match the recorded schemas."""


def _now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S%z")


def describe_error(error: Exception) -> str:
    """Error text for the result, with a hint when the site refused access."""
    message = str(error) or type(error).__name__
    if isinstance(error, ProviderAuthError):
        return message
    lowered = message.lower()
    if "403" in lowered or "forbidden" in lowered:
        return f"{message} (access denied by the site: check the account, session or IP allow-list)"
    return message


class CaseExecutor:
    """Navigates, runs every step through the StepEngine, then verifies the case."""

    def __init__(
        self,
        config: FrameworkConfig,
        store: Optional[DataStore] = None,
        ai_client: Optional[AIClient] = None,
        agent: Optional[BrowserAgent] = None,
    ):
        self.config = config
        self.store = store
        self.ai_client = ai_client
        self.agent = agent

    async def execute(self, case: TestCase, session: BrowserSession) -> TestResult:
        log = CaseLog(logger, case.id)
        result = TestResult(
            id=case.id, name=case.name, url=case.url,
            expected_result=case.expected_result, start_time=_now(),
        )
        started = time.time()
        history: list[ActResult] = list(case.result.steps) if case.result else []
        cached_plan = case.result.assertion_plan if case.result else None
        network: Optional[NetworkRecorder] = None
        if self.config.only_api or self.config.record_api:
            network = NetworkRecorder(case.api_urls)

        log.info("Starting case: %s", case.name or case.id)
        try:
            page = await session.start()
            if network is not None:
                network.setup_listeners(page)

            await self._navigate(page, normalize_case_url(case.url), log)
            await self._run_steps(page, case, history, result, log)

            if self.config.only_api:
                check = validate_api_requests(network, case)
                if not check.ok:
                    raise ApiValidationError(check.reason)
                result.actual_result = check.reason
                log.info(result.actual_result)
            elif not case.expected_result.strip():
                result.actual_result = "All steps passed"
                log.info("No expected result given, skipping verification")
            else:
                verifier = AssertionVerifier(page, self.ai_client, self.agent, log)
                outcome = await verifier.verify(case.expected_result, cached_plan)
                result.actual_result = outcome.text
                result.assertion_plan = outcome.plan
                result.plan_invalidated = outcome.invalidate_cached
            result.status = "passed"

        except AssertionFailure as e:
            log.error("Assertion failed: %s", e)
            result.status = "failed"
            result.error = str(e)
            result.actual_result = "\n".join(e.lines)
            result.plan_invalidated = e.invalidate_cached
        except Exception as e:
            log.error("Case failed: %s", e)
            result.status = "failed"
            result.error = describe_error(e)

        finally:
            if network is not None and self.config.record_api:
                result.network_log = network.snapshot()
                if self.store is not None:
                    records = network.build_api_records()
                    if records:
                        self.store.save_api_records(case.id, records)
                        log.info("Recorded API traffic for %d URL(s)", len(records))
            result.trace_path = await session.stop_trace(case.id)
            result.end_time = _now()
            result.duration = int((time.time() - started) * 1000)
            log.info("Case %s in %.1fs", result.status.upper(), result.duration / 1000)
            if result.status == "failed":
                result.log = log.text()

        return result

    async def _navigate(self, page: Page, url: str, log: CaseLog) -> None:
        timeout = self.config.navigation_timeout_ms
        log.info("Navigating to %s", url)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        except PlaywrightTimeoutError:
            log.warning("Navigation timed out after %dms, retrying once", timeout)
            await page.goto(url, wait_until="commit", timeout=timeout * 2)

    async def _run_steps(
        self,
        page: Page,
        case: TestCase,
        history: list[ActResult],
        result: TestResult,
        log: CaseLog,
    ) -> None:
        engine = StepEngine(page, self.agent, self.config.action_timeout_ms, log)
        step_count = max(len(case.steps), len(history))
        for index in range(step_count):
            entry = history[index] if index < len(history) else None
            if index < len(case.steps):
                description = case.steps[index]
            else:
                description = entry.action_description or f"recorded step {index + 1}"
            step = StepResult(step_index=index, description=description)
            result.steps.append(step)

            log.info("Step %d/%d: %s", index + 1, step_count, description)
            url_before = page.url
            try:
                act_result, path = await engine.run_step(description, entry)
            except Exception as e:
                step.status = "failed"
                step.error = describe_error(e)
                raise

            settle = await wait_for_page_settle(
                page, url_before, entry, log, timeout_ms=self.config.settle_timeout_ms,
            )
            step.act_result = act_result
            step.path = path
            step.page_load_wait_attempted = settle.attempted
            step.page_load_wait_timed_out = settle.timed_out
            step.status = "passed"
