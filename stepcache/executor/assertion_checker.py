"""Assertion planner & verifier — checks a case's expected result on the page."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import anthropic
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from pydantic import BaseModel, ValidationError

from stepcache.ai.agent import BrowserAgent
from stepcache.ai.client import AIClient, AIRetryExhausted
from stepcache.ai.prompts.assertion import ASSERTION_PLAN_SYSTEM_PROMPT, build_assertion_plan_prompt
from stepcache.models.test_result import AssertionPlan, ObservationCheck, UrlCheck

logger = logging.getLogger(__name__)


class AssertionResult(BaseModel):
    passed: bool
    message: str = ""


class AssertionFailure(Exception):
    """The expected result does not hold. Carries the itemized log so far."""

    def __init__(self, message: str, lines: list[str], invalidate_cached: bool = False):
        self.lines = lines
        self.invalidate_cached = invalidate_cached
        super().__init__(message)


class VerifyOutcome(BaseModel):
    lines: list[str]
    plan: Optional[AssertionPlan] = None
    invalidate_cached: bool = False

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class AssertionVerifier:
    """Turns an expected-result sentence into a checked, cacheable plan."""

    def __init__(
        self,
        page: Page,
        ai_client: Optional[AIClient] = None,
        agent: Optional[BrowserAgent] = None,
        log: logging.LoggerAdapter | logging.Logger = logger,
    ):
        self.page = page
        self.ai_client = ai_client
        self.agent = agent
        self.log = log

    async def build_plan(self, expected: str, cached: Optional[dict[str, Any]] = None) -> tuple[Optional[AssertionPlan], bool]:
        """Return ``(plan, from_cache)``. ``plan`` is None when the planner failed."""
        if cached is not None:
            try:
                plan = AssertionPlan.model_validate(cached)
                self.log.info("Reusing cached assertion plan (%d checks)", len(plan.assertions))
                return plan, True
            except ValidationError as e:
                self.log.warning("Cached assertion plan is invalid (%d errors), planning again",
                                 e.error_count())

        if self.ai_client is None:
            return AssertionPlan(summary=expected, assertions=[ObservationCheck(text=expected)]), False

        try:
            data = await asyncio.to_thread(
                self.ai_client.complete_json,
                ASSERTION_PLAN_SYSTEM_PROMPT,
                build_assertion_plan_prompt(expected, self.page.url),
            )
            plan = AssertionPlan.model_validate(data)
        except (ValueError, AIRetryExhausted, anthropic.APIError) as e:
            # pydantic's ValidationError is a ValueError
            self.log.warning("Assertion planner failed: %s", e)
            return None, False
        self.log.info("Planned %d assertion check(s): %s", len(plan.assertions), plan.summary)
        return plan, False

    async def verify(self, expected: str, cached: Optional[dict[str, Any]] = None) -> VerifyOutcome:
        """Verify ``expected`` on the current page.

        Raises AssertionFailure on the first failing check. A cached plan
        that fails, or could not be used, is flagged for invalidation.
        """
        plan, from_cache = await self.build_plan(expected, cached)
        stale_cache = cached is not None and not from_cache
        lines: list[str] = []

        if plan is None:
            found = await self._text_present(expected)
            line = f"[fallback] {'✓' if found else '✗'} page text contains \"{expected}\""
            lines.append(line)
            self.log.info(line)
            if not found:
                raise AssertionFailure(
                    f"Expected text not found on page: {expected}", lines, invalidate_cached=stale_cache,
                )
            return VerifyOutcome(lines=lines, invalidate_cached=stale_cache)

        if plan.summary:
            lines.append(f"Plan: {plan.summary}")
        for n, item in enumerate(plan.assertions, 1):
            result = await self.check_item(item)
            line = f"[#{n}] {'✓' if result.passed else '✗'} {result.message}"
            lines.append(line)
            self.log.info(line)
            if not result.passed:
                raise AssertionFailure(result.message, lines, invalidate_cached=from_cache or stale_cache)
        return VerifyOutcome(lines=lines, plan=plan)

    async def check_item(self, item: UrlCheck | ObservationCheck) -> AssertionResult:
        match item:
            case UrlCheck(value=value):
                url = self.page.url
                if value in url:
                    return AssertionResult(passed=True, message=f"URL contains '{value}'")
                return AssertionResult(passed=False, message=f"URL does not contain '{value}' (current URL: {url})")
            case ObservationCheck(text=text):
                if self.agent is None:
                    found = await self._text_present(text)
                    return AssertionResult(passed=found, message=f"page text {'contains' if found else 'lacks'} \"{text}\"")
                try:
                    matches = await self.agent.observe(text, self.page)
                except (ValueError, AIRetryExhausted, anthropic.APIError) as e:
                    return AssertionResult(passed=False, message=f"Could not observe '{text}': {e}")
                if matches:
                    return AssertionResult(passed=True, message=f"{text} ({matches[0].get('description', '')})")
                return AssertionResult(passed=False, message=f"Not found on page: {text}")
            case _:
                return AssertionResult(passed=False, message=f"Unknown assertion item: {item!r}")

    async def _text_present(self, expected: str) -> bool:
        try:
            body = await self.page.inner_text("body", timeout=5000)
        except PlaywrightError as e:
            self.log.warning("Could not read page text: %s", e)
            return False
        return expected.strip().lower() in body.lower()
