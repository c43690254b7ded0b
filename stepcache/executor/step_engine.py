"""Replay/plan decision engine — runs one step from cache when it can."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import Page

from stepcache.ai.agent import BrowserAgent
from stepcache.models.test_result import ActResult

from .action_codec import action_from_candidate, normalize_act_result
from .action_runner import ReplayError, run_action

logger = logging.getLogger(__name__)


class PlannerError(Exception):
    """The planner could not produce or perform actions for a step."""


class StepEngine:
    """Decides per step between REPLAY (cached actions) and PLAN (AI).

    A step whose history holds at least one action is replayed with no AI
    call. Anything else is planned; if the planner proposes nothing the
    step is handed to the agent's opaque ``act``.
    """

    def __init__(
        self,
        page: Page,
        agent: Optional[BrowserAgent] = None,
        action_timeout_ms: int = 10000,
        log: logging.LoggerAdapter | logging.Logger = logger,
    ):
        self.page = page
        self.agent = agent
        self.action_timeout_ms = action_timeout_ms
        self.log = log

    async def run_step(self, instruction: str, history: Optional[ActResult] = None) -> tuple[ActResult, str]:
        """Execute one step. Returns the ActResult and the path taken ("replay", "plan" or "act")."""
        if history is not None and history.actions:
            return await self._replay(instruction, history), "replay"
        if self.agent is None:
            raise PlannerError(f"No cached actions and no AI planner available for step: {instruction}")
        return await self._plan(instruction)

    async def _replay(self, instruction: str, history: ActResult) -> ActResult:
        self.log.info("Replaying %d cached action(s): %s", len(history.actions), instruction)
        for action in history.actions:
            self.log.debug("  %s %s %s", action.method, action.selector, action.arguments)
            await run_action(self.page, action, timeout=self.action_timeout_ms)
        return ActResult(
            success=True,
            message=f"Replayed {len(history.actions)} cached action(s)",
            action_description=history.action_description or instruction,
            actions=[a.model_copy() for a in history.actions],
        )

    async def _plan(self, instruction: str) -> tuple[ActResult, str]:
        self.log.info("Planning step with AI: %s", instruction)
        try:
            candidates = await self.agent.plan(instruction, self.page)
        except ValueError as e:
            self.log.warning("Planner returned unusable output (%s), delegating to act", e)
            candidates = []

        if candidates:
            actions = [action_from_candidate(c) for c in candidates]
            for action in actions:
                self.log.debug("  %s %s %s", action.method, action.selector, action.arguments)
                try:
                    await run_action(self.page, action, timeout=self.action_timeout_ms)
                except ReplayError as e:
                    raise PlannerError(f"Planned action failed: {e.reason}") from e
            return ActResult(
                success=True,
                message=f"Executed {len(actions)} planned action(s)",
                action_description=instruction,
                actions=actions,
            ), "plan"

        self.log.info("Planner found no element actions, delegating to act: %s", instruction)
        try:
            raw = await self.agent.act(instruction, self.page)
        except ValueError as e:
            raise PlannerError(f"Act returned unusable output: {e}") from e
        result = normalize_act_result(raw, instruction)
        if not result.success:
            raise PlannerError(result.message or f"Could not perform step: {instruction}")
        if not result.actions:
            self.log.debug("Act result carries no actions, step will be planned again next run")
        return result, "act"
