"""Browser agent — the AI planner/observer over Claude.

``plan`` and ``observe`` return selector-bearing candidates the caller can
execute or inspect; ``act`` performs a step itself and returns an opaque
result with no replayable actions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from playwright.async_api import Page

from stepcache.ai.client import AIClient
from stepcache.ai.page_state import capture_page_state, format_elements, page_text
from stepcache.ai.prompts.planning import (
    ACT_SYSTEM_PROMPT,
    OBSERVE_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    build_act_prompt,
    build_observe_prompt,
    build_plan_prompt,
)

logger = logging.getLogger(__name__)


def _element_at(elements: list[dict[str, Any]], index: Any) -> dict[str, Any] | None:
    if isinstance(index, bool) or not isinstance(index, int):
        return None
    if 0 <= index < len(elements):
        return elements[index]
    return None


class BrowserAgent:
    """AI planner/observer bound to one AIClient."""

    def __init__(self, ai_client: AIClient, max_elements: int = 150, action_timeout_ms: int = 10000):
        self.ai_client = ai_client
        self.max_elements = max_elements
        self.action_timeout_ms = action_timeout_ms

    async def _ask(self, system_prompt: str, user_message: str) -> dict[str, Any]:
        # The SDK client is synchronous; keep concurrent cases moving.
        return await asyncio.to_thread(self.ai_client.complete_json, system_prompt, user_message)

    async def plan(self, instruction: str, page: Page) -> list[dict[str, Any]]:
        """Propose selector-bound actions for one step."""
        elements = await capture_page_state(page, self.max_elements)
        data = await self._ask(
            PLAN_SYSTEM_PROMPT,
            build_plan_prompt(instruction, page.url, format_elements(elements)),
        )
        candidates = []
        for item in data.get("actions") or []:
            if not isinstance(item, dict):
                continue
            element = _element_at(elements, item.get("element"))
            if element is None or not element.get("selector"):
                logger.warning("Planner referenced unknown element %r, ignoring", item.get("element"))
                continue
            candidates.append({
                "selector": element["selector"],
                "description": item.get("description") or instruction,
                "method": item.get("method") or "click",
                "arguments": item.get("arguments") or [],
            })
        logger.debug("Planner proposed %d action(s) for '%s'", len(candidates), instruction)
        return candidates

    async def observe(self, query: str, page: Page) -> list[dict[str, Any]]:
        """Find what on the page satisfies ``query``. Empty list means nothing matched."""
        elements = await capture_page_state(page, self.max_elements)
        text = await page_text(page)
        data = await self._ask(
            OBSERVE_SYSTEM_PROMPT,
            build_observe_prompt(query, page.url, format_elements(elements), text),
        )
        matches = []
        for item in data.get("matches") or []:
            if not isinstance(item, dict):
                continue
            element = _element_at(elements, item.get("element"))
            matches.append({
                "selector": element["selector"] if element else "",
                "description": item.get("description") or query,
            })
        return matches

    async def act(self, instruction: str, page: Page) -> dict[str, Any]:
        """Perform a step the planner could not bind to elements."""
        elements = await capture_page_state(page, self.max_elements)
        data = await self._ask(
            ACT_SYSTEM_PROMPT,
            build_act_prompt(instruction, page.url, format_elements(elements)),
        )
        success = bool(data.get("success", True))
        message = str(data.get("message") or "")
        operation = data.get("operation") or "none"
        value = data.get("value")

        if success:
            logger.debug("Act '%s': %s %r", instruction, operation, value)
            match operation:
                case "goto":
                    await page.goto(str(value), wait_until="domcontentloaded")
                case "press_key":
                    await page.keyboard.press(str(value or "Enter"))
                case "scroll":
                    await page.mouse.wheel(0, -600 if value == "up" else 600)
                case "wait":
                    await page.wait_for_timeout(int(value or 1000))
                case "click":
                    element = _element_at(elements, data.get("element"))
                    if element is None:
                        return {"success": False, "message": "act chose an unknown element",
                                "actionDescription": instruction}
                    await page.locator(element["selector"]).first.click(timeout=self.action_timeout_ms)
                case _:
                    pass

        return {"success": success, "message": message, "actionDescription": instruction}
