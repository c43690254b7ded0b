"""Action codec — normalizes planner output, opaque act results and captured
events into ActionRecord / ActResult."""

from __future__ import annotations

import logging
from typing import Any, Optional

from stepcache.models.test_result import ActionRecord, ActResult

logger = logging.getLogger(__name__)


def _as_arguments(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return ["" if v is None else str(v) for v in value]
    return [str(value)]


def action_from_candidate(candidate: dict[str, Any]) -> ActionRecord:
    """Build an ActionRecord from a planner/observer candidate dict."""
    return ActionRecord(
        selector=str(candidate.get("selector") or ""),
        description=str(candidate.get("description") or ""),
        method=str(candidate.get("method") or "click").lower(),
        arguments=_as_arguments(candidate.get("arguments")),
    )


def action_from_captured(event: dict[str, Any]) -> ActionRecord:
    """Build an ActionRecord from one event drained from the page-side listener."""
    return ActionRecord(
        selector=str(event.get("selector") or ""),
        description=str(event.get("description") or ""),
        method=str(event.get("method") or "click").lower(),
        arguments=_as_arguments(event.get("arguments")),
    )


def _actions_from_items(items: list[Any]) -> list[ActionRecord]:
    actions: list[ActionRecord] = []
    for item in items:
        if isinstance(item, ActionRecord):
            actions.append(item)
        elif isinstance(item, dict):
            actions.append(action_from_candidate(item))
    return actions


def normalize_act_result(raw: Any, step_description: str) -> ActResult:
    """Coerce whatever a step execution produced into an ActResult.

    Opaque results without a usable action list yield an ActResult with no
    actions; such a step is planned again next run rather than replayed.
    """
    if isinstance(raw, ActResult):
        result = raw.model_copy(deep=True)
        if not result.action_description:
            result.action_description = step_description
        return result

    if isinstance(raw, list):
        actions = _actions_from_items(raw)
        return ActResult(
            success=True,
            message=f"{len(actions)} action(s)",
            action_description=step_description,
            actions=actions,
        )

    if not isinstance(raw, dict):
        logger.debug("Opaque act result (%s) for step '%s'", type(raw).__name__, step_description)
        return ActResult(
            success=True,
            message=str(raw) if raw else "",
            action_description=step_description,
        )

    actions = _actions_from_items(raw.get("actions") or [])
    description: Optional[str] = raw.get("actionDescription") or raw.get("action_description")
    return ActResult(
        success=bool(raw.get("success", True)),
        message=str(raw.get("message") or ""),
        action_description=description or step_description,
        actions=actions,
    )
