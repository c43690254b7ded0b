"""Snapshot of the interactive elements on a page, for the planner and observer."""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from stepcache.capture.listener import XPATH_JS

logger = logging.getLogger(__name__)

_SNAPSHOT_JS = (
    "(maxElements) => {\n"
    + XPATH_JS
    + r"""
  const interactiveTags = new Set(['a', 'button', 'input', 'select', 'textarea', 'summary', 'label']);
  const interactiveRoles = new Set([
    'button', 'link', 'textbox', 'checkbox', 'radio', 'combobox',
    'listbox', 'menuitem', 'tab', 'switch', 'option'
  ]);
  const results = [];
  for (const el of document.querySelectorAll('*')) {
    if (results.length >= maxElements) break;
    const tag = el.tagName.toLowerCase();
    const role = el.getAttribute('role') || '';
    const interactive = interactiveTags.has(tag) || interactiveRoles.has(role) ||
      el.getAttribute('onclick') || el.getAttribute('tabindex') === '0';
    if (!interactive) continue;
    if (el.offsetParent === null && getComputedStyle(el).position !== 'fixed') continue;
    const attrs = {};
    for (const name of ['id', 'name', 'type', 'placeholder', 'aria-label', 'href', 'value', 'title']) {
      const v = el.getAttribute(name);
      if (v) attrs[name] = v.substring(0, 80);
    }
    results.push({
      selector: __stepcacheSelector(el),
      tag: tag,
      role: role,
      text: (el.innerText || el.textContent || '').trim().replace(/\s+/g, ' ').substring(0, 80),
      attributes: attrs,
    });
  }
  return results;
}"""
)


async def capture_page_state(page: Page, max_elements: int = 150) -> list[dict[str, Any]]:
    """Return up to ``max_elements`` visible interactive elements with selectors."""
    try:
        elements = await page.evaluate(_SNAPSHOT_JS, max_elements)
    except PlaywrightError as e:
        logger.error("Page-state capture failed: %s", e)
        return []
    logger.debug("Captured %d interactive elements", len(elements))
    return elements


async def page_text(page: Page, limit: int = 4000) -> str:
    try:
        text = await page.inner_text("body", timeout=5000)
    except PlaywrightError as e:
        logger.debug("Could not read page text: %s", e)
        return ""
    return text[:limit]


def format_elements(elements: list[dict[str, Any]]) -> str:
    lines = []
    for i, el in enumerate(elements):
        head = [el.get("tag", "")]
        if el.get("role"):
            head.append(f"role={el['role']}")
        head.extend(f'{k}="{v}"' for k, v in (el.get("attributes") or {}).items())
        lines.append(f"[{i}] <{' '.join(head)}> {el.get('text', '')}".rstrip())
    return "\n".join(lines) if lines else "(no interactive elements found)"
