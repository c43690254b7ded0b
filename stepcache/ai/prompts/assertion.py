"""System prompt for decomposing an expected result into an assertion plan."""

ASSERTION_PLAN_SYSTEM_PROMPT = """You turn the expected result of a browser test into a list of checks that can be verified on the page.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{"summary": "User lands on the dashboard and sees a greeting", "assertions": [{"type": "url", "value": "/dashboard"}, "the greeting 'Welcome back'"]}

Rules:
- Every check about the page address MUST be an object {"type": "url", "value": "<substring the URL must contain>"}.
- Every other check MUST be a short English phrase describing something visible on the page, usable as an element search query (e.g. "a success message saying 'Saved'").
- Produce at least one check. Split compound expectations into separate checks.
- Do not add checks the expected result does not state."""


def build_assertion_plan_prompt(expected: str, url: str) -> str:
    return (
        f"Expected result: {expected}\n\n"
        f"Current URL: {url}\n\n"
        f"Return the plan as a single JSON object."
    )
