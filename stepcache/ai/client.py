"""Claude API client wrapper used by the planner, observer and assertion planner."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Optional

import anthropic

logger = logging.getLogger(__name__)

CONSOLE_KEYS_URL = "https://console.anthropic.com/settings/keys"

# Set by the orchestrator at startup
_debug_dir: Path | None = None


def set_debug_dir(path: Path) -> None:
    """Set the directory for AI exchange logs and parse failures."""
    global _debug_dir
    _debug_dir = path
    _debug_dir.mkdir(parents=True, exist_ok=True)


def _get_debug_dir() -> Path:
    global _debug_dir
    if _debug_dir is None:
        _debug_dir = Path("./.stepcache") / "debug"
    _debug_dir.mkdir(parents=True, exist_ok=True)
    return _debug_dir


class ProviderAuthError(Exception):
    """The provider rejected our credentials. Never retried."""

    def __init__(self, status_code: int | None, detail: str, key_preview: str):
        self.status_code = status_code
        self.detail = detail
        self.key_preview = key_preview
        super().__init__(
            f"AI provider rejected the API key ({status_code or 'auth error'}): {detail}\n"
            f"  key in use: {key_preview}\n"
            f"  check that ANTHROPIC_API_KEY is current and has access to the configured model "
            f"(manage keys at {CONSOLE_KEYS_URL})"
        )


class AIRetryExhausted(Exception):
    """A transient provider failure persisted through every retry."""

    def __init__(self, attempts: int, reason: str, last_error: Exception):
        self.attempts = attempts
        self.reason = reason
        self.last_error = last_error
        super().__init__(f"AI call failed after {attempts} attempts ({reason}): {last_error}")


def _key_preview(api_key: str) -> str:
    if len(api_key) <= 12:
        return "***"
    return f"{api_key[:7]}...{api_key[-4:]}"


class AIClient:
    """Wrapper around the Anthropic Claude API with an explicit retry policy."""

    def __init__(
        self,
        model: str = "claude-opus-4-6",
        max_tokens: int = 4096,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
    ):
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Set it to enable AI planning and assertions."
            )
        # Retries are handled in complete() so attempts and reasons are visible.
        self.client = anthropic.Anthropic(api_key=api_key, timeout=120.0, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.key_preview = _key_preview(api_key)
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    @staticmethod
    def _retry_reason(error: anthropic.APIError) -> Optional[str]:
        """Classify a provider error as transient (returns a reason) or not (None)."""
        if isinstance(error, anthropic.RateLimitError):
            return "rate_limit"
        if isinstance(error, anthropic.APIConnectionError):
            return "connection"
        if isinstance(error, anthropic.APIStatusError) and error.status_code >= 500:
            return "server_error"
        return None

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
    ) -> str:
        """Send a completion request to Claude and return the text response."""
        self._call_count += 1
        tokens = max_tokens or self.max_tokens
        max_attempts = self.max_retries + 1
        logger.info("Calling AI (call #%d, model=%s, max_tokens=%d)...",
                    self._call_count, self.model, tokens)
        logger.debug("AI prompt length: system=%d chars, user=%d chars",
                     len(system_prompt), len(user_message))

        attempt = 0
        while True:
            attempt += 1
            try:
                call_start = time.time()
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=tokens,
                    temperature=temperature,
                    system=system_prompt,
                    messages=[{"role": "user", "content": user_message}],
                )
            except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
                logger.error("AI provider rejected credentials (key %s)", self.key_preview)
                self._save_exchange_log(self._call_count, system_prompt, user_message, "", str(e))
                raise ProviderAuthError(getattr(e, "status_code", None), str(e), self.key_preview) from e
            except anthropic.APIError as e:
                reason = self._retry_reason(e)
                if reason is None:
                    logger.error("Claude API error: %s", e)
                    self._save_exchange_log(self._call_count, system_prompt, user_message, "", str(e))
                    raise
                if attempt >= max_attempts:
                    logger.error("AI call #%d gave up after %d attempts (%s)",
                                 self._call_count, attempt, reason)
                    self._save_exchange_log(self._call_count, system_prompt, user_message, "", str(e))
                    raise AIRetryExhausted(attempt, reason, e) from e
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning("AI call #%d attempt %d/%d failed (%s), retrying in %.1fs",
                               self._call_count, attempt, max_attempts, reason, delay)
                time.sleep(delay)
                continue

            text = response.content[0].text
            logger.info("AI response received in %.1fs (%d chars)",
                        time.time() - call_start, len(text))
            if response.stop_reason == "max_tokens":
                logger.warning("AI response was truncated at max_tokens=%d; "
                               "consider raising ai_max_tokens in config.", tokens)
            self._save_exchange_log(self._call_count, system_prompt, user_message, text, None)
            return text

    def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        """Send a completion request and parse the response as a JSON object."""
        text = self.complete(system_prompt, user_message, max_tokens, temperature)
        return self._parse_json_response(text)

    # ------------------------------------------------------------------
    # JSON parsing with LLM quirk handling
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_json_response(text: str) -> dict[str, Any]:
        """Parse an AI response as a JSON object, tolerating fences, comments and trailing commas."""
        original_text = text
        text = text.strip()

        fence = re.search(r'^```(?:json|javascript|)?\s*\n(.*?)\n```\s*$', text, re.DOTALL | re.MULTILINE)
        if fence:
            text = fence.group(1).strip()
        elif text.startswith("```") or text.endswith("```"):
            text = text.strip("`").strip()

        try:
            parsed = json.loads(text, strict=False)
        except json.JSONDecodeError:
            parsed = None

        cleaned = text
        if parsed is None:
            cleaned = re.sub(r'(?<=[\s,\]\}])//[^\n]*', '', cleaned)
            cleaned = re.sub(r'^//[^\n]*', '', cleaned, flags=re.MULTILINE)
            cleaned = re.sub(r',\s*([}\]])', r'\1', cleaned)
            first, last = cleaned.find('{'), cleaned.rfind('}')
            if first != -1 and last > first:
                cleaned = cleaned[first:last + 1]
            try:
                parsed = json.loads(cleaned, strict=False)
            except json.JSONDecodeError as e:
                logger.error("Failed to parse AI response as JSON: %s", e)
                AIClient._save_parse_failure(original_text, cleaned, str(e))
                raise ValueError(f"AI returned invalid JSON: {e}") from e

        if not isinstance(parsed, dict):
            AIClient._save_parse_failure(original_text, cleaned, "top-level value is not an object")
            raise ValueError(f"AI returned JSON {type(parsed).__name__}, expected an object")
        return parsed

    # ------------------------------------------------------------------
    # Debug files
    # ------------------------------------------------------------------

    @staticmethod
    def _write_debug_file(name: str, sections: list[tuple[str, str]]) -> Optional[Path]:
        path = _get_debug_dir() / name
        body = "\n\n".join(f"### {title}\n{content or '(empty)'}" for title, content in sections)
        path.write_text(body + "\n", encoding="utf-8")
        return path

    @staticmethod
    def _save_exchange_log(
        call_number: int,
        system_prompt: str,
        user_message: str,
        response_text: str,
        error: str | None,
    ) -> None:
        """Write one prompt/response exchange to the debug directory."""
        sections = [
            ("system", system_prompt),
            ("user", user_message),
            ("response", response_text),
        ]
        if error:
            sections.append(("error", error))
        try:
            path = AIClient._write_debug_file(
                f"exchange-{time.strftime('%Y%m%d-%H%M%S')}-{call_number:03d}.txt", sections,
            )
            logger.debug("Exchange #%d written to %s", call_number, path)
        except OSError as e:
            logger.debug("Could not write exchange #%d: %s", call_number, e)

    @staticmethod
    def _save_parse_failure(raw_response: str, cleaned_response: str, error: str) -> None:
        sections = [("error", error), ("cleaned", cleaned_response), ("raw", raw_response)]
        try:
            path = AIClient._write_debug_file(f"unparsed-{time.strftime('%Y%m%d-%H%M%S')}.txt", sections)
            logger.error("Unparseable response kept at %s", path)
        except OSError as e:
            logger.error("Could not keep unparseable response (%s); first 2000 chars:\n%s",
                         e, raw_response[:2000])
