"""Per-case logging: ``[case-id]`` prefixed records plus an in-memory copy."""

from __future__ import annotations

import logging
import time


class CaseLog(logging.LoggerAdapter):
    """Logger adapter that tags every line with the case id and keeps a buffer.

    The buffer holds every line regardless of the logger's level so a failed
    case can persist its full execution log.
    """

    def __init__(self, logger: logging.Logger, case_id: str):
        super().__init__(logger, {"case_id": case_id})
        self.case_id = case_id
        self.lines: list[str] = []

    def process(self, msg, kwargs):
        return f"[{self.case_id}] {msg}", kwargs

    def log(self, level, msg, *args, **kwargs):
        try:
            text = str(msg) % args if args else str(msg)
        except (TypeError, ValueError):
            text = f"{msg} {args}"
        self.lines.append(f"{time.strftime('%H:%M:%S')} {logging.getLevelName(level)} {text}")
        super().log(level, msg, *args, **kwargs)

    def text(self) -> str:
        return "\n".join(self.lines)
