"""Configuration models for the step-cache runner."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720


class FrameworkConfig(BaseModel):
    # Case data
    data_file: str = "./data/cases.json"

    # Execution
    max_concurrency: int = 5
    headless: bool = True
    navigation_timeout_ms: int = 30000
    action_timeout_ms: int = 10000
    settle_timeout_ms: int = 3000
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    user_agent: Optional[str] = None

    # Modes
    only_api: bool = False  # validate captured API requests instead of asserting
    record_api: bool = False  # persist this run's API traffic; forces concurrency 1

    # Artifacts
    record_trace: bool = True
    trace_dir: str = "./traces"
    record_dir: str = "./records"
    debug_dir: str = "./.stepcache/debug"

    # AI settings
    ai_model: str = "claude-opus-4-6"
    ai_max_tokens: int = 4096
    ai_max_retries: int = 3
    ai_retry_backoff_seconds: float = 2.0
    page_state_max_elements: int = 150

    @field_validator("max_concurrency")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrency must be at least 1")
        return v

    @property
    def effective_concurrency(self) -> int:
        """API recording runs cases one at a time so traffic is attributable."""
        return 1 if self.record_api else self.max_concurrency

    @classmethod
    def load(cls, path: str | Path) -> "FrameworkConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
