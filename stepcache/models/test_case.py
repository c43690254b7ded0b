"""Test case and data-file models (the persisted per-case document)."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from stepcache.models.test_result import CamelModel, PersistedResult, RunStatistics


class ApiResponse(CamelModel):
    url: str = ""
    status: int = 0
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class ApiRecord(CamelModel):
    """Recorded traffic for one API URL: request body schema plus last response."""
    request_schema: Optional[dict[str, Any]] = None
    response: Optional[ApiResponse] = None


class TestCase(CamelModel):
    __test__ = False

    id: str
    name: str = ""
    url: str = ""
    steps: list[str] = Field(default_factory=list)
    expected_result: str = ""
    description: str = ""
    api_urls: Optional[list[str]] = None
    validate_api_urls: Optional[list[str]] = None
    api_records: Optional[dict[str, ApiRecord]] = None
    result: Optional[PersistedResult] = None


class DataFile(CamelModel):
    source_file: str = ""
    test_cases: list[TestCase] = Field(default_factory=list)
    statistics: Optional[RunStatistics] = None
    last_run: Optional[str] = None
