"""Persistent case store: one JSON document holding every case and its last result."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from stepcache.models.test_case import ApiRecord, DataFile, TestCase
from stepcache.models.test_result import (
    ActResult,
    PersistedResult,
    RunStatistics,
    TestResult,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The data file exists but cannot be read as a case document."""


class DataStore:
    """Loads, merges and saves the case data file.

    Every write is a full load-merge-save of the document. Callers on one
    event loop never interleave a save because the file I/O here is
    synchronous.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    # ------------------------------------------------------------------
    # Raw document access
    # ------------------------------------------------------------------

    def load(self) -> DataFile:
        if not self.path.exists():
            logger.debug("No data file at %s, starting empty", self.path)
            return DataFile()
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            return DataFile.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            raise StoreError(f"Cannot read data file {self.path}: {e}") from e

    def save(self, data: DataFile) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data.to_wire(), f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)
        logger.debug("Saved %d cases to %s", len(data.test_cases), self.path)

    # ------------------------------------------------------------------
    # Case queries
    # ------------------------------------------------------------------

    def list_cases(self) -> list[TestCase]:
        return self.load().test_cases

    def get_case(self, case_id: str) -> Optional[TestCase]:
        for case in self.load().test_cases:
            if case.id == case_id:
                return case
        return None

    def step_history(self, case_id: str) -> list[ActResult]:
        """Per-step history from the case's last result (empty if none)."""
        case = self.get_case(case_id)
        if case is None or case.result is None:
            return []
        return list(case.result.steps)

    def assertion_plan(self, case_id: str) -> Optional[dict]:
        case = self.get_case(case_id)
        if case is None or case.result is None:
            return None
        return case.result.assertion_plan

    # ------------------------------------------------------------------
    # Result merge
    # ------------------------------------------------------------------

    @staticmethod
    def merge_result(prev: Optional[PersistedResult], result: TestResult) -> PersistedResult:
        """Fold one run's result into the previously persisted one.

        Rules:
          * wait flags are sticky: a step's attempted/timed-out flags are the
            OR of this run's and the previous run's flags at the same index;
          * a run that produced no step results keeps the previous steps;
          * a run that stopped early overwrites only the steps it reached;
          * the assertion plan is replaced by this run's plan, dropped when
            this run invalidated it, and otherwise kept;
          * the execution log is kept only when non-empty.
        """
        prev_steps = prev.steps if prev else []
        new_steps: list[ActResult] = []
        for step in result.steps:
            if step.status != "passed" or step.act_result is None:
                break
            entry = step.act_result.model_copy(deep=True)
            attempted = step.page_load_wait_attempted
            timed_out = step.page_load_wait_timed_out
            if step.step_index < len(prev_steps):
                before = prev_steps[step.step_index]
                attempted = attempted or bool(before.page_load_wait_attempted)
                timed_out = timed_out or bool(before.page_load_wait_timed_out)
            entry.page_load_wait_attempted = attempted
            entry.page_load_wait_timed_out = timed_out
            new_steps.append(entry)

        if not new_steps:
            steps = list(prev_steps)
        else:
            steps = new_steps + list(prev_steps[len(new_steps):])

        if result.plan_invalidated:
            plan = None
        elif result.assertion_plan is not None:
            plan = result.assertion_plan.to_wire()
        else:
            plan = prev.assertion_plan if prev else None

        return PersistedResult(
            status=result.status,
            steps=steps,
            actual_result=result.actual_result,
            error=result.error,
            start_time=result.start_time,
            end_time=result.end_time,
            duration=result.duration,
            assertion_plan=plan,
            trace_path=result.trace_path,
            log=result.log or None,
        )

    def save_results(self, results: list[TestResult]) -> None:
        """Load the file, merge each result into its case, recompute statistics, save."""
        data = self.load()
        by_id = {case.id: case for case in data.test_cases}
        for result in results:
            case = by_id.get(result.id)
            if case is None:
                logger.warning("Result for unknown case %s, adding it", result.id)
                case = TestCase(
                    id=result.id, name=result.name, url=result.url,
                    expected_result=result.expected_result,
                )
                data.test_cases.append(case)
                by_id[case.id] = case
            case.result = self.merge_result(case.result, result)

        data.statistics = compute_statistics(data.test_cases)
        data.last_run = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        self.save(data)

    def save_api_records(self, case_id: str, records: dict[str, ApiRecord]) -> None:
        """Replace the recorded traffic for the given URLs, creating the case if needed."""
        data = self.load()
        case = next((c for c in data.test_cases if c.id == case_id), None)
        if case is None:
            logger.info("Creating case %s to hold API records", case_id)
            case = TestCase(id=case_id, name=case_id)
            data.test_cases.append(case)
        merged = dict(case.api_records or {})
        merged.update(records)
        case.api_records = merged
        case.api_urls = sorted(set(case.api_urls or []) | set(records))
        self.save(data)

    def save_recorded_steps(self, case_id: str, steps: list[ActResult]) -> None:
        """Store captured actions as the case's step history so the next run replays them."""
        data = self.load()
        case = next((c for c in data.test_cases if c.id == case_id), None)
        if case is None:
            case = TestCase(id=case_id, name=case_id)
            data.test_cases.append(case)
        if not case.steps:
            case.steps = [s.action_description for s in steps]
        prev = case.result or PersistedResult()
        case.result = prev.model_copy(update={"steps": steps})
        self.save(data)

    # ------------------------------------------------------------------
    # Case management
    # ------------------------------------------------------------------

    def import_cases(self, cases: list[TestCase], source_file: str = "") -> int:
        """Append cases whose ids are not yet present. Returns how many were added."""
        data = self.load()
        known = {c.id for c in data.test_cases}
        added = 0
        for case in cases:
            if case.id in known:
                logger.debug("Skipping existing case %s", case.id)
                continue
            data.test_cases.append(case)
            known.add(case.id)
            added += 1
        if source_file:
            data.source_file = source_file
        self.save(data)
        logger.info("Imported %d new cases (%d skipped)", added, len(cases) - added)
        return added

    def delete_case(self, case_id: str) -> bool:
        data = self.load()
        remaining = [c for c in data.test_cases if c.id != case_id]
        if len(remaining) == len(data.test_cases):
            return False
        data.test_cases = remaining
        data.statistics = compute_statistics(remaining)
        self.save(data)
        return True


def compute_statistics(cases: list[TestCase]) -> RunStatistics:
    finished = [c.result for c in cases if c.result and c.result.status in ("passed", "failed")]
    total = len(finished)
    passed = sum(1 for r in finished if r.status == "passed")
    total_duration = sum(r.duration or 0 for r in finished)
    return RunStatistics(
        total=total,
        passed=passed,
        failed=total - passed,
        pass_rate=round(passed / total * 100, 2) if total else 0.0,
        total_duration=total_duration,
        average_duration=round(total_duration / total) if total else 0,
    )
