"""Tests for the batched concurrency scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from stepcache.executor.scheduler import Scheduler
from stepcache.models.test_case import TestCase
from stepcache.models.test_result import TestResult
from stepcache.store.data_store import StoreError


def _cases(n: int) -> list[TestCase]:
    return [TestCase(id=f"TC-{i}", name=f"case {i}", url="https://example.com") for i in range(n)]


def _session_factory(sessions: list):
    def factory(case):
        session = MagicMock()
        session.close = AsyncMock()
        session.case_id = case.id
        sessions.append(session)
        return session
    return factory


def _executor(fail_ids: set[str] = frozenset(), crash_ids: set[str] = frozenset()):
    in_flight = {"now": 0, "max": 0}

    async def execute(case, session):
        in_flight["now"] += 1
        in_flight["max"] = max(in_flight["max"], in_flight["now"])
        await asyncio.sleep(0)
        in_flight["now"] -= 1
        if case.id in crash_ids:
            raise RuntimeError("browser crashed")
        status = "failed" if case.id in fail_ids else "passed"
        return TestResult(id=case.id, status=status)

    executor = MagicMock()
    executor.execute = AsyncMock(side_effect=execute)
    executor.in_flight = in_flight
    return executor


@pytest.mark.asyncio
class TestScheduler:
    """Tests for Scheduler.run."""

    async def test_five_cases_cap_two(self):
        sessions = []
        executor = _executor(fail_ids={"TC-2"})
        scheduler = Scheduler(executor, _session_factory(sessions), max_concurrency=2)

        results = await scheduler.run(_cases(5))

        assert scheduler.batch_sizes == [2, 2, 1]
        assert len(sessions) == 5
        for session in sessions:
            session.close.assert_awaited_once()
        assert [r.id for r in results] == [f"TC-{i}" for i in range(5)]
        assert [r.status for r in results].count("failed") == 1
        assert executor.in_flight["max"] <= 2

    async def test_width_is_capped_by_case_count(self):
        scheduler = Scheduler(_executor(), _session_factory([]), max_concurrency=5)
        await scheduler.run(_cases(3))
        assert scheduler.batch_sizes == [3]

    async def test_crash_does_not_abort_siblings(self):
        sessions = []
        scheduler = Scheduler(_executor(crash_ids={"TC-0"}), _session_factory(sessions), max_concurrency=2)
        results = await scheduler.run(_cases(2))

        assert results[0].status == "failed"
        assert "browser crashed" in results[0].error
        assert results[1].status == "passed"
        assert all(s.close.await_count == 1 for s in sessions)

    async def test_each_result_is_saved_as_it_finishes(self):
        store = MagicMock()
        scheduler = Scheduler(_executor(), _session_factory([]), store=store, max_concurrency=2)
        await scheduler.run(_cases(3))
        assert store.save_results.call_count == 3
        saved_ids = [call.args[0][0].id for call in store.save_results.call_args_list]
        assert sorted(saved_ids) == ["TC-0", "TC-1", "TC-2"]

    async def test_store_failure_is_logged_not_raised(self):
        store = MagicMock()
        store.save_results.side_effect = StoreError("disk full")
        scheduler = Scheduler(_executor(), _session_factory([]), store=store, max_concurrency=1)
        results = await scheduler.run(_cases(2))
        assert len(results) == 2

    async def test_close_failure_does_not_lose_result(self):
        sessions = []

        def factory(case):
            session = MagicMock()
            session.close = AsyncMock(side_effect=RuntimeError("already closed"))
            sessions.append(session)
            return session

        results = await Scheduler(_executor(), factory, max_concurrency=1).run(_cases(1))
        assert results[0].status == "passed"

    async def test_no_cases(self):
        scheduler = Scheduler(_executor(), _session_factory([]))
        assert await scheduler.run([]) == []
        assert scheduler.batch_sizes == []
