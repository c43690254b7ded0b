"""Tests for saving a record-mode session."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from stepcache.capture.record_mode import RecordSession
from stepcache.executor.action_codec import action_from_captured
from stepcache.executor.network_recorder import NetworkRecorder

CAPTURED = [
    {"selector": "xpath=//*[@id='user']", "method": "fill", "arguments": ["alice"], "description": "Fill user"},
    {"selector": "", "method": "click", "description": "Click somewhere untraceable"},
    {"selector": "xpath=//*[@id='login']", "method": "click", "description": "Click Log in"},
]


def _recorder() -> MagicMock:
    recorder = MagicMock()
    recorder.stop = AsyncMock(return_value=CAPTURED)
    recorder.dropped = 0
    recorder.capture_failures = []
    recorder.actions_for_replay.return_value = [action_from_captured(a) for a in CAPTURED if a["selector"]]
    return recorder


@pytest.mark.asyncio
class TestDrainAndSave:
    async def test_writes_recording_files(self, framework_config, mock_session):
        session = RecordSession(framework_config, "example.com/login")
        session.record_dir.mkdir(parents=True)
        session.recorder = _recorder()

        path = await session._drain_and_save(mock_session, NetworkRecorder())

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["url"] == "https://example.com/login"
        assert len(payload["actions"]) == 3
        steps_file = path.with_name(path.stem + "-steps.txt")
        assert steps_file.read_text(encoding="utf-8").splitlines()[0] == "Fill user"
        mock_session.stop_trace.assert_awaited_once()

    async def test_stores_replayable_steps_for_case(self, framework_config, store, mock_session):
        session = RecordSession(framework_config, "https://example.com/login", case_id="REC-1", store=store)
        session.record_dir.mkdir(parents=True)
        session.recorder = _recorder()

        await session._drain_and_save(mock_session, NetworkRecorder())

        case = store.get_case("REC-1")
        assert case.steps == ["Fill user", "Click Log in"]
        history = store.step_history("REC-1")
        assert [h.actions[0].selector for h in history] == ["xpath=//*[@id='user']", "xpath=//*[@id='login']"]
        assert history[0].actions[0].arguments == ["alice"]

    async def test_request_stop_halts_polling(self, framework_config, mock_session):
        session = RecordSession(framework_config, "https://example.com")
        session.recorder = _recorder()
        session.request_stop()
        session.recorder.stop_polling.assert_called_once()
        assert session._should_stop(mock_session)

    async def test_stop_file_ends_recording(self, framework_config, mock_session):
        session = RecordSession(framework_config, "https://example.com")
        session.record_dir.mkdir(parents=True)
        session.stop_file.touch()
        assert session._should_stop(mock_session)
