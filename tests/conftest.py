"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from stepcache.models.config import FrameworkConfig
from stepcache.models.test_case import TestCase
from stepcache.models.test_result import ActionRecord, ActResult, PersistedResult
from stepcache.store.data_store import DataStore


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def framework_config(tmp_path: Path) -> FrameworkConfig:
    """Create a test framework configuration rooted in tmp_path."""
    return FrameworkConfig(
        data_file=str(tmp_path / "data" / "cases.json"),
        max_concurrency=5,
        record_trace=False,
        trace_dir=str(tmp_path / "traces"),
        record_dir=str(tmp_path / "records"),
        debug_dir=str(tmp_path / "debug"),
    )


@pytest.fixture
def store(framework_config: FrameworkConfig) -> DataStore:
    return DataStore(framework_config.data_file)


# ============================================================================
# Case Fixtures
# ============================================================================


@pytest.fixture
def action_record() -> ActionRecord:
    return ActionRecord(
        selector="xpath=//*[@id='login']",
        description="Click \"Log in\"",
        method="click",
        arguments=[],
    )


@pytest.fixture
def test_case() -> TestCase:
    """A two-step login case with no history."""
    return TestCase(
        id="TC-001",
        name="Login with valid credentials",
        url="https://example.com/login",
        steps=["Type alice into the username field", "Click the log in button"],
        expected_result="The dashboard greets Alice",
    )


@pytest.fixture
def cached_case(test_case: TestCase) -> TestCase:
    """The login case with replayable history for both steps."""
    history = [
        ActResult(
            action_description=test_case.steps[0],
            actions=[ActionRecord(selector="xpath=//*[@id='user']", method="fill", arguments=["alice"])],
            page_load_wait_attempted=True,
            page_load_wait_timed_out=True,
        ),
        ActResult(
            action_description=test_case.steps[1],
            actions=[ActionRecord(selector="xpath=//*[@id='login']", method="click")],
            page_load_wait_attempted=True,
            page_load_wait_timed_out=False,
        ),
    ]
    return test_case.model_copy(update={
        "result": PersistedResult(status="passed", steps=history),
    })


# ============================================================================
# Mock Fixtures
# ============================================================================


def make_mock_page(url: str = "https://example.com/login") -> MagicMock:
    """Create a mock Playwright page whose locator().first is a shared mock."""
    page = MagicMock()
    page.url = url
    page.goto = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.evaluate = AsyncMock(return_value={"events": [], "dropped": 0})
    page.inner_text = AsyncMock(return_value="")
    page.is_closed = Mock(return_value=False)
    page.on = Mock()
    page.keyboard = MagicMock()
    page.keyboard.press = AsyncMock()

    locator = MagicMock()
    for method in ("click", "fill", "press", "check", "uncheck", "select_option", "hover", "dblclick"):
        setattr(locator, method, AsyncMock())
    page.locator.return_value.first = locator
    page.mock_locator = locator
    return page


@pytest.fixture
def mock_page() -> MagicMock:
    return make_mock_page()


@pytest.fixture
def mock_session(mock_page: MagicMock) -> MagicMock:
    """A BrowserSession stand-in whose start() yields mock_page."""
    session = MagicMock()
    session.start = AsyncMock(return_value=mock_page)
    session.stop_trace = AsyncMock(return_value=None)
    session.close = AsyncMock()
    session.page = mock_page
    return session


@pytest.fixture
def mock_agent() -> MagicMock:
    """A BrowserAgent stand-in: plans nothing, observes one match, acts successfully."""
    agent = MagicMock()
    agent.plan = AsyncMock(return_value=[])
    agent.observe = AsyncMock(return_value=[{"selector": "xpath=//h1", "description": "greeting"}])
    agent.act = AsyncMock(return_value={"success": True, "message": "done"})
    return agent


@pytest.fixture
def mock_ai_client() -> Mock:
    """An AIClient stand-in returning a two-item assertion plan."""
    client = Mock()
    client.call_count = 0
    client.complete_json = Mock(return_value={
        "summary": "Dashboard greeting",
        "assertions": [{"type": "url", "value": "/dashboard"}, "greeting for Alice"],
    })
    return client


@pytest.fixture
def mock_anthropic_client() -> Mock:
    """Create a mock Anthropic client."""
    mock_client = Mock()
    mock_response = Mock()
    mock_response.content = [Mock(text='{"test": "response"}')]
    mock_response.stop_reason = "end_turn"
    mock_client.messages.create.return_value = mock_response
    return mock_client
