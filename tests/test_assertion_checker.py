"""Tests for the assertion planner & verifier."""

from unittest.mock import Mock

import anthropic
import httpx
import pytest

from stepcache.ai.client import ProviderAuthError
from stepcache.executor.assertion_checker import AssertionFailure, AssertionVerifier
from stepcache.models.test_result import ObservationCheck, UrlCheck


@pytest.mark.asyncio
class TestBuildPlan:
    """Tests for AssertionVerifier.build_plan."""

    async def test_valid_cached_plan_is_reused(self, mock_page, mock_ai_client):
        verifier = AssertionVerifier(mock_page, mock_ai_client)
        plan, from_cache = await verifier.build_plan("x", {"assertions": [{"type": "url", "value": "/d"}]})
        assert from_cache is True
        assert plan.assertions == [UrlCheck(value="/d")]
        mock_ai_client.complete_json.assert_not_called()

    async def test_invalid_cached_plan_is_replanned(self, mock_page, mock_ai_client):
        verifier = AssertionVerifier(mock_page, mock_ai_client)
        plan, from_cache = await verifier.build_plan("x", {"assertions": []})
        assert from_cache is False
        assert len(plan.assertions) == 2
        mock_ai_client.complete_json.assert_called_once()

    async def test_without_ai_client_uses_expected_text(self, mock_page):
        plan, _ = await AssertionVerifier(mock_page, None).build_plan("Welcome, Alice")
        assert plan.assertions == [ObservationCheck(text="Welcome, Alice")]

    async def test_parse_failure_returns_none(self, mock_page):
        client = Mock()
        client.complete_json = Mock(side_effect=ValueError("AI returned invalid JSON"))
        plan, _ = await AssertionVerifier(mock_page, client).build_plan("x")
        assert plan is None

    async def test_schema_failure_returns_none(self, mock_page):
        client = Mock()
        client.complete_json = Mock(return_value={"summary": "s", "assertions": []})
        plan, _ = await AssertionVerifier(mock_page, client).build_plan("x")
        assert plan is None


@pytest.mark.asyncio
class TestVerify:
    """Tests for AssertionVerifier.verify."""

    async def test_plan_passes(self, mock_page, mock_ai_client, mock_agent):
        mock_page.url = "https://example.com/dashboard"
        verifier = AssertionVerifier(mock_page, mock_ai_client, mock_agent)
        outcome = await verifier.verify("The dashboard greets Alice")

        assert outcome.plan is not None
        assert outcome.invalidate_cached is False
        assert outcome.lines[1].startswith("[#1] ✓")
        assert outcome.lines[2].startswith("[#2] ✓")
        mock_agent.observe.assert_awaited_once_with("greeting for Alice", mock_page)

    async def test_url_mismatch_reports_actual_url(self, mock_page, mock_ai_client, mock_agent):
        mock_page.url = "https://example.com/login?error=1"
        verifier = AssertionVerifier(mock_page, mock_ai_client, mock_agent)
        with pytest.raises(AssertionFailure) as exc_info:
            await verifier.verify("The dashboard greets Alice")
        assert "https://example.com/login?error=1" in str(exc_info.value)
        assert exc_info.value.lines[-1].startswith("[#1] ✗")
        mock_agent.observe.assert_not_awaited()

    async def test_zero_observations_fail(self, mock_page, mock_agent):
        mock_agent.observe.return_value = []
        verifier = AssertionVerifier(mock_page, None, mock_agent)
        with pytest.raises(AssertionFailure, match="Not found on page"):
            await verifier.verify("A success toast")

    async def test_failing_cached_plan_is_invalidated(self, mock_page, mock_agent):
        mock_agent.observe.return_value = []
        verifier = AssertionVerifier(mock_page, None, mock_agent)
        with pytest.raises(AssertionFailure) as exc_info:
            await verifier.verify("x", {"assertions": ["a success toast"]})
        assert exc_info.value.invalidate_cached is True

    async def test_planner_failure_falls_back_to_text_presence(self, mock_page):
        client = Mock()
        client.complete_json = Mock(side_effect=ValueError("AI returned invalid JSON"))
        mock_page.inner_text.return_value = "Hello there\nLOGIN SUCCESSFUL\n"
        outcome = await AssertionVerifier(mock_page, client).verify("Login successful")
        assert outcome.plan is None
        assert outcome.lines[0].startswith("[fallback] ✓")

    async def test_fallback_miss_fails(self, mock_page):
        client = Mock()
        client.complete_json = Mock(side_effect=ValueError("AI returned invalid JSON"))
        mock_page.inner_text.return_value = "Something else"
        with pytest.raises(AssertionFailure, match="Expected text not found"):
            await AssertionVerifier(mock_page, client).verify("Login successful")

    async def test_observation_without_agent_checks_text(self, mock_page):
        mock_page.inner_text.return_value = "Welcome, Alice"
        outcome = await AssertionVerifier(mock_page, None, None).verify("welcome, alice")
        assert outcome.lines[-1].startswith("[#1] ✓")

    async def test_provider_error_falls_back_to_text_presence(self, mock_page):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = Mock()
        client.complete_json = Mock(side_effect=anthropic.BadRequestError(
            "bad", response=httpx.Response(400, request=request), body=None,
        ))
        mock_page.inner_text.return_value = "Order confirmed"
        outcome = await AssertionVerifier(mock_page, client).verify("Order confirmed")
        assert outcome.plan is None
        assert outcome.lines == ['[fallback] ✓ page text contains "Order confirmed"']

    async def test_auth_error_is_not_swallowed(self, mock_page):
        client = Mock()
        client.complete_json = Mock(side_effect=ProviderAuthError(401, "invalid x-api-key", "sk-ant-...abcd"))
        with pytest.raises(ProviderAuthError):
            await AssertionVerifier(mock_page, client).verify("Order confirmed")
