"""Tests for config, case and result models."""

import json

import pytest
from pydantic import ValidationError

from stepcache.models.config import FrameworkConfig
from stepcache.models.test_case import DataFile, TestCase
from stepcache.models.test_result import (
    ActResult,
    AssertionPlan,
    ObservationCheck,
    UrlCheck,
)


class TestFrameworkConfig:
    """Tests for FrameworkConfig."""

    def test_defaults(self):
        cfg = FrameworkConfig()
        assert cfg.max_concurrency == 5
        assert cfg.settle_timeout_ms == 3000
        assert cfg.record_trace is True
        assert cfg.effective_concurrency == 5

    def test_record_api_forces_single_case(self):
        cfg = FrameworkConfig(max_concurrency=8, record_api=True)
        assert cfg.effective_concurrency == 1

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            FrameworkConfig(max_concurrency=0)

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "cfg.json"
        FrameworkConfig(data_file="cases.json", max_concurrency=2).save(path)
        loaded = FrameworkConfig.load(path)
        assert loaded.data_file == "cases.json"
        assert loaded.max_concurrency == 2

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FrameworkConfig.load(tmp_path / "missing.json")


class TestAssertionPlan:
    """Tests for the assertion plan union and its legacy item forms."""

    def test_legacy_items_are_normalized(self):
        plan = AssertionPlan.model_validate({
            "summary": "s",
            "assertions": ["a success banner", {"type": "url", "value": "/done"}],
        })
        assert isinstance(plan.assertions[0], ObservationCheck)
        assert plan.assertions[0].text == "a success banner"
        assert isinstance(plan.assertions[1], UrlCheck)
        assert plan.assertions[1].value == "/done"

    def test_tagged_items(self):
        plan = AssertionPlan.model_validate({
            "assertions": [{"kind": "url", "value": "/x"}, {"kind": "observation", "text": "y"}],
        })
        assert [type(a) for a in plan.assertions] == [UrlCheck, ObservationCheck]

    def test_empty_plan_rejected(self):
        with pytest.raises(ValidationError):
            AssertionPlan.model_validate({"summary": "nothing", "assertions": []})

    def test_url_item_without_value_rejected(self):
        with pytest.raises(ValidationError):
            AssertionPlan.model_validate({"assertions": [{"type": "url"}]})

    def test_wire_form_round_trips_through_validation(self):
        plan = AssertionPlan(summary="s", assertions=[UrlCheck(value="/a"), ObservationCheck(text="b")])
        again = AssertionPlan.model_validate(json.loads(json.dumps(plan.to_wire())))
        assert again == plan


class TestWireFormat:
    """The data file uses camelCase keys."""

    def test_case_parses_camel_case(self):
        case = TestCase.model_validate({
            "id": "1",
            "expectedResult": "ok",
            "validateApiUrls": ["/api/login"],
            "result": {
                "status": "passed",
                "steps": [{"success": True, "actionDescription": "x", "actions": [],
                           "pageLoadWaitTimedOut": True}],
            },
        })
        assert case.expected_result == "ok"
        assert case.validate_api_urls == ["/api/login"]
        assert case.result.steps[0].page_load_wait_timed_out is True

    def test_act_result_dumps_camel_case_without_nulls(self):
        wire = ActResult(action_description="Click", actions=[]).to_wire()
        assert wire["actionDescription"] == "Click"
        assert "pageLoadWaitAttempted" not in wire

    def test_data_file_defaults(self):
        data = DataFile.model_validate({"testCases": [{"id": "a"}]})
        assert data.test_cases[0].id == "a"
        assert data.statistics is None
