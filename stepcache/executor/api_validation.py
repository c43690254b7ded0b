"""API request validation against recorded request schemas."""

from __future__ import annotations

import logging

from stepcache.models.test_case import TestCase
from stepcache.store.schema import SchemaCheck, validate_body

from .network_recorder import NetworkRecorder, request_body

logger = logging.getLogger(__name__)


def validate_api_requests(recorder: NetworkRecorder, case: TestCase) -> SchemaCheck:
    """Check every captured request to each of the case's validated API URLs.

    URLs without a recorded request schema are skipped. When none has one,
    nothing is validated and the check passes with a note saying so.
    """
    errors: list[str] = []
    records = case.api_records or {}
    validated = 0
    for api_url in case.validate_api_urls or []:
        record = records.get(api_url)
        if record is None or not record.request_schema:
            logger.warning("No recorded request schema for %s, skipping", api_url)
            continue
        validated += 1
        requests = recorder.requests_for(api_url)
        if not requests:
            errors.append(f"no request captured for {api_url}")
            continue
        for request in requests:
            check = validate_body(record.request_schema, request_body(request))
            if not check.ok:
                errors.append(f"{api_url} request body invalid: {check.reason}")

    if errors:
        return SchemaCheck(ok=False, reason="; ".join(errors))
    if not validated:
        return SchemaCheck(ok=True, reason="no API schema configured, API requests not validated")
    return SchemaCheck(ok=True, reason=f"API requests match the recorded schemas ({validated} URL(s))")
