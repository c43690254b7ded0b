"""Captures API requests and responses on a page."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Request, Response

from stepcache.models.test_case import ApiRecord, ApiResponse
from stepcache.store.schema import derive_schema

logger = logging.getLogger(__name__)

_API_RESOURCE_TYPES = ("xhr", "fetch")


def request_body(entry: dict[str, Any]) -> Any:
    """Decode a recorded request's post data (JSON if possible)."""
    raw = entry.get("postData")
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return {"raw": raw}


class NetworkRecorder:
    """Collects xhr/fetch traffic, optionally only for URLs containing one of ``api_urls``."""

    def __init__(self, api_urls: list[str] | None = None):
        self.api_urls = [u for u in (api_urls or []) if u]
        self.requests: list[dict[str, Any]] = []
        self.responses: list[dict[str, Any]] = []

    def setup_listeners(self, page: Page) -> None:
        page.on("request", self._on_request)
        page.on("response", self._on_response)

    def _matches(self, url: str) -> bool:
        if not self.api_urls:
            return True
        return any(api_url in url for api_url in self.api_urls)

    def _on_request(self, request: Request) -> None:
        if request.resource_type not in _API_RESOURCE_TYPES or not self._matches(request.url):
            return
        self.requests.append({
            "timestamp": int(time.time() * 1000),
            "url": request.url,
            "method": request.method,
            "headers": dict(request.headers),
            "postData": request.post_data,
        })

    async def _on_response(self, response: Response) -> None:
        request = response.request
        if request.resource_type not in _API_RESOURCE_TYPES or not self._matches(response.url):
            return
        try:
            body: Any = await response.json()
        except (PlaywrightError, ValueError):
            try:
                body = await response.text()
            except PlaywrightError as e:
                logger.debug("Response body unavailable for %s: %s", response.url, e)
                body = None
        self.responses.append({
            "timestamp": int(time.time() * 1000),
            "url": response.url,
            "status": response.status,
            "headers": dict(response.headers),
            "body": body,
        })

    def requests_for(self, api_url: str) -> list[dict[str, Any]]:
        return [r for r in self.requests if api_url in r["url"]]

    def build_api_records(self, api_urls: list[str] | None = None) -> dict[str, ApiRecord]:
        """Request schema (from the last matching request) and last response per API URL."""
        records: dict[str, ApiRecord] = {}
        for api_url in api_urls or self.api_urls:
            requests = self.requests_for(api_url)
            responses = [r for r in self.responses if api_url in r["url"]]
            if not requests and not responses:
                logger.debug("No traffic recorded for %s", api_url)
                continue
            record = ApiRecord()
            if requests:
                record.request_schema = derive_schema(request_body(requests[-1]))
            if responses:
                last = responses[-1]
                record.response = ApiResponse(
                    url=last["url"], status=last["status"],
                    headers=last["headers"], body=last["body"],
                )
            records[api_url] = record
        return records

    def snapshot(self) -> list[dict[str, Any]]:
        return [{"kind": "request", **r} for r in self.requests] + \
               [{"kind": "response", **r} for r in self.responses]
