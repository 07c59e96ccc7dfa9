"""Tests for request ID tracing middleware and the logging filter that reads it."""
import json
import logging

import pytest

from affiliate_portal.logging_config import JSONFormatter, RequestIdFilter
from affiliate_portal.middleware.request_id import request_id_var


@pytest.mark.asyncio
async def test_response_includes_request_id(client):
    """Every response should have X-Request-ID header."""
    resp = await client.get("/health")
    assert "x-request-id" in resp.headers
    assert len(resp.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_client_request_id_honored(client):
    resp = await client.get("/health", headers={"X-Request-ID": "trace-12345"})
    assert resp.headers["x-request-id"] == "trace-12345"


@pytest.mark.asyncio
async def test_oversized_request_id_truncated(client):
    resp = await client.get("/health", headers={"X-Request-ID": "x" * 500})
    assert resp.headers["x-request-id"] == "x" * 128


@pytest.mark.asyncio
async def test_unique_ids_per_request(client):
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert r1.headers["x-request-id"] != r2.headers["x-request-id"]


@pytest.mark.asyncio
async def test_error_responses_carry_request_id(client):
    resp = await client.get("/api/v1/affiliate/stats", headers={"X-Request-ID": "trace-401"})
    assert resp.status_code == 401
    assert resp.headers["x-request-id"] == "trace-401"


def _record(message="hello") -> logging.LogRecord:
    return logging.LogRecord("affiliate_portal.test", logging.INFO, __file__, 1, message, None, None)


class TestRequestIdFilter:
    def test_outside_request(self):
        record = _record()
        assert RequestIdFilter().filter(record)
        assert record.request_id == "-"

    def test_inside_request(self):
        token = request_id_var.set("rid-42")
        try:
            record = _record()
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "rid-42"

    def test_json_formatter_includes_request_id(self):
        record = _record("click recorded")
        record.request_id = "rid-7"
        line = json.loads(JSONFormatter().format(record))
        assert line["message"] == "click recorded"
        assert line["request_id"] == "rid-7"
        assert line["level"] == "INFO"
