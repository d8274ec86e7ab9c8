"""Tests for the request context middleware.

Verifies that every response gets:
- An X-Request-ID header (generated or echoed from the request)
- The id attached to log records emitted while the request runs
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from certify.middleware.request_context import request_id_var


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    """401 from a protected route still carries the header."""
    resp = client.get(f"/v1/certificates/course/{uuid.uuid4()}")
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_request_id_reset_after_request(client: TestClient) -> None:
    client.get("/health", headers={"X-Request-ID": "req-1"})
    assert request_id_var.get() == "-"


def test_summary_line_carries_request_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="certify.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "trace-me"})
    lines = [
        r
        for r in caplog.records
        if r.name == "certify.middleware.request_context"
    ]
    assert lines
    assert getattr(lines[-1], "request_id", None) == "trace-me"
    assert getattr(lines[-1], "status_code", None) == 200
