"""Tests for structured logging and request_id propagation."""

import json
import logging

from fastapi.testclient import TestClient

from billing_api.core.logging import JsonFormatter, log_event, request_id_ctx_var
from billing_api.main import app


def test_request_id_in_response_and_logs(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="billing_api"):
        response = client.get("/healthz")
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert len({r.request_id for r in records}) == 1


def test_request_id_in_error_response(client, catalog):
    response = client.get("/api/accounts/non-existent/subscriptions")
    rid = response.headers.get("x-request-id")
    assert response.status_code == 404
    assert rid
    payload = response.json()
    assert payload["error"]["request_id"] == rid


def test_log_event_carries_subscription_context(caplog):
    token = request_id_ctx_var.set("rid-42")
    try:
        with caplog.at_level(logging.INFO, logger="billing_api"):
            log_event(
                "info",
                "subscription.created",
                account_reference="acme",
                subscription_id="sub-1",
                event_type="subscription.create",
                extra={"plan": "basic"},
            )
    finally:
        request_id_ctx_var.reset(token)

    record = next(r for r in caplog.records if r.getMessage() == "subscription.created")
    assert record.request_id == "rid-42"
    assert record.account_reference == "acme"
    assert record.plan == "basic"

    rendered = json.loads(JsonFormatter().format(record))
    assert rendered["account_reference"] == "acme"
    assert rendered["subscription_id"] == "sub-1"
    assert rendered["event_type"] == "subscription.create"
