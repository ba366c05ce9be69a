"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from billing_api.core.errors import (
    NotFoundError,
    PersistenceError,
    ProviderError,
    WebhookError,
    register_error_handlers,
)
from billing_api.core.middleware.request_id import RequestIdMiddleware


def _make_app(exc):
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    register_error_handlers(test_app)

    @test_app.get("/boom")
    async def boom():
        raise exc

    return test_app


def test_validation_error_has_standard_shape(client, catalog):
    resp = client.post("/api/accounts/acme/subscriptions", json={"plan": ""})
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == rid
    assert body["message"] == body["error"]["message"]


def test_app_errors_map_to_status_codes():
    cases = [
        (NotFoundError("Account x not found"), 404, "not_found"),
        (ProviderError("declined"), 402, "payment_provider_error"),
        (WebhookError("bad signature"), 400, "invalid_webhook"),
        (PersistenceError("save failed"), 500, "persistence_error"),
    ]
    for exc, status, code in cases:
        client = TestClient(_make_app(exc))
        resp = client.get("/boom")
        assert resp.status_code == status
        assert resp.json()["error"]["code"] == code
        assert resp.json()["detail"] == exc.message


def test_unhandled_exception_is_internal_error():
    client = TestClient(_make_app(KeyError("oops")), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"
    assert "oops" not in resp.json()["message"]


def test_unknown_route_is_not_found(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"
