"""Request log context: request id, and the account/user a request is about."""
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from billing_api.core.logging import current_log_context, log_event
from billing_api.core.middleware.request_id import RequestIdMiddleware, owner_from_path


@pytest.fixture
def app_client():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/api/accounts/{account_reference}/subscriptions")
    async def account_subscriptions(account_reference: str):
        log_event("info", "subscriptions.listed")
        return current_log_context()

    @app.get("/api/users/{user_reference}/subscriptions")
    async def user_subscriptions(user_reference: str):
        return current_log_context()

    @app.get("/api/plans")
    async def plans():
        return current_log_context()

    return TestClient(app)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/accounts/acme/subscriptions/42", {"account_reference": "acme"}),
        ("/api/accounts/acme", {"account_reference": "acme"}),
        ("/api/users/alice/subscriptions", {"user_reference": "alice"}),
        ("/api/plans/basic", {}),
        ("/api/subscriptions/renew", {}),
    ],
)
def test_owner_from_path(path, expected):
    assert owner_from_path(path) == expected


def test_generated_request_id_is_echoed(app_client):
    resp = app_client.get("/api/plans")
    rid = resp.headers.get("x-request-id")
    assert rid
    assert resp.json() == {"request_id": rid, "account_reference": None, "user_reference": None}


def test_provided_request_id_is_kept(app_client):
    resp = app_client.get("/api/plans", headers={"X-Request-Id": "rid-123"})
    assert resp.headers.get("x-request-id") == "rid-123"
    assert resp.json()["request_id"] == "rid-123"


def test_account_reference_bound_for_account_routes(app_client, caplog):
    with caplog.at_level(logging.INFO, logger="billing_api"):
        resp = app_client.get("/api/accounts/acme/subscriptions", headers={"X-Request-Id": "rid-acme"})

    assert resp.json()["account_reference"] == "acme"
    event = next(r for r in caplog.records if r.getMessage() == "subscriptions.listed")
    assert event.account_reference == "acme"
    assert event.request_id == "rid-acme"
    done = next(r for r in caplog.records if r.getMessage() == "request.complete")
    assert done.account_reference == "acme"
    assert done.status == 200


def test_user_reference_bound_for_user_routes(app_client):
    body = app_client.get("/api/users/alice/subscriptions").json()
    assert body["user_reference"] == "alice"
    assert body["account_reference"] is None


def test_context_does_not_leak_between_requests(app_client):
    app_client.get("/api/accounts/acme/subscriptions")
    assert app_client.get("/api/plans").json()["account_reference"] is None
    assert current_log_context() == {"request_id": None, "account_reference": None, "user_reference": None}
