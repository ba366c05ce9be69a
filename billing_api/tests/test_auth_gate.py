"""JWT gate: allow-list, token checks and per-user authorization."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from billing_api.core.auth import is_public_path

SECRET = "test-jwt-secret"


@pytest.fixture
def secured(client, monkeypatch):
    from billing_api.core.config import settings

    monkeypatch.setattr(settings, "DISABLE_JWT", False)
    monkeypatch.setattr(settings, "JWT_SECRET", SECRET)
    return client


def _token(uid="alice", role="user", secret=SECRET, expires_in=timedelta(hours=1)):
    claims = {"d": {"uid": uid, "role": role}, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("GET", "/api/plans", True),
        ("GET", "/api/plans/basic", True),
        ("POST", "/api/plans", False),
        ("POST", "/api/users", True),
        ("GET", "/api/users", False),
        ("PUT", "/api/users/alice", False),
        ("POST", "/api/subscriptions/renew", True),
        ("GET", "/healthz", True),
        ("GET", "/api/accounts/acme/subscriptions", False),
    ],
)
def test_public_paths(method, path, expected):
    assert is_public_path(method, path) is expected


def test_missing_token_is_401(secured, catalog):
    resp = secured.get("/api/accounts/acme/subscriptions")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"
    assert resp.headers.get("x-request-id")


def test_invalid_signature_is_401(secured, catalog):
    resp = secured.get("/api/accounts/acme/subscriptions", headers=_auth(_token(secret="wrong")))
    assert resp.status_code == 401


def test_expired_token_is_401(secured, catalog):
    resp = secured.get("/api/accounts/acme/subscriptions", headers=_auth(_token(expires_in=timedelta(hours=-1))))
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token expired"


def test_valid_token_passes(secured, catalog):
    resp = secured.get("/api/accounts/acme/subscriptions", headers=_auth(_token()))
    assert resp.status_code == 200


def test_public_plan_listing_needs_no_token(secured, catalog):
    assert secured.get("/api/plans").status_code == 200


def test_renew_webhook_needs_no_token(secured, catalog, fake_provider):
    fake_provider.renewal = {"account": "acme", "subscriptions": []}
    assert secured.post("/api/subscriptions/renew", content=b"{}").status_code == 200


def test_user_routes_require_matching_uid(secured, catalog):
    own = secured.get("/api/users/alice/subscriptions", headers=_auth(_token(uid="alice")))
    other = secured.get("/api/users/alice/subscriptions", headers=_auth(_token(uid="mallory")))
    admin = secured.get("/api/users/alice/subscriptions", headers=_auth(_token(uid="root", role="admin")))

    assert own.status_code == 200
    assert other.status_code == 403
    assert other.json()["error"]["code"] == "forbidden"
    assert admin.status_code == 200
