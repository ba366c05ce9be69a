# billing_api/conftest.py
import os
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Must be set before billing_api.main is imported by any test module
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("ENV", "test")

from billing_api.models import Account, Base, Plan, Service, Subscription, User  # noqa: E402
from billing_api.tests.mocks import NOW, FakeCacheProvider, FakePaymentProvider  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_provider():
    return FakePaymentProvider()


@pytest.fixture
def fake_cache():
    return FakeCacheProvider()


@pytest.fixture
def catalog(db_session):
    """Three plans, one service, one account with one user."""
    storage = Service(reference="storage", name="Storage")
    basic = Plan(
        reference="basic",
        name="Basic",
        price={"month": 100, "year": 1000, "vatIncluded": True},
        allow_multiple=False,
        position=2,
        services=[storage],
    )
    pro = Plan(
        reference="pro",
        name="Pro",
        price={"month": 75, "vatIncluded": False},
        allow_multiple=False,
        position=1,
    )
    addon = Plan(
        reference="addon",
        name="Add-on",
        price={"month": 10, "vatIncluded": True},
        allow_multiple=True,
        position=3,
    )
    account = Account(reference="acme", name="Acme", email="billing@acme.test")
    user = User(reference="alice", name="Alice", email="alice@acme.test", account=account)
    db_session.add_all([storage, basic, pro, addon, account, user])
    db_session.commit()
    return {"basic": basic, "pro": pro, "addon": addon, "account": account, "user": user, "storage": storage}


@pytest.fixture
def add_subscription(db_session):
    """Append a subscription to an account and commit."""

    def _add(account, plan, *, expires_in=timedelta(days=30), stopped=False, now=NOW, provider_id=None):
        subscription = Subscription(
            plan=plan,
            billing="month",
            date_created=now - timedelta(days=1),
            date_expires=now + expires_in,
            date_stopped=now - timedelta(hours=1) if stopped else None,
            payment_subscription_id=provider_id,
        )
        account.subscriptions.append(subscription)
        db_session.commit()
        return subscription

    return _add


@pytest.fixture
def client(engine, session_factory, fake_provider, fake_cache, monkeypatch):
    """TestClient bound to the per-test database and fake providers, JWT off."""
    from fastapi.testclient import TestClient

    from billing_api.core.config import settings
    from billing_api.core.database import get_db
    from billing_api.features.billing.service import get_payment_provider
    from billing_api.features.cache.provider import get_cache_provider
    from billing_api.main import app

    monkeypatch.setattr(settings, "DISABLE_JWT", True)
    monkeypatch.setattr(settings, "WEBHOOK_RENEW_SUBSCRIPTION", None)

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: fake_provider
    app.dependency_overrides[get_cache_provider] = lambda: fake_cache
    yield TestClient(app)
    app.dependency_overrides.clear()
