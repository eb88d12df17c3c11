"""
Shared fixtures: a temporary SQLite database per test and a controllable clock.
"""
from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import stripe

# make the accounts_api package importable when running from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ["PASSWORD_HASH_COST"] = "1"
os.environ["SMTP_HOST"] = ""

from accounts_api.core import config as core_config
from accounts_api.db import models
from accounts_api.db import session as db_session


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def temp_db(tmp_path, monkeypatch):
    """Point DATABASE_URL at a throwaway SQLite file and build the schema."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    # clear caches so the new environment is read
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]


class FakeGateway:
    """In-memory stand-in exposing the PaymentGateway methods.

    Webhook signatures are still checked by the real Stripe helper.
    """

    def __init__(self, status: str = "active", existing_customer: str | None = None) -> None:
        self.webhook_secret = os.environ["STRIPE_WEBHOOK_SECRET"]
        self.status = status
        self.existing_customer = existing_customer
        self.period_end = int((datetime.now(timezone.utc) + timedelta(days=30)).timestamp())
        self.calls = []
        self.fail_with: Exception | None = None

    def retrieve_price(self, price_id):
        self.calls.append(("retrieve_price", price_id))
        if price_id == "price_missing":
            raise stripe.InvalidRequestError("No such price: 'price_missing'", "price")
        return {"id": price_id}

    def find_customer_by_email(self, email):
        self.calls.append(("find_customer_by_email", email))
        return {"id": self.existing_customer} if self.existing_customer else None

    def create_customer(self, email, name, user_id):
        self.calls.append(("create_customer", email, user_id))
        return {"id": "cus_new", "metadata": {"user_id": user_id}}

    def create_subscription(self, customer_id, price_id, user_id, default_payment_method=None):
        self.calls.append(("create_subscription", customer_id, price_id, user_id, default_payment_method))
        if self.fail_with:
            raise self.fail_with
        return {
            "id": "sub_123",
            "status": self.status,
            "current_period_end": self.period_end,
            "metadata": {"user_id": user_id},
        }

    def cancel_at_period_end(self, subscription_id):
        self.calls.append(("cancel_at_period_end", subscription_id))
        return {"id": subscription_id, "cancel_at_period_end": True}

    def create_test_payment_method(self, customer_id):
        self.calls.append(("create_test_payment_method", customer_id))
        return "pm_test"

    def construct_event(self, payload: bytes, signature: str):
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


@pytest.fixture()
def make_gateway():
    return FakeGateway


@pytest.fixture()
def gateway():
    return FakeGateway()
