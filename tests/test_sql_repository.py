"""
Smoke tests for the SQLRepository against a temporary SQLite database.
"""
from __future__ import annotations

from datetime import timedelta

import threading

import pytest
from sqlalchemy.exc import IntegrityError

from accounts_api.core.utils import utcnow
from accounts_api.repositories.sql_repository import SQLRepository


def _user(repo: SQLRepository, email: str = "alice@example.com", role: str = "USER"):
    return repo.create_user("Alice", email, "hash", role=role)


def _subscription(repo: SQLRepository, user_id: str, external_id: str = "sub_1"):
    return repo.create_subscription(
        user_id,
        external_customer_id="cus_1",
        external_subscription_id=external_id,
        status="active",
        current_period_end=utcnow() + timedelta(days=30),
    )


def test_user_crud(temp_db):
    repo = SQLRepository()
    user = _user(repo)
    assert repo.get_user(user.id).email == "alice@example.com"
    assert repo.get_user_by_email("alice@example.com").id == user.id

    updated = repo.update_user(user.id, name="Alice B", role="ADMIN")
    assert updated.name == "Alice B"
    assert updated.role == "ADMIN"
    assert repo.update_user("missing", name="x") is None
    with pytest.raises(ValueError):
        repo.update_user(user.id, password_hash="sneaky")

    _user(repo, "bob@example.com")
    assert [u.email for u in repo.list_users(role="USER")] == ["bob@example.com"]
    assert len(repo.list_users()) == 2

    assert repo.delete_user(user.id) is True
    assert repo.delete_user(user.id) is False


def test_duplicate_email_rejected(temp_db):
    repo = SQLRepository()
    _user(repo)
    with pytest.raises(IntegrityError):
        _user(repo)


def test_reset_token_is_single_use(temp_db):
    repo = SQLRepository()
    user = _user(repo)
    now = utcnow()
    repo.set_reset_token(user.id, "digest", now + timedelta(minutes=10))

    assert repo.get_user_by_reset_token("digest", now).id == user.id
    assert repo.get_user_by_reset_token("digest", now + timedelta(minutes=11)) is None

    assert repo.complete_password_reset(user.id, "digest", "new-hash") is True
    assert repo.complete_password_reset(user.id, "digest", "other-hash") is False
    stored = repo.get_user(user.id)
    assert stored.password_hash == "new-hash"
    assert stored.reset_password_token is None
    assert stored.reset_password_expires is None


def test_clear_expired_reset_tokens(temp_db):
    repo = SQLRepository()
    stale = _user(repo)
    fresh = _user(repo, "bob@example.com")
    now = utcnow()
    repo.set_reset_token(stale.id, "old", now - timedelta(minutes=1))
    repo.set_reset_token(fresh.id, "new", now + timedelta(minutes=5))

    assert repo.clear_expired_reset_tokens(now) == 1
    assert repo.get_user(stale.id).reset_password_token is None
    assert repo.get_user(fresh.id).reset_password_token == "new"


def test_one_subscription_per_user(temp_db):
    repo = SQLRepository()
    user = _user(repo)
    _subscription(repo, user.id)
    with pytest.raises(IntegrityError):
        _subscription(repo, user.id, "sub_2")
    assert repo.count_subscriptions_for_user(user.id) == 1


def test_subscription_updates(temp_db):
    repo = SQLRepository()
    user = _user(repo)
    _subscription(repo, user.id)

    updated = repo.update_subscription_by_external_id("sub_1", status="past_due")
    assert updated.status == "past_due"
    assert repo.update_subscription_by_external_id("sub_missing", status="active") is None

    updated = repo.update_subscription_for_user(user.id, status="canceled", cancel_at_period_end=True)
    assert updated.cancel_at_period_end is True
    with pytest.raises(ValueError):
        repo.update_subscription_for_user(user.id, external_customer_id="cus_other")


def test_deleting_user_removes_subscription(temp_db):
    repo = SQLRepository()
    user = _user(repo)
    _subscription(repo, user.id)
    repo.delete_user(user.id)
    assert repo.count_subscriptions_for_user(user.id) == 0
    assert repo.get_subscription_by_external_id("sub_1") is None


def test_rate_limit_counter_windows(temp_db):
    repo = SQLRepository()
    now = utcnow()
    assert repo.hit_rate_limit("login:a", 60, now) == 1
    assert repo.hit_rate_limit("login:a", 60, now + timedelta(seconds=10)) == 2
    assert repo.hit_rate_limit("login:b", 60, now) == 1
    # a new window starts once reset_at has passed
    assert repo.hit_rate_limit("login:a", 60, now + timedelta(seconds=61)) == 1
    repo.clear_rate_limit("login:a")
    assert repo.hit_rate_limit("login:a", 60, now + timedelta(seconds=62)) == 1


def _hit_concurrently(repo: SQLRepository, key: str, threads: int):
    barrier = threading.Barrier(threads)
    errors = []

    def worker():
        barrier.wait()
        try:
            repo.hit_rate_limit(key, 60)
        except Exception as exc:  # collected for the assertion below
            errors.append(type(exc).__name__)

    workers = [threading.Thread(target=worker) for _ in range(threads)]
    for thread in workers:
        thread.start()
    for thread in workers:
        thread.join(30)
    return errors


def test_rate_limit_counts_every_concurrent_hit(temp_db):
    repo = SQLRepository()
    repo.hit_rate_limit("login:busy", 60)
    repo.hit_rate_limit("login:busy", 60)

    assert _hit_concurrently(repo, "login:busy", 20) == []
    assert repo.hit_rate_limit("login:busy", 60) == 23


def test_rate_limit_concurrent_first_hits_share_one_counter(temp_db):
    repo = SQLRepository()
    assert _hit_concurrently(repo, "login:fresh", 10) == []
    assert repo.hit_rate_limit("login:fresh", 60) == 11
