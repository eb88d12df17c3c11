"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from accounts_api.core.utils import utcnow
from accounts_api.db.models import (
    ROLE_USER,
    RateLimitCounter,
    Subscription,
    User,
)
from accounts_api.db.session import get_session

_USER_FIELDS = {"name", "email", "role"}
_SUBSCRIPTION_FIELDS = {"status", "current_period_end", "cancel_at_period_end"}
RATE_LIMIT_RETRIES = 5
# counter statements touch no loaded objects
_NO_SYNC = {"synchronize_session": False}


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    # -------------------------- users --------------------------
    def get_user(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        with get_session() as session:
            return session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        with get_session() as session:
            stmt = select(User).where(User.email == email)
            return session.execute(stmt).scalar_one_or_none()

    def list_users(self, role: str | None = None) -> list[User]:
        with get_session() as session:
            stmt = select(User).order_by(User.created_at, User.email)
            if role:
                stmt = stmt.where(User.role == role)
            return list(session.execute(stmt).scalars().all())

    def create_user(self, name: str, email: str, password_hash: str, role: str = ROLE_USER) -> User:
        now = utcnow()
        entity = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        with get_session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def update_user(self, user_id: str, **values) -> Optional[User]:
        unknown = set(values) - _USER_FIELDS
        if unknown:
            raise ValueError(f"unsupported user fields: {sorted(unknown)}")
        with get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return None
            for key, value in values.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            session.commit()
            session.refresh(user)
            return user

    def update_user_password(self, user_id: str, password_hash: str) -> None:
        with get_session() as session:
            stmt = (
                update(User)
                .where(User.id == user_id)
                .values(password_hash=password_hash, updated_at=utcnow())
            )
            session.execute(stmt)
            session.commit()

    def delete_user(self, user_id: str) -> bool:
        with get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return False
            # ORM delete so the owned subscription cascades
            session.delete(user)
            session.commit()
            return True

    # -------------------------- reset tokens --------------------------
    def set_reset_token(self, user_id: str, token_hash: str, expires_at: datetime) -> None:
        with get_session() as session:
            stmt = (
                update(User)
                .where(User.id == user_id)
                .values(
                    reset_password_token=token_hash,
                    reset_password_expires=expires_at,
                    updated_at=utcnow(),
                )
            )
            session.execute(stmt)
            session.commit()

    def get_user_by_reset_token(self, token_hash: str, now: datetime) -> Optional[User]:
        if not token_hash:
            return None
        with get_session() as session:
            stmt = (
                select(User)
                .where(User.reset_password_token == token_hash)
                .where(User.reset_password_expires > now)
                .limit(1)
            )
            return session.execute(stmt).scalar_one_or_none()

    def complete_password_reset(self, user_id: str, token_hash: str, password_hash: str) -> bool:
        """Store the new password and clear both reset fields in one statement."""
        with get_session() as session:
            stmt = (
                update(User)
                .where(User.id == user_id)
                .where(User.reset_password_token == token_hash)
                .values(
                    password_hash=password_hash,
                    reset_password_token=None,
                    reset_password_expires=None,
                    updated_at=utcnow(),
                )
            )
            result = session.execute(stmt)
            session.commit()
            return bool(result.rowcount)

    def clear_expired_reset_tokens(self, now: datetime) -> int:
        with get_session() as session:
            stmt = (
                update(User)
                .where(User.reset_password_expires.is_not(None))
                .where(User.reset_password_expires < now)
                .values(reset_password_token=None, reset_password_expires=None)
            )
            result = session.execute(stmt)
            session.commit()
            return int(result.rowcount or 0)

    # -------------------------- subscriptions --------------------------
    def get_subscription_for_user(self, user_id: str) -> Optional[Subscription]:
        if not user_id:
            return None
        with get_session() as session:
            stmt = select(Subscription).where(Subscription.user_id == user_id)
            return session.execute(stmt).scalar_one_or_none()

    def get_subscription_by_external_id(self, external_subscription_id: str) -> Optional[Subscription]:
        if not external_subscription_id:
            return None
        with get_session() as session:
            stmt = select(Subscription).where(Subscription.external_subscription_id == external_subscription_id)
            return session.execute(stmt).scalar_one_or_none()

    def create_subscription(
        self,
        user_id: str,
        *,
        external_customer_id: str,
        external_subscription_id: str,
        status: str,
        current_period_end: datetime | None,
        cancel_at_period_end: bool = False,
    ) -> Subscription:
        now = utcnow()
        entity = Subscription(
            user_id=user_id,
            external_customer_id=external_customer_id,
            external_subscription_id=external_subscription_id,
            status=status,
            current_period_end=current_period_end,
            cancel_at_period_end=cancel_at_period_end,
            created_at=now,
            updated_at=now,
        )
        with get_session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def _update_subscription_where(self, clause, values: dict) -> Optional[Subscription]:
        unknown = set(values) - _SUBSCRIPTION_FIELDS
        if unknown:
            raise ValueError(f"unsupported subscription fields: {sorted(unknown)}")
        with get_session() as session:
            entity = session.execute(select(Subscription).where(clause)).scalar_one_or_none()
            if not entity:
                return None
            for key, value in values.items():
                setattr(entity, key, value)
            entity.updated_at = utcnow()
            session.commit()
            session.refresh(entity)
            return entity

    def update_subscription_for_user(self, user_id: str, **values) -> Optional[Subscription]:
        return self._update_subscription_where(Subscription.user_id == user_id, values)

    def update_subscription_by_external_id(self, external_subscription_id: str, **values) -> Optional[Subscription]:
        return self._update_subscription_where(
            Subscription.external_subscription_id == external_subscription_id, values
        )

    def count_subscriptions_for_user(self, user_id: str) -> int:
        with get_session() as session:
            stmt = select(func.count()).select_from(Subscription).where(Subscription.user_id == user_id)
            return int(session.execute(stmt).scalar_one())

    # -------------------------- rate limits --------------------------
    def hit_rate_limit(self, key: str, window_seconds: int, now: datetime | None = None) -> int:
        """Increment the counter for ``key`` in its current window and return the new count."""
        now = now or utcnow()
        reset_at = now + timedelta(seconds=window_seconds)
        bump = (
            update(RateLimitCounter)
            .where(RateLimitCounter.key == key, RateLimitCounter.reset_at > now)
            .values(count=RateLimitCounter.count + 1)
            .returning(RateLimitCounter.count)
        )
        restart = (
            update(RateLimitCounter)
            .where(RateLimitCounter.key == key, RateLimitCounter.reset_at <= now)
            .values(count=1, reset_at=reset_at)
            .returning(RateLimitCounter.count)
        )
        for _ in range(RATE_LIMIT_RETRIES):
            with get_session() as session:
                count = session.execute(bump, execution_options=_NO_SYNC).scalar_one_or_none()
                if count is None:
                    count = session.execute(restart, execution_options=_NO_SYNC).scalar_one_or_none()
                if count is None:
                    session.add(RateLimitCounter(key=key, count=1, reset_at=reset_at))
                    count = 1
                try:
                    session.commit()
                except IntegrityError:
                    # another request created the key first; bump its row instead
                    session.rollback()
                    continue
                return int(count)
        raise RuntimeError(f"could not record rate-limit hit for {key}")

    def clear_rate_limit(self, key: str) -> None:
        with get_session() as session:
            counter = session.get(RateLimitCounter, key)
            if counter:
                session.delete(counter)
                session.commit()

