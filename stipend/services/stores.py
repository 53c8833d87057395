"""
stipend.services.stores — SQLAlchemy Ledger & User Directory
=============================================================

Session-bound implementations of :mod:`stipend.engine.stores`.  Neither
class commits; the caller owns the transaction so the reward pipeline can
record, credit and link in one unit of work.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stipend.database.models import User, UserActivity
from stipend.engine.stores import ConsumptionRecord, DuplicateClaimError, UserSnapshot

logger = logging.getLogger(__name__)


def snapshot_user(user: User) -> UserSnapshot:
    return UserSnapshot(
        id=user.id,
        external_id=user.external_id,
        balance=user.balance,
        referred_by_id=user.referred_by_id,
    )


def _record(row: UserActivity) -> ConsumptionRecord:
    return ConsumptionRecord(
        id=row.id,
        user_id=row.user_id,
        activity_id=row.activity_id,
        consumed_at=row.consumed_at,
        metadata=dict(row.meta or {}),
    )


class SqlActivityLedger:
    """``user_activities`` table as an :class:`ActivityLedger`."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def count(self, user_id: int, activity_id: str) -> int:
        return self.session.scalar(
            select(func.count())
            .select_from(UserActivity)
            .where(
                UserActivity.user_id == user_id,
                UserActivity.activity_id == activity_id,
            )
        ) or 0

    def latest(
        self, user_id: int, activity_id: str, since: datetime
    ) -> ConsumptionRecord | None:
        row = self.session.scalars(
            select(UserActivity)
            .where(
                UserActivity.user_id == user_id,
                UserActivity.activity_id == activity_id,
                UserActivity.consumed_at >= since,
            )
            .order_by(UserActivity.consumed_at.desc())
            .limit(1)
        ).first()
        return _record(row) if row is not None else None

    def insert(
        self,
        user_id: int,
        activity_id: str,
        metadata: dict[str, Any] | None,
        *,
        consumed_at: datetime,
        claim_window: str,
    ) -> ConsumptionRecord:
        row = UserActivity(
            user_id=user_id,
            activity_id=activity_id,
            claim_window=claim_window,
            consumed_at=consumed_at,
            meta=dict(metadata) if metadata else None,
        )
        self.session.add(row)
        try:
            # Flush now so the unique constraint fires here, not at commit.
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateClaimError(user_id, activity_id, claim_window) from exc
        return _record(row)


class SqlUserDirectory:
    """``users`` table as a :class:`UserDirectory`."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> UserSnapshot | None:
        user = self.session.get(User, user_id)
        return snapshot_user(user) if user is not None else None

    def get_by_external_id(self, external_id: str) -> UserSnapshot | None:
        user = self.session.scalar(
            select(User).where(User.external_id == external_id)
        )
        return snapshot_user(user) if user is not None else None

    def increment_balance(self, user_id: int, amount: int) -> UserSnapshot:
        """Atomic ``balance = balance + amount`` in SQL."""
        result = self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(balance=User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise LookupError(f"User {user_id} does not exist")
        return self._reload(user_id)

    def set_referred_by(self, user_id: int, referrer_id: int) -> UserSnapshot:
        """Link *referrer_id* only if the user has no referrer yet."""
        result = self.session.execute(
            update(User)
            .where(User.id == user_id, User.referred_by_id.is_(None))
            .values(referred_by_id=referrer_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "User %d already has a referrer — keeping existing link", user_id
            )
        return self._reload(user_id)

    def _reload(self, user_id: int) -> UserSnapshot:
        user = self.session.get(User, user_id, populate_existing=True)
        if user is None:
            raise LookupError(f"User {user_id} does not exist")
        return snapshot_user(user)
