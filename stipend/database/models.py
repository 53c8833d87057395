"""
stipend.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users            — Reward holders, keyed by an internal id and addressed
                     externally by the identity provider's id
- user_activities  — Append-only consumption ledger with a per-window
                     uniqueness constraint
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Stipend ORM models."""


# ---------------------------------------------------------------------------
# Users: one row per external identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    referred_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    referred_by: Mapped[User | None] = relationship(remote_side=[id])
    activities: Mapped[list[UserActivity]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} external_id={self.external_id!r} "
            f"balance={self.balance}>"
        )


# ---------------------------------------------------------------------------
# UserActivity: append-only consumption ledger
# ---------------------------------------------------------------------------
class UserActivity(Base):
    """One row per successful reward.

    ``claim_window`` is derived from the activity's availability policy
    (``"once"`` or the UTC date for daily activities).  The unique
    constraint on ``(user_id, activity_id, claim_window)`` makes the
    database the final arbiter when two claims race.
    """

    __tablename__ = "user_activities"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    claim_window: Mapped[str] = mapped_column(String(16), nullable=False)
    consumed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    meta: Mapped[dict | None] = mapped_column(JSONB, default=None)

    user: Mapped[User] = relationship(back_populates="activities")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "activity_id", "claim_window",
            name="uq_user_activities_claim_window",
        ),
        Index("ix_user_activities_user_activity_ts", "user_id", "activity_id", "consumed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserActivity user={self.user_id} activity={self.activity_id!r} "
            f"window={self.claim_window!r}>"
        )
