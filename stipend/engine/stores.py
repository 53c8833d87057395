"""
stipend.engine.stores — Persistence Contracts
==============================================

The evaluator, the conditional rules and the processor depend only on these
protocols.  Any persistence technology satisfying them is interchangeable;
the SQLAlchemy implementations live in :mod:`stipend.services.stores`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

__all__ = [
    "ActivityLedger",
    "ConsumptionRecord",
    "DuplicateClaimError",
    "UserDirectory",
    "UserSnapshot",
]


@dataclass(frozen=True, slots=True)
class ConsumptionRecord:
    """A user claimed an activity at ``consumed_at``."""

    id: int
    user_id: int
    activity_id: str
    consumed_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UserSnapshot:
    """Detached view of a user row; the balance holder returned to callers."""

    id: int
    external_id: str
    balance: int
    referred_by_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "balance": self.balance,
            "referred_by_id": self.referred_by_id,
        }


class DuplicateClaimError(Exception):
    """The ledger's uniqueness constraint rejected a consumption record."""

    def __init__(self, user_id: int, activity_id: str, claim_window: str) -> None:
        super().__init__(
            f"User {user_id} already claimed {activity_id!r} in window {claim_window!r}"
        )
        self.user_id = user_id
        self.activity_id = activity_id
        self.claim_window = claim_window


class ActivityLedger(Protocol):
    """Append-only store of consumption records."""

    def count(self, user_id: int, activity_id: str) -> int: ...

    def latest(
        self, user_id: int, activity_id: str, since: datetime
    ) -> ConsumptionRecord | None: ...

    def insert(
        self,
        user_id: int,
        activity_id: str,
        metadata: dict[str, Any] | None,
        *,
        consumed_at: datetime,
        claim_window: str,
    ) -> ConsumptionRecord:
        """Append a record.  Raises :class:`DuplicateClaimError` on conflict."""
        ...


class UserDirectory(Protocol):
    """User lookups plus the two mutations the engine needs."""

    def get(self, user_id: int) -> UserSnapshot | None: ...

    def get_by_external_id(self, external_id: str) -> UserSnapshot | None: ...

    def increment_balance(self, user_id: int, amount: int) -> UserSnapshot: ...

    def set_referred_by(self, user_id: int, referrer_id: int) -> UserSnapshot: ...
