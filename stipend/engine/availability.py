"""
stipend.engine.availability — Availability Evaluator
=====================================================

Pure decision function: given a user, an activity and optional arguments,
answer "can this user claim it now?" by consulting the ledger and, for
conditional activities, the registered rule.  Never mutates state.

Policy semantics:
  once         available iff the user has no record for the activity
  daily        available iff no record since the most recent UTC midnight;
               otherwise next_available_at is the following midnight
  conditional  delegated to the registered rule; falls back to ``once``
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from stipend.engine.activities import Activity, AvailabilityPolicy
from stipend.engine.outcomes import Verdict
from stipend.engine.rules import RULES, ConditionalRule
from stipend.engine.stores import ActivityLedger, UserDirectory

logger = logging.getLogger(__name__)

__all__ = [
    "ALREADY_CLAIMED_TODAY",
    "ALREADY_PERFORMED",
    "AvailabilityEvaluator",
    "claim_window",
    "start_of_utc_day",
    "utcnow",
]

ALREADY_PERFORMED = "Activity already performed"
ALREADY_CLAIMED_TODAY = "Activity already claimed today"

# claim_window value shared by every single-use policy
ONCE_WINDOW = "once"


def utcnow() -> datetime:
    return datetime.now(UTC)


def start_of_utc_day(now: datetime) -> datetime:
    """Most recent UTC midnight at or before *now*.

    Naive datetimes are treated as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    now = now.astimezone(UTC)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def claim_window(activity: Activity, now: datetime) -> str:
    """Uniqueness key for a consumption record of *activity* made at *now*."""
    if activity.policy is AvailabilityPolicy.DAILY:
        return start_of_utc_day(now).date().isoformat()
    return ONCE_WINDOW


class AvailabilityEvaluator:
    """Computes :class:`Verdict` objects.

    Parameters
    ----------
    rules:
        Activity id → conditional rule.  Defaults to the static registry.
    clock:
        Zero-arg callable returning the current aware UTC datetime.
        Tests inject a fixed clock to cross midnight deterministically.
    """

    def __init__(
        self,
        rules: Mapping[str, ConditionalRule] = RULES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.rules = rules
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def evaluate(
        self,
        ledger: ActivityLedger,
        users: UserDirectory,
        user_id: int,
        activity: Activity,
        args: Mapping[str, Any] | None = None,
    ) -> Verdict:
        policy = activity.policy

        if policy is AvailabilityPolicy.ONCE:
            return self._evaluate_once(ledger, user_id, activity)

        if policy is AvailabilityPolicy.DAILY:
            return self._evaluate_daily(ledger, user_id, activity)

        if policy is AvailabilityPolicy.CONDITIONAL:
            rule = self.rules.get(activity.id)
            if rule is not None:
                return rule.evaluate(ledger, users, user_id, args)
            return self._evaluate_once(ledger, user_id, activity)

        logger.warning("Unknown availability policy %r on %s", policy, activity.id)
        return Verdict(False)

    # -- policies -----------------------------------------------------------

    @staticmethod
    def _evaluate_once(
        ledger: ActivityLedger, user_id: int, activity: Activity
    ) -> Verdict:
        if ledger.count(user_id, activity.id) == 0:
            return Verdict(True)
        return Verdict(False, reason=ALREADY_PERFORMED)

    def _evaluate_daily(
        self, ledger: ActivityLedger, user_id: int, activity: Activity
    ) -> Verdict:
        start = start_of_utc_day(self.now())
        record = ledger.latest(user_id, activity.id, start)
        if record is None:
            return Verdict(True)
        return Verdict(
            False,
            next_available_at=start + timedelta(days=1),
            reason=ALREADY_CLAIMED_TODAY,
        )
