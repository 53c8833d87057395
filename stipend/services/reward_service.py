"""
stipend.services.reward_service — Activity Reward Processor
============================================================

Orchestrates a claim end to end::

    validate → catalog lookup → evaluate ─┬─ unavailable → Unavailable (no writes)
                                          └─ available → BEGIN
                                                 insert ledger row (unique per window)
                                                 balance += reward
                                                 rule side effect (referral link)
                                                 re-evaluate for the response
                                             COMMIT → Ok(RewardReceipt)

Steps 3–5 share one transaction: a failure anywhere rolls back the ledger
row, the credit and the link together, so a failed call leaves nothing
behind and may be retried.  The unique constraint on
``(user_id, activity_id, claim_window)`` settles check-then-act races: the
loser's insert is rejected and reported as :class:`Unavailable`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stipend.engine.activities import Activity, ActivityCatalog
from stipend.engine.availability import AvailabilityEvaluator, claim_window
from stipend.engine.outcomes import (
    Internal,
    NotFound,
    Ok,
    Outcome,
    Unavailable,
    ValidationError,
    Verdict,
)
from stipend.engine.stores import DuplicateClaimError, UserSnapshot
from stipend.services.stores import SqlActivityLedger, SqlUserDirectory

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RewardReceipt:
    """Successful reward: final balance holder, activity, fresh verdict."""

    user: UserSnapshot
    activity: Activity
    availability: Verdict

    def to_dict(self) -> dict:
        return {
            "balance": self.user.balance,
            "user": self.user.to_dict(),
            "activity": self.activity.to_dict(),
            "availability": self.availability.to_dict(),
        }


def activity_view(activity: Activity, verdict: Verdict) -> dict:
    """Activity definition merged with the user's verdict."""
    return {**activity.to_dict(), **verdict.to_dict()}


class RewardProcessor:
    """Entry point for listing, checking and claiming activities.

    Parameters
    ----------
    engine:
        SQLAlchemy engine; each call opens its own session.
    catalog:
        The process-wide :class:`ActivityCatalog`.
    evaluator:
        Optional :class:`AvailabilityEvaluator` (tests inject one with a
        fixed clock).  Its rule registry also drives the side effects.
    """

    def __init__(
        self,
        engine: Engine,
        catalog: ActivityCatalog,
        *,
        evaluator: AvailabilityEvaluator | None = None,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.evaluator = evaluator or AvailabilityEvaluator()

    # ------------------------------------------------------------------
    # Input validation + lookup
    # ------------------------------------------------------------------
    def _resolve(
        self, activity_id: Any, args: Any
    ) -> Activity | NotFound | ValidationError:
        if not isinstance(activity_id, str) or not activity_id.strip():
            return ValidationError("Missing activity id")
        if args is not None and not isinstance(args, Mapping):
            return ValidationError("Activity arguments must be an object")
        activity = self.catalog.by_id(activity_id)
        if activity is None:
            return NotFound(activity_id)
        return activity

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------
    def list_activities(self, user_id: int) -> Ok[list[dict]] | Internal:
        """Every catalog activity with the user's current verdict."""
        try:
            with Session(self.engine) as session:
                ledger = SqlActivityLedger(session)
                users = SqlUserDirectory(session)
                return Ok([
                    activity_view(
                        activity,
                        self.evaluator.evaluate(ledger, users, user_id, activity),
                    )
                    for activity in self.catalog.list()
                ])
        except SQLAlchemyError as exc:
            logger.exception("Listing activities failed for user %d", user_id)
            return Internal(exc)

    def get_activity(
        self,
        user_id: int,
        activity_id: str,
        args: Mapping[str, Any] | None = None,
    ) -> Outcome:
        """Single-activity verdict; unknown ids are :class:`NotFound`."""
        resolved = self._resolve(activity_id, args)
        if not isinstance(resolved, Activity):
            return resolved

        try:
            with Session(self.engine) as session:
                verdict = self.evaluator.evaluate(
                    SqlActivityLedger(session),
                    SqlUserDirectory(session),
                    user_id,
                    resolved,
                    args,
                )
        except SQLAlchemyError as exc:
            logger.exception("Availability check failed for user %d / %s", user_id, activity_id)
            return Internal(exc)
        return Ok(activity_view(resolved, verdict))

    # ------------------------------------------------------------------
    # Reward pipeline
    # ------------------------------------------------------------------
    def reward(
        self,
        user_id: int,
        activity_id: str,
        args: Mapping[str, Any] | None = None,
    ) -> Outcome:
        """Claim *activity_id* for *user_id*.

        Returns ``Ok(RewardReceipt)`` or one of :class:`NotFound`,
        :class:`Unavailable`, :class:`ValidationError`, :class:`Internal`.
        """
        resolved = self._resolve(activity_id, args)
        if not isinstance(resolved, Activity):
            return resolved
        activity = resolved

        with Session(self.engine, expire_on_commit=False) as session:
            ledger = SqlActivityLedger(session)
            users = SqlUserDirectory(session)

            # 1. Evaluate
            try:
                verdict = self.evaluator.evaluate(ledger, users, user_id, activity, args)
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Availability check failed for user %d / %s", user_id, activity.id)
                return Internal(exc)

            if not verdict.available:
                session.rollback()
                logger.info(
                    "Reward rejected — user %d / %s: %s",
                    user_id, activity.id, verdict.reason,
                )
                return Unavailable.from_verdict(verdict)

            # 2. Record → credit → side effect → recompute, one transaction
            now = self.evaluator.now()
            try:
                ledger.insert(
                    user_id,
                    activity.id,
                    dict(args) if args else None,
                    consumed_at=now,
                    claim_window=claim_window(activity, now),
                )
                holder = users.increment_balance(user_id, activity.reward)

                rule = self.evaluator.rules.get(activity.id)
                if rule is not None:
                    linked = rule.apply_on_reward(users, user_id, args)
                    if linked is not None:
                        holder = linked

                availability = self.evaluator.evaluate(ledger, users, user_id, activity)
                session.commit()
            except DuplicateClaimError as exc:
                session.rollback()
                logger.warning("Lost claim race: %s", exc)
                return self._lost_race(session, user_id, activity, args, exc)
            except Exception as exc:
                session.rollback()
                logger.exception("Reward pipeline failed for user %d / %s", user_id, activity.id)
                return Internal(exc)

        logger.info(
            "Rewarded user %d with %d for %s (balance=%d)",
            user_id, activity.reward, activity.id, holder.balance,
        )
        return Ok(RewardReceipt(user=holder, activity=activity, availability=availability))

    def _lost_race(
        self,
        session: Session,
        user_id: int,
        activity: Activity,
        args: Mapping[str, Any] | None,
        cause: DuplicateClaimError,
    ) -> Unavailable | Internal:
        """Report a constraint rejection the way the policy would have."""
        try:
            verdict = self.evaluator.evaluate(
                SqlActivityLedger(session),
                SqlUserDirectory(session),
                user_id,
                activity,
                args,
            )
        except SQLAlchemyError as exc:
            logger.exception("Re-evaluation after lost race failed for user %d", user_id)
            return Internal(exc)

        if not verdict.available:
            return Unavailable.from_verdict(verdict)
        # No committed claim explains the rejection (e.g. a foreign-key failure).
        logger.error(
            "Ledger rejected claim for user %d / %s but no prior claim exists",
            user_id, activity.id,
        )
        return Internal(cause)
