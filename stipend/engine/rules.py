"""
stipend.engine.rules — Conditional Activity Rules
==================================================

A conditional rule owns both the eligibility check and the optional
post-reward side effect for one activity id.  The registry is a fixed,
read-only table built at import time; nothing is registered at runtime.

Referral flow::

    evaluate:        code present → acting user exists → not self
                     → referrer exists → no prior referral claim
    apply_on_reward: link users.referred_by_id (first link wins)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Protocol

from stipend.engine.outcomes import Verdict
from stipend.engine.stores import ActivityLedger, UserDirectory, UserSnapshot

logger = logging.getLogger(__name__)

__all__ = [
    "REFERRAL_ACTIVITY_ID",
    "RULES",
    "ConditionalRule",
    "ReferralRule",
    "get_rule",
    "referrer_code_from",
]

REFERRAL_ACTIVITY_ID = "referral"

# Accepted argument keys for the referrer's external id, in priority order.
REFERRER_CODE_KEYS = ("referrer_code", "referrerCode")


class ConditionalRule(Protocol):
    def evaluate(
        self,
        ledger: ActivityLedger,
        users: UserDirectory,
        user_id: int,
        args: Mapping[str, Any] | None,
    ) -> Verdict: ...

    def apply_on_reward(
        self,
        users: UserDirectory,
        user_id: int,
        args: Mapping[str, Any] | None,
    ) -> UserSnapshot | None: ...


def referrer_code_from(args: Mapping[str, Any] | None) -> str:
    """Extract the referral code from *args* as a string ('' when absent)."""
    if not args:
        return ""
    for key in REFERRER_CODE_KEYS:
        raw = args.get(key)
        if raw is not None:
            return str(raw).strip()
    return ""


# ---------------------------------------------------------------------------
# Referral
# ---------------------------------------------------------------------------
class ReferralRule:
    """One referral per user; never self; the referrer must exist."""

    activity_id = REFERRAL_ACTIVITY_ID

    def evaluate(
        self,
        ledger: ActivityLedger,
        users: UserDirectory,
        user_id: int,
        args: Mapping[str, Any] | None,
    ) -> Verdict:
        code = referrer_code_from(args)
        if not code:
            return Verdict(False, reason="Missing referral code")

        user = users.get(user_id)
        if user is None:
            return Verdict(False, reason="User not found")

        if user.external_id == code:
            return Verdict(False, reason="Cannot refer yourself")

        if users.get_by_external_id(code) is None:
            return Verdict(False, reason="Invalid referral code")

        if ledger.count(user_id, self.activity_id) > 0:
            return Verdict(False, reason="Referral already used")

        return Verdict(True)

    def apply_on_reward(
        self,
        users: UserDirectory,
        user_id: int,
        args: Mapping[str, Any] | None,
    ) -> UserSnapshot | None:
        code = referrer_code_from(args)
        if not code:
            return None
        referrer = users.get_by_external_id(code)
        if referrer is None:
            # Referrer vanished between evaluate and reward; the reward stands.
            logger.warning(
                "Referral code %r no longer resolves for user %d — link skipped",
                code, user_id,
            )
            return None
        if referrer.id == user_id:
            return None
        return users.set_referred_by(user_id, referrer.id)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
RULES: Mapping[str, ConditionalRule] = MappingProxyType({
    REFERRAL_ACTIVITY_ID: ReferralRule(),
})


def get_rule(
    activity_id: str, rules: Mapping[str, ConditionalRule] = RULES
) -> ConditionalRule | None:
    return rules.get(activity_id)
