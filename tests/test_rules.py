"""
tests/test_rules.py — Referral Rule Unit Tests
================================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from stipend.engine.outcomes import Verdict
from stipend.engine.rules import RULES, ReferralRule, get_rule, referrer_code_from
from stipend.engine.stores import UserSnapshot

ME = UserSnapshot(id=1, external_id="tg-me", balance=0)
FRIEND = UserSnapshot(id=2, external_id="tg-friend", balance=40)


@pytest.fixture
def users():
    directory = MagicMock()
    directory.get.side_effect = lambda uid: {1: ME, 2: FRIEND}.get(uid)
    directory.get_by_external_id.side_effect = lambda code: {
        "tg-me": ME,
        "tg-friend": FRIEND,
    }.get(code)
    directory.set_referred_by.return_value = UserSnapshot(
        id=1, external_id="tg-me", balance=20, referred_by_id=2
    )
    return directory


@pytest.fixture
def ledger():
    mock_ledger = MagicMock()
    mock_ledger.count.return_value = 0
    return mock_ledger


@pytest.fixture
def rule():
    return ReferralRule()


class TestReferrerCode:
    def test_reads_snake_case_key(self):
        assert referrer_code_from({"referrer_code": "abc"}) == "abc"

    def test_reads_camel_case_key(self):
        assert referrer_code_from({"referrerCode": "abc"}) == "abc"

    def test_coerces_numbers(self):
        assert referrer_code_from({"referrer_code": 123456}) == "123456"

    @pytest.mark.parametrize("args", [None, {}, {"referrer_code": ""}, {"referrer_code": None}])
    def test_missing(self, args):
        assert referrer_code_from(args) == ""


class TestReferralEvaluate:
    def test_missing_code(self, rule, ledger, users):
        verdict = rule.evaluate(ledger, users, 1, {})
        assert verdict == Verdict(False, reason="Missing referral code")
        users.get.assert_not_called()

    def test_unknown_acting_user(self, rule, ledger, users):
        verdict = rule.evaluate(ledger, users, 99, {"referrer_code": "tg-friend"})
        assert verdict.reason == "User not found"

    def test_self_referral_rejected_regardless_of_state(self, rule, ledger, users):
        ledger.count.return_value = 0
        verdict = rule.evaluate(ledger, users, 1, {"referrer_code": "tg-me"})
        assert verdict == Verdict(False, reason="Cannot refer yourself")
        ledger.count.assert_not_called()

    def test_unknown_referrer(self, rule, ledger, users):
        verdict = rule.evaluate(ledger, users, 1, {"referrer_code": "tg-ghost"})
        assert verdict == Verdict(False, reason="Invalid referral code")

    def test_already_used(self, rule, ledger, users):
        ledger.count.return_value = 1
        verdict = rule.evaluate(ledger, users, 1, {"referrer_code": "tg-friend"})
        assert verdict == Verdict(False, reason="Referral already used")
        ledger.count.assert_called_once_with(1, "referral")

    def test_available(self, rule, ledger, users):
        verdict = rule.evaluate(ledger, users, 1, {"referrer_code": "tg-friend"})
        assert verdict == Verdict(True)


class TestReferralApplyOnReward:
    def test_links_referrer(self, rule, users):
        result = rule.apply_on_reward(users, 1, {"referrer_code": "tg-friend"})
        users.set_referred_by.assert_called_once_with(1, 2)
        assert result.referred_by_id == 2

    def test_vanished_referrer_is_a_noop(self, rule, users):
        assert rule.apply_on_reward(users, 1, {"referrer_code": "tg-ghost"}) is None
        users.set_referred_by.assert_not_called()

    def test_missing_code_is_a_noop(self, rule, users):
        assert rule.apply_on_reward(users, 1, None) is None
        users.set_referred_by.assert_not_called()


class TestRegistry:
    def test_referral_is_registered(self):
        assert isinstance(get_rule("referral"), ReferralRule)

    def test_unknown_id_has_no_rule(self):
        assert get_rule("welcome") is None

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            RULES["survey"] = ReferralRule()  # type: ignore[index]
