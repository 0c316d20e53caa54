"""Tests for app.surge.household_warnings.

Covers:
- Rule order and that every applicable code is returned
- Branding from the organization logo (blank counts as missing)
- Systematic-withdrawal rule only for BUCKETS / GUARDRAILS surges
- Allocation rule only for BUCKETS surges; NaN and None count as zero
- Missing organization raises
"""
from __future__ import annotations

import math
from uuid import uuid4

import pytest

from app.core.constants import (
    WARN_MISSING_ALLOCATION,
    WARN_NO_ACCOUNTS,
    WARN_NO_ADVISOR,
    WARN_NO_BRANDING,
    WARN_NO_SYSTEMATIC_WITHDRAWAL,
)
from app.db.models import Account, Household, Organization, Surge
from app.surge.errors import MissingOrganizationError
from app.surge.household_warnings import (
    evaluate_surge_warnings,
    evaluate_warnings,
    has_systematic_withdrawal,
    is_allocation_missing,
)


def _household(*, logo="https://cdn.example/logo.png", advisors=("adv-1",), accounts=None):
    org = Organization(name="Acme", logo_url=logo)
    household = Household(id=uuid4(), organization=org, lead_advisor_ids=list(advisors))
    if accounts is None:
        accounts = [Account(systematic_withdraw_amount=250.0, cash=1.0, income=0, annuities=0, growth=0)]
    household.accounts = list(accounts)
    return household


class TestEvaluateWarnings:
    def test_clean_household_has_no_warnings(self):
        assert evaluate_warnings(_household(), ["BUCKETS", "GUARDRAILS"]) == []

    def test_all_codes_in_rule_order(self):
        household = _household(
            logo=None,
            advisors=(),
            accounts=[Account(systematic_withdraw_amount=0, cash=None, income=None, annuities=None, growth=None)],
        )
        assert evaluate_warnings(household, ["BUCKETS"]) == [
            WARN_NO_BRANDING,
            WARN_NO_ADVISOR,
            WARN_NO_SYSTEMATIC_WITHDRAWAL,
            WARN_MISSING_ALLOCATION,
        ]

    def test_no_accounts_also_means_no_systematic_withdrawal(self):
        household = _household(accounts=[])
        assert evaluate_warnings(household, ["GUARDRAILS"]) == [WARN_NO_ACCOUNTS, WARN_NO_SYSTEMATIC_WITHDRAWAL]

    def test_blank_logo_is_missing_branding(self):
        assert evaluate_warnings(_household(logo="   "), ["NET_WORTH"]) == [WARN_NO_BRANDING]

    def test_withdrawal_rule_ignored_for_other_report_types(self):
        household = _household(accounts=[Account(systematic_withdraw_amount=None, cash=5)])
        assert evaluate_warnings(household, ["NET_WORTH", "HOMEWORK"]) == []

    def test_allocation_rule_only_for_buckets(self):
        household = _household(accounts=[Account(systematic_withdraw_amount=100)])
        assert WARN_MISSING_ALLOCATION not in evaluate_warnings(household, ["GUARDRAILS"])
        assert WARN_MISSING_ALLOCATION in evaluate_warnings(household, ["BUCKETS"])

    def test_one_unallocated_account_is_enough(self):
        household = _household(
            accounts=[
                Account(systematic_withdraw_amount=100, growth=50),
                Account(systematic_withdraw_amount=0, cash=0, income=0, annuities=0, growth=0),
            ]
        )
        assert evaluate_warnings(household, ["BUCKETS"]) == [WARN_MISSING_ALLOCATION]

    def test_missing_organization_raises(self):
        household = Household(id=uuid4(), organization=None, lead_advisor_ids=["adv-1"])
        with pytest.raises(MissingOrganizationError):
            evaluate_warnings(household, ["BUCKETS"])

    def test_surge_wrapper_uses_enabled_report_types(self):
        household = _household(accounts=[Account(systematic_withdraw_amount=0, growth=10)])
        surge = Surge(report_types=["GUARDRAILS"])
        assert evaluate_surge_warnings(household, surge) == [WARN_NO_SYSTEMATIC_WITHDRAWAL]


class TestAccountPredicates:
    @pytest.mark.parametrize("amount, expected", [(100, True), (0.01, True), (0, False), (None, False), (-5, False)])
    def test_has_systematic_withdrawal(self, amount, expected):
        assert has_systematic_withdrawal(Account(systematic_withdraw_amount=amount)) is expected

    def test_nan_bucket_counts_as_zero(self):
        account = Account(cash=math.nan, income=0, annuities=None, growth=0)
        assert is_allocation_missing(account) is True

    def test_any_positive_bucket_is_allocated(self):
        assert is_allocation_missing(Account(cash=0, income=0, annuities=0, growth=1)) is False
