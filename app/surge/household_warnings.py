"""Household data-quality warnings relative to a surge.

Rules are evaluated in a fixed order and every applicable code is returned:

1. no accounts on file                          -> NO_ACCOUNTS
2. organization has no logo                     -> NO_BRANDING
3. no lead advisor assigned                     -> NO_ADVISOR
4. BUCKETS or GUARDRAILS requested, and no
   account has a systematic withdrawal          -> NO_SYSTEMATIC_WITHDRAWAL
5. BUCKETS requested, and some account has all
   four allocation buckets zero or undefined    -> MISSING_ALLOCATION
"""
from __future__ import annotations

import math
from collections.abc import Iterable

from app.core.constants import (
    REPORT_BUCKETS,
    WARN_MISSING_ALLOCATION,
    WARN_NO_ACCOUNTS,
    WARN_NO_ADVISOR,
    WARN_NO_BRANDING,
    WARN_NO_SYSTEMATIC_WITHDRAWAL,
    WITHDRAWAL_REPORT_TYPES,
)
from app.db.models import Account, Household, Surge
from app.surge.errors import MissingOrganizationError

_ALLOCATION_FIELDS = ("cash", "income", "annuities", "growth")


def _as_number(value) -> float:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(number) else number


def has_systematic_withdrawal(account: Account) -> bool:
    return _as_number(account.systematic_withdraw_amount) > 0


def is_allocation_missing(account: Account) -> bool:
    return all(_as_number(getattr(account, field)) == 0 for field in _ALLOCATION_FIELDS)


def evaluate_warnings(household: Household, report_types: Iterable[str]) -> list[str]:
    """Return the warning codes for *household* given the requested *report_types*."""
    organization = household.organization
    if organization is None:
        raise MissingOrganizationError(household.id)

    requested = set(report_types)
    accounts = list(household.accounts)
    warnings: list[str] = []

    if not accounts:
        warnings.append(WARN_NO_ACCOUNTS)

    if not (organization.logo_url or "").strip():
        warnings.append(WARN_NO_BRANDING)

    if not household.lead_advisor_ids:
        warnings.append(WARN_NO_ADVISOR)

    if requested & WITHDRAWAL_REPORT_TYPES and not any(has_systematic_withdrawal(a) for a in accounts):
        warnings.append(WARN_NO_SYSTEMATIC_WITHDRAWAL)

    if REPORT_BUCKETS in requested and any(is_allocation_missing(a) for a in accounts):
        warnings.append(WARN_MISSING_ALLOCATION)

    return warnings


def evaluate_surge_warnings(household: Household, surge: Surge) -> list[str]:
    return evaluate_warnings(household, surge.report_types or [])
