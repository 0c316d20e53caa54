"""Seed placeholder report records so every requested report can render."""
from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.constants import (
    REPORT_BENEFICIARY,
    REPORT_BUCKETS,
    REPORT_GUARDRAILS,
    REPORT_HOMEWORK,
    REPORT_NET_WORTH,
)
from app.db.models import ReportRecord
from app.db.repositories import ReportRecordRepository

logger = logging.getLogger(__name__)

DEFAULT_REPORT_DATA: dict[str, dict] = {
    REPORT_BUCKETS: {
        "portfolioValue": 0,
        "distributionRate": None,
        "monthlyIncome": None,
        "buckets": {"cash": 0, "income": 0, "annuities": 0, "growth": 0},
    },
    REPORT_GUARDRAILS: {
        "current": {"portfolioValue": 0, "distributionRate": None, "monthlyIncome": None},
        "upper": {"portfolioValue": 0, "distributionRate": None, "monthlyIncome": None},
        "lower": {"portfolioValue": 0, "distributionRate": None, "monthlyIncome": None},
    },
    REPORT_BENEFICIARY: {"primary": [], "contingent": [], "accounts": []},
    REPORT_NET_WORTH: {"assets": [], "liabilities": [], "netWorth": 0},
    REPORT_HOMEWORK: {"items": [], "notes": ""},
}


def default_data(report_type: str) -> dict:
    return copy.deepcopy(DEFAULT_REPORT_DATA.get(report_type, {}))


def seed_report_records(db: Session, household_id: UUID, report_types: Iterable[str]) -> list[ReportRecord]:
    """Create a record with default content for each missing report type.

    Existing records are left untouched.  Returns the records created.
    """
    repo = ReportRecordRepository(db)
    existing = repo.existing_types(household_id)
    created: list[ReportRecord] = []
    for report_type in dict.fromkeys(report_types):
        if report_type in existing:
            continue
        created.append(
            repo.create(
                household_id=household_id,
                report_type=report_type,
                current_data=default_data(report_type),
                warnings=[],
            )
        )
    if created:
        logger.info("Seeded %d report record(s) for household %s", len(created), household_id)
    return created
