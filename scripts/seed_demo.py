#!/usr/bin/env python3
"""Seed demo data: 1 Organization, 6 Households with report records, 1 Surge.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py

Prints the organization id to pass as ``X-Organization-Id``.
"""
from __future__ import annotations

import sys
from datetime import date, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.core.constants import DEFAULT_REPORT_TYPES
from app.core.settings import get_settings
from app.db.base import Base
from app.db.models import Account, Client, Household, Organization, Surge
from app.surge.seeding import seed_report_records


def seed(session: Session) -> Organization:
    """Insert a demo organization, its households, and an active surge."""

    org = Organization(name="Demo Wealth Partners", logo_url="https://example.com/logo.png")
    session.add(org)
    session.flush()

    demo_households = [
        # (clients, advisors, systematic withdrawal, allocated)
        ([("Alice", "Johnson")], ["adv-100"], 1500.0, True),
        ([("Bob", "Smith"), ("Carol", "Smith")], ["adv-100"], 2200.0, True),
        ([("Priya", "Patel"), ("Raj", "Sharma")], ["adv-200"], 0.0, True),
        ([("Carlos", "Rivera")], [], 900.0, False),
        ([("Fatima", "Khan")], ["adv-200"], 0.0, False),
        ([("David", "Chen")], ["adv-100"], None, None),
    ]

    households: list[Household] = []
    for clients, advisors, withdrawal, allocated in demo_households:
        household = Household(organization=org, lead_advisor_ids=advisors)
        for i, (first, last) in enumerate(clients):
            household.clients.append(Client(first_name=first, last_name=last, position=i))
        if withdrawal is not None:
            buckets = (25000.0, 40000.0, 15000.0, 120000.0) if allocated else (0.0, 0.0, 0.0, 0.0)
            household.accounts.append(
                Account(
                    account_type="IRA",
                    account_value=sum(buckets) or 50000.0,
                    systematic_withdraw_amount=withdrawal,
                    systematic_withdraw_frequency="monthly" if withdrawal else None,
                    cash=buckets[0],
                    income=buckets[1],
                    annuities=buckets[2],
                    growth=buckets[3],
                )
            )
        session.add(household)
        households.append(household)
    session.flush()

    for household in households:
        seed_report_records(session, household.id, DEFAULT_REPORT_TYPES)

    today = date.today()
    surge = Surge(
        organization_id=org.id,
        name="Demo Review Season",
        start_date=today - timedelta(days=7),
        end_date=today + timedelta(days=60),
        report_types=list(DEFAULT_REPORT_TYPES),
        order=list(DEFAULT_REPORT_TYPES),
        created_by="demo-seed",
    )
    session.add(surge)

    session.commit()
    print(f"Seeded organization {org.id} with {len(households)} Households and 1 Surge ({surge.id}).")
    return org


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
