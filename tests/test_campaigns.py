"""Tests for app.surge.campaigns.SurgeService.

Covers:
- create/update validation: name length, date range, per-organization uniqueness
- Organization scoping of lookups
- set_report_types rewrites the order as types then uploads
- reorder drops stale tokens, disables omitted types, appends omitted uploads
- add_upload / delete_upload keep the store, uploads and order in step
- delete_surge removes snapshots
- packet_link requires a snapshot of a household in the surge's organization
- household_rows filters (warnings OR-ed, prepared flag, search)
- surge_status windows
"""
from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from app.core.constants import DEFAULT_REPORT_TYPES
from app.db.models import SurgeSnapshot
from app.storage.keys import build_packet_key
from app.storage.object_store import ObjectNotFoundError
from app.surge.campaigns import SurgeService, surge_status
from app.surge.errors import (
    InvalidSurgeError,
    PacketNotFoundError,
    SurgeNotFoundError,
    UploadNotFoundError,
)

START = date(2026, 10, 1)
END = date(2026, 12, 31)


@pytest.fixture
def service(db, store) -> SurgeService:
    return SurgeService(db, store)


def _snapshot(db, surge, household) -> SurgeSnapshot:
    snapshot = SurgeSnapshot(
        surge_id=surge.id,
        household_id=household.id,
        packet_key=build_packet_key(surge.id, household.id),
        packet_size=10,
        report_snapshots=[],
        warnings=[],
    )
    db.add(snapshot)
    db.flush()
    return snapshot


# ---------------------------------------------------------------------------
# Definition
# ---------------------------------------------------------------------------


def test_create_surge_uses_default_report_types(service, seed):
    org = seed.organization()
    surge = service.create_surge(org.id, "  Spring Review  ", START, END, "user-9")

    assert surge.name == "Spring Review"
    assert surge.report_types == list(DEFAULT_REPORT_TYPES)
    assert surge.order == list(DEFAULT_REPORT_TYPES)
    assert surge.created_by == "user-9"


@pytest.mark.parametrize(
    "name,start,end",
    [
        ("", START, END),
        ("   ", START, END),
        ("x" * 61, START, END),
        ("Review", END, START),
        ("Review", START, START),
    ],
)
def test_create_surge_rejects_invalid_definitions(service, seed, name, start, end):
    org = seed.organization()
    with pytest.raises(InvalidSurgeError):
        service.create_surge(org.id, name, start, end, "user-1")


def test_names_are_unique_per_organization(service, seed):
    org = seed.organization()
    other = seed.organization(name="Other Wealth")
    service.create_surge(org.id, "Review", START, END, "user-1")

    with pytest.raises(InvalidSurgeError):
        service.create_surge(org.id, "Review", START, END, "user-1")
    assert service.create_surge(other.id, "Review", START, END, "user-1").name == "Review"


def test_update_surge_may_keep_its_own_name(service, seed):
    org = seed.organization()
    surge = service.create_surge(org.id, "Review", START, END, "user-1")
    service.create_surge(org.id, "Taken", START, END, "user-1")

    updated = service.update_surge(surge, name="Review", start_date=START, end_date=date(2027, 1, 31))
    assert updated.end_date == date(2027, 1, 31)
    with pytest.raises(InvalidSurgeError):
        service.update_surge(surge, name="Taken", start_date=START, end_date=END)


def test_lookup_is_scoped_to_organization(service, seed):
    org = seed.organization()
    other = seed.organization(name="Other Wealth")
    surge = seed.surge(org)

    assert service.get_for_organization(surge.id, org.id) is surge
    with pytest.raises(SurgeNotFoundError):
        service.get_for_organization(surge.id, other.id)
    with pytest.raises(SurgeNotFoundError):
        service.get_for_organization(uuid4(), org.id)


def test_list_for_organization_reports_status_and_prepared_count(service, seed, db):
    org = seed.organization()
    household = seed.household(org)
    surge = seed.surge(org)
    _snapshot(db, surge, household)

    rows = service.list_for_organization(org.id, today=date(2026, 11, 1))
    assert [(s.id, status, count) for s, status, count in rows] == [(surge.id, "active", 1)]
    assert service.list_for_organization(org.id, status="past", today=date(2026, 11, 1)) == []


# ---------------------------------------------------------------------------
# Report types and order
# ---------------------------------------------------------------------------


def test_set_report_types_rewrites_order(service, seed, store, pdf):
    org = seed.organization()
    surge = seed.surge(org, report_types=["BUCKETS"])
    upload = seed.upload(surge, store, pdf())
    surge.order = [upload.id, "BUCKETS"]

    service.set_report_types(surge, ["NET_WORTH", "HOMEWORK", "NET_WORTH"])

    assert surge.report_types == ["NET_WORTH", "HOMEWORK"]
    assert surge.order == ["NET_WORTH", "HOMEWORK", upload.id]


def test_set_report_types_rejects_unknown(service, seed):
    surge = seed.surge(seed.organization())
    with pytest.raises(InvalidSurgeError):
        service.set_report_types(surge, ["BUCKETS", "TAXES"])


def test_reorder_disables_omitted_types_and_appends_omitted_uploads(service, seed, store, pdf):
    org = seed.organization()
    surge = seed.surge(org, report_types=["BUCKETS", "GUARDRAILS", "NET_WORTH"])
    first = seed.upload(surge, store, pdf("first"))
    second = seed.upload(surge, store, pdf("second"))
    third = seed.upload(surge, store, pdf("third"))

    service.reorder(surge, [second.id, "NET_WORTH", "bogus", "BUCKETS", first.id.upper(), "NET_WORTH"])

    assert surge.order == [second.id, "NET_WORTH", "BUCKETS", first.id, third.id]
    assert surge.report_types == ["NET_WORTH", "BUCKETS"]
    assert [u.id for u in sorted(surge.uploads, key=lambda u: u.position)] == [second.id, first.id, third.id]


def test_reorder_rejects_empty_results(service, seed):
    surge = seed.surge(seed.organization())
    with pytest.raises(InvalidSurgeError):
        service.reorder(surge, [])
    with pytest.raises(InvalidSurgeError):
        service.reorder(surge, ["HOMEWORK", "not-a-token"])


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


def test_add_upload_stores_object_and_appends_to_order(service, seed, store, pdf):
    surge = seed.surge(seed.organization(), report_types=["BUCKETS"])
    data = pdf("insert", pages=3)

    upload = service.add_upload(surge, "insert.pdf", data)

    assert len(upload.id) == 32
    assert upload.page_count == 3
    assert upload.position == 0
    assert surge.order == ["BUCKETS", upload.id]
    assert store.get_bytes(upload.storage_key) == data


def test_add_upload_rejects_non_pdf(service, seed, store):
    surge = seed.surge(seed.organization())
    with pytest.raises(InvalidSurgeError):
        service.add_upload(surge, "notes.txt", b"just text")
    assert surge.uploads == []


def test_delete_upload_removes_object_and_token(service, seed, store, pdf):
    surge = seed.surge(seed.organization(), report_types=["BUCKETS"])
    first = service.add_upload(surge, "a.pdf", pdf("a"))
    second = service.add_upload(surge, "b.pdf", pdf("b"))

    service.delete_upload(surge, first.id.upper())

    assert [u.id for u in surge.uploads] == [second.id]
    assert second.position == 0
    assert surge.order == ["BUCKETS", second.id]
    with pytest.raises(ObjectNotFoundError):
        store.get_bytes(first.storage_key)


def test_delete_unknown_upload(service, seed):
    surge = seed.surge(seed.organization())
    with pytest.raises(UploadNotFoundError):
        service.delete_upload(surge, "0" * 32)


def test_delete_surge_removes_snapshots(service, seed, db):
    org = seed.organization()
    household = seed.household(org)
    surge = seed.surge(org)
    _snapshot(db, surge, household)
    surge_id = surge.id

    service.delete_surge(surge)

    assert service.surges.get(surge_id) is None
    assert service.snapshots.count_for_surge(surge_id) == 0


# ---------------------------------------------------------------------------
# Packets and listings
# ---------------------------------------------------------------------------


def test_packet_link_requires_snapshot(service, seed, db, store):
    org = seed.organization()
    household = seed.household(org)
    surge = seed.surge(org)

    with pytest.raises(PacketNotFoundError):
        service.packet_link(surge, household.id)

    _snapshot(db, surge, household)
    store.put_bytes(build_packet_key(surge.id, household.id), b"%PDF-1.7")
    link = service.packet_link(surge, household.id)
    assert store.resolve_token(link.rsplit("/", 1)[-1]).read_bytes() == b"%PDF-1.7"


def test_packet_link_refuses_household_of_other_organization(service, seed, db, store):
    org = seed.organization()
    foreign = seed.household(seed.organization(name="Other Wealth"))
    surge = seed.surge(org)
    # A snapshot left behind for a foreign household must still not be served.
    _snapshot(db, surge, foreign)
    store.put_bytes(build_packet_key(surge.id, foreign.id), b"%PDF-1.7")

    with pytest.raises(PacketNotFoundError):
        service.packet_link(surge, foreign.id)


def test_clear_snapshots_for_selected_households(service, seed, db):
    org = seed.organization()
    kept = seed.household(org, clients=[("Ann", "Lee")])
    cleared = seed.household(org, clients=[("Ben", "Kim")])
    surge = seed.surge(org)
    _snapshot(db, surge, kept)
    _snapshot(db, surge, cleared)

    assert service.clear_snapshots(surge, [cleared.id]) == 1
    assert service.snapshots.prepared_household_ids(surge.id) == {kept.id}


@pytest.fixture
def roster(seed, db):
    org = seed.organization()
    clean = seed.household(org, clients=[("Ann", "Adams")])
    no_advisor = seed.household(org, clients=[("Bob", "Baker")], advisors=())
    empty = seed.household(org, clients=[("Cy", "Clark"), ("Di", "Clark")], accounts=[])
    seed.household(seed.organization(name="Elsewhere"), clients=[("Ed", "Evans")])
    surge = seed.surge(org, report_types=["NET_WORTH"])
    _snapshot(db, surge, clean)
    return surge, clean, no_advisor, empty


def test_household_rows_lists_organization_households(service, roster):
    surge, clean, no_advisor, empty = roster

    rows = service.household_rows(surge)

    assert [r.label for r in rows] == ["Adams, Ann", "Baker, Bob", "Clark, Cy & Di"]
    by_id = {r.household_id: r for r in rows}
    assert by_id[clean.id].prepared is True
    assert by_id[clean.id].warnings == []
    assert by_id[no_advisor.id].warnings == ["NO_ADVISOR"]
    assert by_id[empty.id].warnings == ["NO_ACCOUNTS"]
    assert by_id[clean.id].advisor_ids == ["adv-1"]


def test_household_rows_warning_filter_is_or(service, roster):
    surge, clean, no_advisor, empty = roster

    assert {r.household_id for r in service.household_rows(surge, warn_filter=["ANY"])} == {
        no_advisor.id,
        empty.id,
    }
    assert [r.household_id for r in service.household_rows(surge, warn_filter=["NONE"])] == [clean.id]
    assert {r.household_id for r in service.household_rows(surge, warn_filter=["NONE", "NO_ADVISOR"])} == {
        clean.id,
        no_advisor.id,
    }


def test_household_rows_prepared_and_search(service, roster):
    surge, clean, no_advisor, empty = roster

    assert [r.household_id for r in service.household_rows(surge, prepared=True)] == [clean.id]
    assert len(service.household_rows(surge, prepared=False)) == 2
    assert [r.household_id for r in service.household_rows(surge, search="clark")] == [empty.id]


@pytest.mark.parametrize(
    "today,expected",
    [
        (date(2026, 9, 30), "upcoming"),
        (date(2026, 10, 1), "active"),
        (date(2026, 12, 31), "active"),
        (date(2027, 1, 1), "past"),
    ],
)
def test_surge_status(seed, today, expected):
    surge = seed.surge(seed.organization())
    assert surge_status(surge, today) == expected
