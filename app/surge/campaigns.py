"""Surge (campaign) management: definition, uploads, ordering, and listings.

Every lookup is scoped to an organization; a surge owned by another
organization is reported as not found.  Methods flush but never commit; the
request session owns the transaction.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from app.core.constants import (
    DEFAULT_REPORT_TYPES,
    VALID_REPORT_TYPES,
    WARN_FILTER_ANY,
    WARN_FILTER_NONE,
)
from app.db.models import Surge, SurgeUpload
from app.db.repositories import HouseholdRepository, SurgeRepository, SurgeSnapshotRepository
from app.storage.keys import build_packet_key, build_upload_key
from app.storage.object_store import PDF_CONTENT_TYPE, ObjectStore
from app.surge.errors import (
    InvalidSurgeError,
    PacketNotFoundError,
    SurgeNotFoundError,
    UploadNotFoundError,
)
from app.surge.household_warnings import evaluate_surge_warnings
from app.surge.naming import table_label
from app.surge.pdf import count_pages, looks_like_pdf
from app.surge.sources import normalize_order

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 60

STATUS_UPCOMING = "upcoming"
STATUS_ACTIVE = "active"
STATUS_PAST = "past"


def surge_status(surge: Surge, today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    if today < surge.start_date:
        return STATUS_UPCOMING
    if today > surge.end_date:
        return STATUS_PAST
    return STATUS_ACTIVE


@dataclass
class HouseholdRow:
    household_id: UUID
    label: str
    advisor_ids: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    prepared: bool = False


def _matches_warn_filter(codes: list[str], warn_filter: set[str]) -> bool:
    if WARN_FILTER_ANY in warn_filter and codes:
        return True
    if WARN_FILTER_NONE in warn_filter and not codes:
        return True
    specific = warn_filter - {WARN_FILTER_ANY, WARN_FILTER_NONE}
    return any(code in specific for code in codes)


class SurgeService:
    """Org-scoped surge CRUD on top of one request session."""

    def __init__(self, db_session: Session, store: ObjectStore | None = None) -> None:
        self.db = db_session
        self.store = store
        self.surges = SurgeRepository(db_session)
        self.snapshots = SurgeSnapshotRepository(db_session)

    # -- lookup -------------------------------------------------------------

    def get_for_organization(self, surge_id: UUID, organization_id: UUID) -> Surge:
        surge = self.surges.get(surge_id)
        if surge is None or surge.organization_id != organization_id:
            raise SurgeNotFoundError(surge_id)
        return surge

    def list_for_organization(self, organization_id: UUID, *, status: str | None = None, today: date | None = None):
        """Return ``(surge, status, prepared_count)`` tuples, newest first."""
        rows = []
        for surge in self.surges.list_for_organization(organization_id):
            st = surge_status(surge, today)
            if status and st != status:
                continue
            rows.append((surge, st, self.snapshots.count_for_surge(surge.id)))
        return rows

    # -- definition ---------------------------------------------------------

    def _validate_definition(
        self,
        organization_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        *,
        exclude_id: UUID | None = None,
    ) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidSurgeError("Surge name is required.")
        if len(name) > MAX_NAME_LENGTH:
            raise InvalidSurgeError(f"Surge name must be at most {MAX_NAME_LENGTH} characters.")
        if end_date <= start_date:
            raise InvalidSurgeError("End date must be after the start date.")
        existing = self.surges.get_by_name(organization_id, name)
        if existing is not None and existing.id != exclude_id:
            raise InvalidSurgeError(f"A surge named {name!r} already exists.")
        return name

    def create_surge(
        self,
        organization_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        created_by: str,
    ) -> Surge:
        name = self._validate_definition(organization_id, name, start_date, end_date)
        surge = self.surges.create(
            organization_id=organization_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            report_types=list(DEFAULT_REPORT_TYPES),
            order=list(DEFAULT_REPORT_TYPES),
            created_by=created_by,
        )
        logger.info("Surge %s created for organization %s", surge.id, organization_id)
        return surge

    def update_surge(self, surge: Surge, *, name: str, start_date: date, end_date: date) -> Surge:
        name = self._validate_definition(
            surge.organization_id, name, start_date, end_date, exclude_id=surge.id
        )
        return self.surges.update(surge, name=name, start_date=start_date, end_date=end_date)

    def set_report_types(self, surge: Surge, report_types: Iterable[str]) -> Surge:
        """Replace the enabled report types; order becomes types, then uploads."""
        types = list(dict.fromkeys(report_types))
        unknown = [t for t in types if t not in VALID_REPORT_TYPES]
        if unknown:
            raise InvalidSurgeError(f"Unknown report type(s): {', '.join(unknown)}")
        upload_ids = [u.id for u in surge.uploads]
        return self.surges.update(surge, report_types=types, order=types + upload_ids)

    def reorder(self, surge: Surge, order: Sequence[str]) -> Surge:
        """Apply a new merge order.

        Stale tokens are dropped.  Report types missing from *order* are
        disabled.  Uploads missing from it stay attached and are appended to
        the end of the order.
        """
        if not order:
            raise InvalidSurgeError("order must be a non-empty list")
        upload_ids = [u.id for u in surge.uploads]
        normalized = normalize_order(order, surge.report_types or [], upload_ids)
        if not normalized:
            raise InvalidSurgeError("order names no enabled report type or upload")

        upload_rank = {uid: i for i, uid in enumerate(t for t in normalized if t in upload_ids)}
        ranked = sorted(surge.uploads, key=lambda u: (upload_rank.get(u.id, len(upload_rank)), u.position))
        for i, upload in enumerate(ranked):
            upload.position = i
        normalized += [u.id for u in ranked if u.id not in normalized]

        report_types = [t for t in normalized if t in VALID_REPORT_TYPES]
        return self.surges.update(surge, report_types=report_types, order=normalized)

    def delete_surge(self, surge: Surge) -> None:
        removed = self.snapshots.delete_for_surge(surge.id)
        self.surges.delete(surge)
        logger.info("Surge %s deleted with %d snapshot(s)", surge.id, removed)

    # -- uploads ------------------------------------------------------------

    def _require_store(self) -> ObjectStore:
        if self.store is None:
            raise RuntimeError("SurgeService needs an object store for this operation")
        return self.store

    def add_upload(self, surge: Surge, file_name: str, data: bytes) -> SurgeUpload:
        """Store a static PDF and attach it to *surge*.

        The object is written before the record exists, so a storage failure
        leaves the surge untouched.
        """
        if not looks_like_pdf(data):
            raise InvalidSurgeError("Only PDF files are allowed.")
        store = self._require_store()

        upload_id = uuid4().hex
        key = build_upload_key(surge.id, upload_id)
        store.put_bytes(key, data, content_type=PDF_CONTENT_TYPE, filename=file_name)

        try:
            page_count = count_pages(data)
        except (RuntimeError, ValueError) as exc:
            logger.warning("Could not count pages of upload %s: %s", upload_id, type(exc).__name__)
            page_count = None

        upload = SurgeUpload(
            id=upload_id,
            file_name=file_name,
            storage_key=key,
            page_count=page_count,
            position=len(surge.uploads),
        )
        surge.uploads.append(upload)
        surge.order = [*(surge.order or []), upload_id]
        self.db.flush()
        logger.info("Upload %s attached to surge %s (%s page(s))", upload_id, surge.id, page_count)
        return upload

    def delete_upload(self, surge: Surge, upload_id: str) -> None:
        """Remove the stored object, then the upload and its order token."""
        upload = next((u for u in surge.uploads if u.id.lower() == upload_id.lower()), None)
        if upload is None:
            raise UploadNotFoundError(upload_id)
        self._require_store().delete(upload.storage_key)

        surge.uploads.remove(upload)
        surge.order = [t for t in (surge.order or []) if t.lower() != upload.id.lower()]
        for i, remaining in enumerate(surge.uploads):
            remaining.position = i
        self.db.flush()

    # -- packets ------------------------------------------------------------

    def clear_snapshots(self, surge: Surge, household_ids: Sequence[UUID] | None = None) -> int:
        return self.snapshots.delete_for_surge(surge.id, list(household_ids) if household_ids is not None else None)

    def packet_link(self, surge: Surge, household_id: UUID) -> str:
        household = HouseholdRepository(self.db).get(household_id)
        if household is None or household.organization_id != surge.organization_id:
            raise PacketNotFoundError(surge.id, household_id)
        if self.snapshots.for_household(surge.id, household_id) is None:
            raise PacketNotFoundError(surge.id, household_id)
        return self._require_store().presign_get(build_packet_key(surge.id, household_id))

    def household_rows(
        self,
        surge: Surge,
        *,
        warn_filter: Iterable[str] | None = None,
        prepared: bool | None = None,
        search: str | None = None,
    ) -> list[HouseholdRow]:
        """List the organization's households with their warnings for *surge*.

        *warn_filter* codes are OR-ed; ``ANY`` matches households with at
        least one warning and ``NONE`` households with none.
        """
        prepared_ids = self.snapshots.prepared_household_ids(surge.id)
        wanted = set(warn_filter or ())
        needle = (search or "").strip().lower()

        rows: list[HouseholdRow] = []
        for household in HouseholdRepository(self.db).list_for_organization(surge.organization_id):
            is_prepared = household.id in prepared_ids
            if prepared is not None and is_prepared != prepared:
                continue
            label = table_label(household)
            if needle and needle not in label.lower():
                continue
            codes = evaluate_surge_warnings(household, surge)
            if wanted and not _matches_warn_filter(codes, wanted):
                continue
            rows.append(
                HouseholdRow(
                    household_id=household.id,
                    label=label,
                    advisor_ids=[str(a) for a in (household.lead_advisor_ids or [])],
                    warnings=codes,
                    prepared=is_prepared,
                )
            )
        rows.sort(key=lambda r: r.label.lower())
        return rows
