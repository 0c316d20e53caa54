"""Build one household's packet for one surge.

Steps
-----
1. Seed   : create default report records for requested types (non-fatal).
2. Resolve: turn ``surge.order`` into typed document sources.
3. Collect: render each report / fetch each upload, in order.  A missing
            record, a rendering failure, or a missing upload object is
            logged and contributes nothing.  One progress tick per source.
4. Merge  : concatenate the collected PDFs in source order.
5. Store  : write the packet under its deterministic key.  Failure here is
            fatal for the household (``PacketPersistError``).
6. Persist: upsert the ``SurgeSnapshot`` with size, audit captures, and
            warnings.

Each build opens its own session; builds run concurrently on worker threads.
Only ids are logged, never household names.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import Household, Surge, SurgeUpload
from app.db.repositories import ReportRecordRepository, SurgeSnapshotRepository
from app.storage.keys import build_packet_key
from app.storage.object_store import PDF_CONTENT_TYPE, ObjectNotFoundError, ObjectStore, StorageError
from app.surge.errors import HouseholdNotFoundError, PacketPersistError, RenderError, SurgeNotFoundError
from app.surge.household_warnings import evaluate_surge_warnings
from app.surge.naming import build_filename, display_name
from app.surge.pdf import merge_pdfs
from app.surge.renderer import ReportRenderer
from app.surge.seeding import seed_report_records
from app.surge.sources import DocumentSource, SourceKind, resolve_sources

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int], None]


def _no_progress(_steps: int) -> None:
    return None


@dataclass
class SnapshotRef:
    """What a successful build produced."""

    snapshot_id: UUID
    surge_id: UUID
    household_id: UUID
    packet_key: str
    packet_size: int
    page_count: int
    contributions: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class _CollectedPart:
    source: DocumentSource
    data: bytes
    capture: dict | None = None


class PacketAssembler:
    """Assemble, store, and snapshot packets.

    Parameters
    ----------
    session_factory:
        SQLAlchemy ``sessionmaker``; one session is opened per build.
    store:
        Object store holding uploads and receiving packets.
    renderer:
        Rendering collaborator turning a report record id into PDF bytes.
    seed_missing:
        When ``True`` (the default) missing report records are created with
        default content before rendering.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        store: ObjectStore,
        renderer: ReportRenderer,
        *,
        seed_missing: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self.store = store
        self.renderer = renderer
        self.seed_missing = seed_missing

    def build(self, surge_id: UUID, household_id: UUID, progress: ProgressSink | None = None) -> SnapshotRef:
        progress = progress or _no_progress
        with self._session_factory() as db:
            surge = db.get(Surge, surge_id)
            if surge is None:
                raise SurgeNotFoundError(surge_id)
            household = db.get(Household, household_id)
            if household is None or household.organization_id != surge.organization_id:
                raise HouseholdNotFoundError(household_id)

            report_types = list(surge.report_types or [])

            # 1. Seed
            if self.seed_missing:
                self._seed(db, household.id, report_types)

            # 2. Resolve
            uploads = {upload.id: upload for upload in surge.uploads}
            sources = resolve_sources(surge.order, report_types, list(uploads))

            # 3. Collect
            parts: list[_CollectedPart] = []
            for source in sources:
                try:
                    part = self._collect(db, household.id, source, uploads)
                    if part is not None:
                        parts.append(part)
                finally:
                    progress(1)

            # 4. Merge
            merged = merge_pdfs([(str(p.source), p.data) for p in parts])
            merged_labels = set(merged.merged_labels)
            captures = [p.capture for p in parts if p.capture is not None and str(p.source) in merged_labels]

            warnings = evaluate_surge_warnings(household, surge)

            # 5. Store
            packet_key = build_packet_key(surge.id, household.id)
            filename = build_filename(display_name(household), surge.name)
            try:
                self.store.put_bytes(packet_key, merged.data, content_type=PDF_CONTENT_TYPE, filename=filename)
            except StorageError as exc:
                logger.error("Packet write failed for surge %s household %s: %s", surge.id, household.id, exc)
                raise PacketPersistError(f"Could not store packet for household {household.id}") from exc

            # 6. Persist
            snapshot = SurgeSnapshotRepository(db).upsert(
                surge_id=surge.id,
                household_id=household.id,
                packet_key=packet_key,
                packet_size=len(merged.data),
                report_snapshots=captures,
                warnings=warnings,
            )
            db.commit()

            logger.info(
                "Packet built for surge %s household %s: %d/%d source(s), %d page(s), %d bytes",
                surge.id,
                household.id,
                len(merged.merged_labels),
                len(sources),
                merged.page_count,
                len(merged.data),
            )
            return SnapshotRef(
                snapshot_id=snapshot.id,
                surge_id=surge.id,
                household_id=household.id,
                packet_key=packet_key,
                packet_size=len(merged.data),
                page_count=merged.page_count,
                contributions=list(merged.merged_labels),
                warnings=warnings,
            )

    # -- steps --------------------------------------------------------------

    def _seed(self, db: Session, household_id: UUID, report_types: list[str]) -> None:
        try:
            seed_report_records(db, household_id, report_types)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Report seeding failed for household %s: %s", household_id, type(exc).__name__)

    def _collect(
        self,
        db: Session,
        household_id: UUID,
        source: DocumentSource,
        uploads: dict[str, SurgeUpload],
    ) -> _CollectedPart | None:
        if source.kind is SourceKind.REPORT:
            return self._render_report(db, household_id, source)
        return self._fetch_upload(household_id, source, uploads[source.ref])

    def _render_report(self, db: Session, household_id: UUID, source: DocumentSource) -> _CollectedPart | None:
        record = ReportRecordRepository(db).for_household(household_id, source.ref)
        if record is None:
            logger.info("No %s record for household %s; skipping", source.ref, household_id)
            return None
        try:
            data = self.renderer.render(record.id)
        except RenderError as exc:
            logger.warning("Render failed for %s household %s: %s", source.ref, household_id, exc)
            return None
        capture = {
            "type": record.report_type,
            "data": record.current_data or {},
            "warnings": list(record.warnings or []),
        }
        return _CollectedPart(source=source, data=data, capture=capture)

    def _fetch_upload(self, household_id: UUID, source: DocumentSource, upload: SurgeUpload) -> _CollectedPart | None:
        try:
            data = self.store.get_bytes(upload.storage_key)
        except ObjectNotFoundError:
            logger.warning("Missing upload %s for household %s; skipping", upload.id, household_id)
            return None
        except StorageError as exc:
            logger.warning("Upload %s unreadable for household %s: %s", upload.id, household_id, exc)
            return None
        return _CollectedPart(source=source, data=data)
