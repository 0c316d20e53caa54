"""Bundle a batch's stored packets into one downloadable ZIP archive.

Packets are streamed from the object store into zip entries chunk by chunk;
the archive itself is spooled to an anonymous temporary file and uploaded
from there, so neither side is held in memory.
"""
from __future__ import annotations

import logging
import shutil
import tempfile
import time
import zipfile
from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.orm import sessionmaker

from app.db.models import Household, Surge
from app.storage.keys import build_archive_key, build_packet_key
from app.storage.object_store import ZIP_CONTENT_TYPE, ObjectNotFoundError, ObjectStore, StorageError
from app.surge.errors import SurgeNotFoundError
from app.surge.naming import build_filename, display_name, slugify

logger = logging.getLogger(__name__)

OPEN_ATTEMPTS = 3
RETRY_BACKOFF_S = 0.2
COPY_CHUNK_SIZE = 64 * 1024


def unique_entry_name(name: str, taken: set[str]) -> str:
    """Return *name*, or ``stem_1.ext``, ``stem_2.ext`` ... when already taken."""
    candidate = name
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    n = 1
    while candidate in taken:
        candidate = f"{stem}_{n}.{ext}" if ext else f"{stem}_{n}"
        n += 1
    taken.add(candidate)
    return candidate


class ArchiveAggregator:
    def __init__(
        self,
        session_factory: sessionmaker,
        store: ObjectStore,
        *,
        attempts: int = OPEN_ATTEMPTS,
        backoff_s: float = RETRY_BACKOFF_S,
    ) -> None:
        self._session_factory = session_factory
        self.store = store
        self.attempts = max(1, attempts)
        self.backoff_s = backoff_s

    def build_archive(self, surge_id: UUID, household_ids: Sequence[UUID]) -> str:
        """Zip the packets of *household_ids* and return a time-limited URL.

        Households whose packet object is missing are logged and left out.
        Any other failure propagates.
        """
        with self._session_factory() as db:
            surge = db.get(Surge, surge_id)
            if surge is None:
                raise SurgeNotFoundError(surge_id)
            archive_name = f"{slugify(surge.name) or 'surge'}.zip"

            entries: list[tuple[UUID, str]] = []
            taken: set[str] = set()
            for household_id in household_ids:
                household = db.get(Household, household_id)
                label = display_name(household) if household is not None else str(household_id)
                entries.append((household_id, unique_entry_name(build_filename(label, ""), taken)))

        written = 0
        with tempfile.TemporaryFile() as spool:
            with zipfile.ZipFile(spool, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for household_id, entry_name in entries:
                    key = build_packet_key(surge_id, household_id)
                    try:
                        stream = self._open_with_retry(key)
                    except ObjectNotFoundError:
                        logger.warning("Packet missing for surge %s household %s; omitted from archive", surge_id, household_id)
                        continue
                    with stream as src, zf.open(entry_name, "w") as dst:
                        shutil.copyfileobj(src, dst, COPY_CHUNK_SIZE)
                    written += 1

            spool.seek(0)
            archive_key = build_archive_key(surge_id, archive_name)
            self.store.put_stream(archive_key, spool, content_type=ZIP_CONTENT_TYPE, filename=archive_name)

        logger.info("Archive for surge %s written: %d/%d packet(s)", surge_id, written, len(entries))
        return self.store.presign_get(archive_key)

    def _open_with_retry(self, key: str):
        for attempt in range(1, self.attempts):
            try:
                return self.store.open_stream(key)
            except ObjectNotFoundError:
                raise
            except StorageError as exc:
                logger.warning("Read of %s failed (attempt %d/%d): %s", key, attempt, self.attempts, exc)
                time.sleep(self.backoff_s * attempt)
        return self.store.open_stream(key)
