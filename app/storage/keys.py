"""Deterministic object-storage keys for surge artefacts.

Packets are keyed by ``(surge_id, household_id)`` so a rebuild overwrites
the previous object instead of orphaning it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID


def surge_prefix(surge_id: UUID | str) -> str:
    return f"surges/{surge_id}"


def build_packet_key(surge_id: UUID | str, household_id: UUID | str) -> str:
    return f"{surge_prefix(surge_id)}/packets/{household_id}.pdf"


def build_upload_key(surge_id: UUID | str, upload_id: str) -> str:
    return f"{surge_prefix(surge_id)}/uploads/{upload_id}.pdf"


def build_archive_key(surge_id: UUID | str, archive_name: str, now: datetime | None = None) -> str:
    stamp = int((now or datetime.now(timezone.utc)).timestamp() * 1000)
    return f"{surge_prefix(surge_id)}/zips/{stamp}_{archive_name}"
