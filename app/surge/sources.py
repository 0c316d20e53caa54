"""Resolve a surge's ``order`` tokens into typed document sources.

An order token is either a report type (``"BUCKETS"``) or an upload id
(32-char hex).  The token is classified here, once, into a
:class:`DocumentSource`; nothing downstream inspects token shape again.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

UPLOAD_TOKEN_RE = re.compile(r"^[0-9a-fA-F]{32}$")


class SourceKind(str, Enum):
    REPORT = "report"
    UPLOAD = "upload"


@dataclass(frozen=True)
class DocumentSource:
    kind: SourceKind
    ref: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.ref}"


def is_upload_token(token: str) -> bool:
    return bool(UPLOAD_TOKEN_RE.match(token))


def resolve_sources(
    order: Sequence[str] | None,
    report_types: Sequence[str],
    upload_ids: Sequence[str],
) -> list[DocumentSource]:
    """Return the ordered document sources for one packet.

    Unknown report types and stale upload ids are dropped.  An empty *order*
    falls back to every enabled report type followed by every upload, both
    in declaration order.
    """
    if not order:
        return [DocumentSource(SourceKind.REPORT, t) for t in report_types] + [
            DocumentSource(SourceKind.UPLOAD, u) for u in upload_ids
        ]

    enabled = set(report_types)
    uploads = {u.lower(): u for u in upload_ids}
    resolved: list[DocumentSource] = []
    for token in order:
        if not isinstance(token, str):
            continue
        if is_upload_token(token):
            upload_id = uploads.get(token.lower())
            if upload_id is not None:
                resolved.append(DocumentSource(SourceKind.UPLOAD, upload_id))
        elif token in enabled:
            resolved.append(DocumentSource(SourceKind.REPORT, token))
    return resolved


def normalize_order(
    tokens: Iterable[str],
    report_types: Sequence[str],
    upload_ids: Sequence[str],
) -> list[str]:
    """Drop stale and duplicate tokens, keeping the caller's order."""
    tokens = list(tokens)
    if not tokens:
        return []

    seen: set[str] = set()
    normalized: list[str] = []
    for source in resolve_sources(tokens, report_types, upload_ids):
        if source.ref in seen:
            continue
        seen.add(source.ref)
        normalized.append(source.ref)
    return normalized
