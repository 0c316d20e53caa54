"""PDF helpers built on PyMuPDF: ordered merge and page counting."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


@dataclass
class MergeResult:
    data: bytes
    page_count: int
    merged_labels: list[str] = field(default_factory=list)
    skipped_labels: list[str] = field(default_factory=list)


def looks_like_pdf(data: bytes) -> bool:
    return data[:1024].lstrip().startswith(PDF_MAGIC)


def count_pages(data: bytes) -> int:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return doc.page_count


def merge_pdfs(parts: Sequence[tuple[str, bytes]]) -> MergeResult:
    """Concatenate *parts* into one PDF, preserving their order.

    Each part is ``(label, pdf_bytes)``.  A part that cannot be parsed is
    logged and skipped; the remaining parts still merge in order.
    """
    merged = fitz.open()
    result = MergeResult(data=b"", page_count=0)
    try:
        for label, data in parts:
            try:
                with fitz.open(stream=data, filetype="pdf") as src:
                    if src.page_count == 0:
                        raise ValueError("document has no pages")
                    merged.insert_pdf(src)
            except (RuntimeError, ValueError) as exc:
                logger.warning("Skipping unreadable PDF part %s: %s", label, type(exc).__name__)
                result.skipped_labels.append(label)
                continue
            result.merged_labels.append(label)

        if merged.page_count == 0:
            # PyMuPDF refuses to save a zero-page document.
            merged.new_page()
        result.page_count = merged.page_count
        result.data = merged.tobytes(garbage=3, deflate=True)
    finally:
        merged.close()
    return result
