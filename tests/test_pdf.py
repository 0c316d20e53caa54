"""Tests for app.surge.pdf: ordered merge with PyMuPDF."""
from __future__ import annotations

from app.surge.pdf import count_pages, looks_like_pdf, merge_pdfs


def test_merge_preserves_part_order(pdf, read_pages):
    parts = [("A", pdf("A")), ("B", pdf("B", pages=2)), ("C", pdf("C"))]

    result = merge_pdfs(parts)

    assert result.merged_labels == ["A", "B", "C"]
    assert result.page_count == 4
    assert read_pages(result.data) == ["A 1", "B 1", "B 2", "C 1"]


def test_unreadable_part_is_skipped_without_reordering(pdf, read_pages):
    parts = [("A", pdf("A")), ("broken", b"definitely not a pdf"), ("C", pdf("C"))]

    result = merge_pdfs(parts)

    assert result.merged_labels == ["A", "C"]
    assert result.skipped_labels == ["broken"]
    assert read_pages(result.data) == ["A 1", "C 1"]


def test_nothing_to_merge_still_yields_a_valid_pdf():
    result = merge_pdfs([])

    assert looks_like_pdf(result.data)
    assert result.page_count == 1
    assert result.merged_labels == []


def test_count_pages(pdf):
    assert count_pages(pdf("x", pages=3)) == 3


def test_looks_like_pdf():
    assert looks_like_pdf(b"%PDF-1.4\n...")
    assert not looks_like_pdf(b"PK\x03\x04zip")
    assert not looks_like_pdf(b"")
