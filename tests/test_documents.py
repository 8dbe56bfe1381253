"""Tests for event document text extraction."""

import pytest

from context_engine.core.documents import (
    ExtractedDocument,
    extract_document_text,
    extract_documents,
    format_documents_section,
)
from context_engine.core.file_text import extract_text_from_bytes, get_extension, normalize_text

BUCKET = "event-docs"


def test_extract_text_txt_utf8():
    result = extract_text_from_bytes(".txt", "Hello, world!".encode("utf-8"))

    assert result.text == "Hello, world!"
    assert result.detected_encoding == "utf-8"


def test_extract_text_utf8_bom():
    result = extract_text_from_bytes(".md", b"\xef\xbb\xbf# Agenda")

    assert result.text == "# Agenda"
    assert result.detected_encoding == "utf-8-sig"


def test_extract_text_latin1_fallback():
    result = extract_text_from_bytes(".txt", "Café".encode("latin-1"))

    assert result.text == "Café"
    assert result.detected_encoding == "latin-1"


def test_unsupported_extension_raises():
    with pytest.raises(ValueError, match="Unsupported file type"):
        extract_text_from_bytes(".docx", b"data")


def test_extract_pdf_text():
    fitz = pytest.importorskip("fitz")
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Keynote on platform engineering")
    raw = doc.tobytes()
    doc.close()

    result = extract_text_from_bytes(".pdf", raw)

    assert "Keynote on platform engineering" in result.text
    assert result.detected_encoding == "pdf"


@pytest.mark.parametrize(
    "path,file_type,expected",
    [
        ("events/1/agenda.PDF", None, ".pdf"),
        ("events/1/blob", "md", ".md"),
        ("events/1/notes.txt", "unknown", ".txt"),
        ("events/1/blob", None, ""),
    ],
)
def test_get_extension(path, file_type, expected):
    assert get_extension(path, file_type) == expected


def test_normalize_text():
    assert normalize_text("a\x00b\r\nc  \r\n", 100) == "a b\nc"
    assert normalize_text("   \n ", 100) is None
    assert normalize_text(None, 100) is None
    assert normalize_text("abcdef", 3) == "abc"


def test_document_is_downloaded_and_extracted(fake_supabase):
    fake_supabase.storage.buckets[BUCKET] = {"events/1/agenda.md": b"# Day one\r\nTalks"}

    text = extract_document_text(fake_supabase, {"id": "d1", "path": "events/1/agenda.md"})

    assert text == "# Day one\nTalks"


def test_missing_unsupported_and_empty_documents_are_skipped(fake_supabase):
    fake_supabase.storage.buckets[BUCKET] = {
        "events/1/empty.txt": b"",
        "events/1/good.txt": b"Useful notes",
        "events/1/slides.pptx": b"binary",
    }
    docs = [
        {"id": "missing", "path": "events/1/missing.txt"},
        {"id": "empty", "path": "events/1/empty.txt"},
        {"id": "pptx", "path": "events/1/slides.pptx"},
        {"id": "noext", "path": "events/1/blob"},
        {"id": "good", "path": "events/1/good.txt", "name": "Notes"},
    ]

    extracted = extract_documents(fake_supabase, docs)

    assert extracted == [ExtractedDocument(doc_id="good", name="Notes", text="Useful notes")]


def test_oversized_document_is_skipped(fake_supabase, monkeypatch):
    monkeypatch.setenv("MAX_DOCUMENT_BYTES", "10")
    fake_supabase.storage.buckets[BUCKET] = {"big.txt": b"x" * 11}

    assert extract_document_text(fake_supabase, {"id": "big", "path": "big.txt"}) is None


def test_documents_section_format():
    section = format_documents_section(
        [ExtractedDocument("d1", "agenda.md", "Day one"), ExtractedDocument("d2", "notes.txt", "Tips")]
    )

    assert section == "\n\nUploaded Documents:\n--- agenda.md ---\nDay one\n\n--- notes.txt ---\nTips"
    assert format_documents_section([]) == ""
