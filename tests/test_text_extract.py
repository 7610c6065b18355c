from __future__ import annotations

import pytest

from intake import text_extract


def test_detect_format() -> None:
    assert text_extract.detect_format("SOW.PDF") == "pdf"
    assert text_extract.detect_format("notes.txt") == "plain-text"
    assert text_extract.detect_format("brief.md") == "plain-text"
    for name in ("contract.docx", "README", "", None):
        with pytest.raises(text_extract.ParseFailure) as excinfo:
            text_extract.detect_format(name)
        assert excinfo.value.code == "UNSUPPORTED_FORMAT"
        assert str(excinfo.value) == "Please upload PDF, TXT, or MD files only"


def test_clean_text_normalizes_whitespace() -> None:
    raw = "  Title\r\n\r\n\r\n\r\nBody line   \rNext\n\n\n- item \n"
    assert text_extract.clean_text(raw) == "Title\n\nBody line\nNext\n\n- item"


def test_plain_text_upload() -> None:
    content = text_extract.parse_upload("sow.md", "# Scope\n\nBuild a booking site.\n".encode("utf-8"))
    assert content == "# Scope\n\nBuild a booking site."
    assert text_extract.word_count(content) == 6


def test_empty_inputs_fail() -> None:
    with pytest.raises(text_extract.ParseFailure):
        text_extract.parse_upload("sow.txt", b"")
    with pytest.raises(text_extract.ParseFailure):
        text_extract.parse_upload("sow.txt", b"  \n\n  ")
    with pytest.raises(text_extract.ParseFailure):
        text_extract.parse_direct_text("   ")


def test_oversized_upload_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr(text_extract, "UPLOAD_MAX_BYTES", 10)
    with pytest.raises(text_extract.ParseFailure) as excinfo:
        text_extract.parse_upload("sow.txt", b"x" * 11)
    assert excinfo.value.code == "DOCUMENT_TOO_LARGE"
    assert excinfo.value.http_status == 413


def test_unreadable_pdf_fails() -> None:
    with pytest.raises(text_extract.ParseFailure) as excinfo:
        text_extract.parse_upload("sow.pdf", b"definitely not a pdf")
    assert excinfo.value.code == "PARSE_FAILED"
    assert excinfo.value.stage == "upload"


def test_pdf_text_is_extracted_and_cleaned(monkeypatch) -> None:
    class _Page:
        def __init__(self, text: str) -> None:
            self._text = text

        def extract_text(self) -> str:
            return self._text

    class _Reader:
        def __init__(self, _stream) -> None:
            self.pages = [_Page("Scope   \n\n\n\nBooking"), _Page("Calendar")]

    monkeypatch.setattr(text_extract, "PdfReader", _Reader)
    assert text_extract.parse_upload("sow.pdf", b"%PDF-1.7") == "Scope\n\nBooking\nCalendar"


def test_whitespace_only_lines_count_as_blank_lines() -> None:
    cleaned = text_extract.clean_text("Scope\n   \n  \n \n\t\nDeliverables")
    assert cleaned == "Scope\n\nDeliverables"
    assert "\n\n\n" not in cleaned
