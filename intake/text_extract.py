import io
import re
from typing import Optional

from pypdf import PdfReader

from config import UPLOAD_MAX_BYTES
from errors import PipelineError

PDF = "pdf"
PLAIN_TEXT = "plain-text"

_FORMATS_BY_EXTENSION = {"pdf": PDF, "txt": PLAIN_TEXT, "md": PLAIN_TEXT}


class ParseFailure(PipelineError):
    stage = "upload"


def clean_text(text: str) -> str:
    """Normalize line endings, keep at most one blank line between blocks, strip trailing spaces."""
    if not text:
        return ""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = "\n".join(line.rstrip() for line in normalized.split("\n"))
    return re.sub(r"\n{3,}", "\n\n", normalized).strip()


def word_count(text: str) -> int:
    return len(str(text or "").split())


def detect_format(filename: Optional[str]) -> str:
    name = str(filename or "").strip().lower()
    extension = name.rsplit(".", 1)[-1] if "." in name else ""
    fmt = _FORMATS_BY_EXTENSION.get(extension)
    if fmt is None:
        raise ParseFailure("UNSUPPORTED_FORMAT", "Please upload PDF, TXT, or MD files only")
    return fmt


def _extract_pdf(raw: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(raw))
        chunks = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:  # noqa: BLE001
        raise ParseFailure("PARSE_FAILED", f"Failed to parse PDF: {exc}") from exc
    return "\n".join(chunks)


def extract_text(raw: bytes, fmt: str) -> str:
    if len(raw or b"") > UPLOAD_MAX_BYTES:
        raise ParseFailure("DOCUMENT_TOO_LARGE", f"File size must be under {UPLOAD_MAX_BYTES // (1024 * 1024)}MB")
    if not raw:
        raise ParseFailure("PARSE_FAILED", "File appears to be empty")
    if fmt == PDF:
        text = clean_text(_extract_pdf(raw))
        if not text:
            raise ParseFailure("PARSE_FAILED", "PDF appears to be empty or text could not be extracted")
        return text
    if fmt != PLAIN_TEXT:
        raise ParseFailure("UNSUPPORTED_FORMAT", "Please upload PDF, TXT, or MD files only")
    text = clean_text(raw.decode("utf-8-sig", errors="replace"))
    if not text:
        raise ParseFailure("PARSE_FAILED", "File appears to be empty")
    return text


def parse_upload(filename: Optional[str], raw: bytes) -> str:
    return extract_text(raw, detect_format(filename))


def parse_direct_text(text: Optional[str]) -> str:
    cleaned = clean_text(str(text or ""))
    if not cleaned:
        raise ParseFailure("PARSE_FAILED", "Text content is empty")
    return cleaned
