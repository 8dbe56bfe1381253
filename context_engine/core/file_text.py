"""Text extraction from uploaded event documents."""

import io
from dataclasses import dataclass

from context_engine.core.logging import get_logger

logger = get_logger(__name__)

# Document types we can turn into text
SUPPORTED_EXTENSIONS = {".txt", ".md", ".pdf"}

# Lazy import to avoid loading PyMuPDF unless a PDF is seen
fitz = None


def _get_fitz():
    """Lazy load PyMuPDF."""
    global fitz
    if fitz is None:
        import fitz as _fitz

        fitz = _fitz
    return fitz


@dataclass
class FileTextResult:
    """Result of text extraction from a file."""

    text: str
    detected_encoding: str


def get_extension(path: str, file_type: str | None = None) -> str:
    """
    Resolve a document's extension, preferring its declared file type.

    Returns a lowercase extension with leading dot, or "" if unknown.
    """
    if file_type and file_type.strip():
        declared = "." + file_type.strip().lower().lstrip(".")
        if declared in SUPPORTED_EXTENSIONS:
            return declared

    filename = path.rsplit("/", 1)[-1]
    if "." in filename:
        return "." + filename.rsplit(".", 1)[-1].lower()
    return ""


def _decode_bytes(raw_bytes: bytes) -> tuple[str, str]:
    """
    Attempt to decode bytes using fallback chain.

    Returns:
        Tuple of (decoded_text, encoding_name)

    Raises:
        ValueError: If no encoding works
    """
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        try:
            return raw_bytes.decode("utf-8-sig"), "utf-8-sig"
        except UnicodeDecodeError:
            pass

    for encoding in ["utf-8", "latin-1"]:
        try:
            return raw_bytes.decode(encoding), encoding
        except UnicodeDecodeError:
            continue

    raise ValueError(
        "Unable to decode file content. Supported encodings: UTF-8, UTF-8-BOM, Latin-1."
    )


def _extract_pdf_text(raw_bytes: bytes) -> str:
    fitz_lib = _get_fitz()
    doc = fitz_lib.open(stream=io.BytesIO(raw_bytes), filetype="pdf")
    try:
        return "\n".join(page.get_text() for page in doc)
    finally:
        doc.close()


def normalize_text(text: str | None, max_chars: int) -> str | None:
    """Drop NUL bytes, normalize newlines, trim, and cap length. None if nothing remains."""
    if not text:
        return None
    cleaned = text.replace("\x00", " ").replace("\r\n", "\n").replace("\r", "\n")
    cleaned = "\n".join(line.rstrip() for line in cleaned.split("\n")).strip()
    if not cleaned:
        return None
    return cleaned[:max_chars]


def extract_text_from_bytes(extension: str, raw_bytes: bytes) -> FileTextResult:
    """
    Extract text from a document's raw bytes.

    Args:
        extension: Lowercase extension with leading dot
        raw_bytes: Raw file bytes

    Returns:
        FileTextResult with extracted text and detected encoding

    Raises:
        ValueError: If the type is unsupported or content cannot be decoded
    """
    if extension not in SUPPORTED_EXTENSIONS:
        allowed = ", ".join(sorted(SUPPORTED_EXTENSIONS))
        raise ValueError(f"Unsupported file type '{extension}'. Allowed extensions: {allowed}")

    if extension == ".pdf":
        return FileTextResult(text=_extract_pdf_text(raw_bytes), detected_encoding="pdf")

    text, encoding = _decode_bytes(raw_bytes)
    return FileTextResult(text=text, detected_encoding=encoding)
