"""Best-effort text extraction for documents uploaded to an event."""

from dataclasses import dataclass
from typing import Any

from supabase import Client

from context_engine.core.config import get_settings
from context_engine.core.file_text import extract_text_from_bytes, get_extension, normalize_text
from context_engine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ExtractedDocument:
    """Text pulled from one event document."""

    doc_id: str
    name: str
    text: str


def extract_document_text(supabase: Client, doc: dict[str, Any]) -> str | None:
    """
    Download one document from storage and extract its text.

    Returns None (and logs why) for unsupported, empty, oversized or
    unreadable documents.
    """
    settings = get_settings()
    doc_id = str(doc.get("id"))
    path = doc.get("path") or ""
    extension = get_extension(path, doc.get("file_type"))

    if not extension:
        logger.info(f"Skipping document {doc_id} with unknown type")
        return None

    try:
        raw_bytes = supabase.storage.from_(settings.DOCUMENTS_BUCKET).download(path)
    except Exception as e:
        logger.error(f"Failed to download document {doc_id}: {e}")
        return None

    if not raw_bytes:
        logger.warning(f"Document {doc_id} is empty")
        return None

    if len(raw_bytes) > settings.MAX_DOCUMENT_BYTES:
        logger.warning(
            f"Document {doc_id} skipped: {len(raw_bytes)} bytes exceeds {settings.MAX_DOCUMENT_BYTES}"
        )
        return None

    try:
        result = extract_text_from_bytes(extension, raw_bytes)
    except Exception as e:
        logger.warning(f"Could not extract text from document {doc_id}: {e}")
        return None

    text = normalize_text(result.text, settings.MAX_DOCUMENT_CHARS)
    if not text:
        logger.warning(f"No extractable text found for document {doc_id}")
    return text


def extract_documents(
    supabase: Client, docs: list[dict[str, Any]], max_documents: int | None = None
) -> list[ExtractedDocument]:
    """
    Extract text from a batch of documents.

    May return fewer results than inputs; callers treat an empty result as
    "no documents available".
    """
    extracted: list[ExtractedDocument] = []
    for doc in docs[: max_documents or len(docs)]:
        text = extract_document_text(supabase, doc)
        if text:
            extracted.append(
                ExtractedDocument(
                    doc_id=str(doc.get("id")),
                    name=doc.get("name") or (doc.get("path") or "").rsplit("/", 1)[-1],
                    text=text,
                )
            )
    return extracted


def format_documents_section(documents: list[ExtractedDocument]) -> str:
    """Render extracted documents for inclusion in the blueprint prompt."""
    if not documents:
        return ""
    parts = [f"--- {doc.name} ---\n{doc.text}" for doc in documents]
    return "\n\nUploaded Documents:\n" + "\n\n".join(parts)
