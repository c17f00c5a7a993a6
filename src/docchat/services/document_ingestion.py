from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from docx import Document

from docchat.services.pdf_ingestion import (
    PdfEncryptedError,
    PdfIngestionError,
    extract_pdf_text,
    sha256_hex,
)


class DocumentIngestionError(RuntimeError):
    """Base exception for turning uploaded bytes into document text."""


class UnsupportedDocumentTypeError(DocumentIngestionError):
    """Raised when an uploaded document type is not supported."""


class DocumentParseError(DocumentIngestionError):
    """Raised when a supported document cannot be parsed."""


class EmptyDocumentError(DocumentIngestionError):
    """Raised when a document parses but contains no text."""


DocumentKind = Literal["pdf", "docx", "text"]

_DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_EXT_TO_MIME: dict[str, str] = {
    ".pdf": "application/pdf",
    ".docx": _DOCX_MIME,
    ".txt": "text/plain",
    ".md": "text/markdown",
}


@dataclass(frozen=True)
class ParsedDocument:
    kind: DocumentKind
    mime_type: str
    checksum_sha256: str
    page_count: int
    text: str


def _is_pdf_bytes(
    data: bytes,
    *,
    filename: str | None = None,
    content_type: str | None = None,
) -> bool:
    if content_type and content_type.lower().startswith("application/pdf"):
        return True
    if filename and filename.lower().endswith(".pdf"):
        return True
    return data.startswith(b"%PDF")


def _is_docx_bytes(data: bytes) -> bool:
    if not data.startswith(b"PK"):
        return False
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return "word/document.xml" in zf.namelist()
    except zipfile.BadZipFile:
        return False


def _is_probably_text(data: bytes) -> bool:
    if not data:
        return True
    head = data[:4096]
    if head.count(b"\x00") / max(1, len(head)) > 0.02:
        return False
    try:
        head.decode("utf-8")
        return True
    except UnicodeDecodeError:
        # ASCII-ish heuristic.
        printable = sum(1 for b in head if 9 <= b <= 13 or 32 <= b <= 126)
        return printable / max(1, len(head)) > 0.9


def detect_document_kind(
    *,
    data: bytes,
    filename: str | None,
    content_type: str | None,
) -> tuple[DocumentKind, str]:
    """Detect the document kind and a best-effort mime type."""

    if _is_pdf_bytes(data, filename=filename, content_type=content_type):
        return "pdf", _EXT_TO_MIME[".pdf"]

    ext = Path(filename).suffix.lower() if filename else ""
    if ext == ".docx" or (content_type or "").lower() == _DOCX_MIME or _is_docx_bytes(data):
        return "docx", _DOCX_MIME
    if ext in {".txt", ".md"}:
        return "text", _EXT_TO_MIME[ext]
    if content_type and content_type.lower().startswith("text/"):
        return "text", content_type

    if _is_probably_text(data):
        return "text", "text/plain"

    supported = ", ".join(sorted(_EXT_TO_MIME))
    raise UnsupportedDocumentTypeError(
        f"Unsupported document type. Supported extensions: {supported}"
    )


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        # Best-effort fallback.
        return data.decode("utf-8", errors="replace")


def _extract_docx_text(data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
    except Exception as exc:
        raise DocumentParseError("Failed to parse .docx document") from exc

    paragraphs: list[str] = []
    for paragraph in getattr(doc, "paragraphs", []):
        text = " ".join(str(getattr(paragraph, "text", "")).split())
        if text:
            paragraphs.append(text)
    return "\n\n".join(paragraphs)


def parse_document(
    data: bytes,
    *,
    filename: str | None = None,
    content_type: str | None = None,
) -> ParsedDocument:
    """Turn uploaded document bytes into a single raw text string.

    Raises :class:`EmptyDocumentError` when no text can be extracted, since an
    empty document cannot be indexed.
    """

    kind, mime = detect_document_kind(data=data, filename=filename, content_type=content_type)

    if kind == "pdf":
        try:
            pdf = extract_pdf_text(data)
        except PdfEncryptedError:
            raise
        except PdfIngestionError as exc:
            raise DocumentParseError("Failed to parse PDF") from exc
        text = pdf.text
        page_count = pdf.page_count
    elif kind == "docx":
        text = _extract_docx_text(data)
        page_count = 1
    else:
        text = _decode_text(data).strip()
        page_count = 1

    if not text.strip():
        raise EmptyDocumentError("No text found in document")

    return ParsedDocument(
        kind=kind,
        mime_type=mime,
        checksum_sha256=sha256_hex(data),
        page_count=page_count,
        text=text,
    )
