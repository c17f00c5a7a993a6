from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any

import pymupdf


class PdfIngestionError(RuntimeError):
    """Base exception for PDF ingestion failures."""


class PdfEncryptedError(PdfIngestionError):
    """Raised when an uploaded PDF is encrypted or requires a password."""


@dataclass(frozen=True)
class PdfTextResult:
    page_count: int
    checksum_sha256: str
    text: str


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _open_pdf(pdf_bytes: bytes) -> Any:
    # PyMuPDF typing is partial.
    pymupdf_module: Any = pymupdf
    return pymupdf_module.open(stream=pdf_bytes, filetype="pdf")


def extract_pdf_text(pdf_bytes: bytes, *, sort: bool = True) -> PdfTextResult:
    """Extract the text of a PDF as one string, in page order.

    Notes
    -----
    * Inline whitespace inside a page is collapsed to single spaces.
    * Pages are separated by a blank line; the result is trimmed.
    * Pages without text contribute nothing.
    """

    checksum = sha256_hex(pdf_bytes)

    try:
        with _open_pdf(pdf_bytes) as doc:
            # Both flags are present across PyMuPDF versions.
            if getattr(doc, "is_encrypted", False) or getattr(doc, "needs_pass", False):
                raise PdfEncryptedError("PDF is encrypted or requires a password")

            page_texts: list[str] = []
            for page in doc:
                cleaned = " ".join(str(page.get_text("text", sort=sort)).split())
                if cleaned:
                    page_texts.append(cleaned)

            return PdfTextResult(
                page_count=int(getattr(doc, "page_count", len(doc))),
                checksum_sha256=checksum,
                text="\n\n".join(page_texts).strip(),
            )
    except PdfIngestionError:
        raise
    except Exception as exc:
        raise PdfIngestionError("Failed to parse PDF") from exc
