from __future__ import annotations

import io
from typing import Any

import pymupdf
import pytest
from docx import Document

from docchat.services.document_ingestion import (
    DocumentParseError,
    EmptyDocumentError,
    UnsupportedDocumentTypeError,
    detect_document_kind,
    parse_document,
)
from docchat.services.pdf_ingestion import extract_pdf_text, sha256_hex


def _pdf_bytes(*pages: str) -> bytes:
    pymupdf_module: Any = pymupdf
    doc = pymupdf_module.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return bytes(data)


def _docx_bytes(*paragraphs: str) -> bytes:
    doc = Document()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def test_extract_pdf_text_joins_pages_in_order() -> None:
    data = _pdf_bytes("The   mitochondria is the powerhouse.", "", "Ribosomes build proteins.")

    result = extract_pdf_text(data)

    assert result.page_count == 3
    assert result.checksum_sha256 == sha256_hex(data)
    assert result.text == "The mitochondria is the powerhouse.\n\nRibosomes build proteins."


def test_parse_pdf_document() -> None:
    data = _pdf_bytes("Glaciers carve valleys.")

    parsed = parse_document(data, filename="notes.pdf")

    assert parsed.kind == "pdf"
    assert parsed.mime_type == "application/pdf"
    assert parsed.page_count == 1
    assert "Glaciers carve valleys." in parsed.text


def test_parse_pdf_detected_from_magic_bytes() -> None:
    parsed = parse_document(_pdf_bytes("No filename given."))

    assert parsed.kind == "pdf"


def test_pdf_without_text_is_empty() -> None:
    with pytest.raises(EmptyDocumentError, match="No text found"):
        parse_document(_pdf_bytes(""), filename="blank.pdf")


def test_corrupt_pdf_raises_parse_error() -> None:
    with pytest.raises(DocumentParseError):
        parse_document(b"%PDF-1.7 this is not really a pdf", filename="broken.pdf")


def test_parse_docx_document() -> None:
    data = _docx_bytes("First   paragraph.", "", "Second paragraph.")

    parsed = parse_document(data, filename="notes.docx")

    assert parsed.kind == "docx"
    assert parsed.mime_type.endswith("wordprocessingml.document")
    assert parsed.text == "First paragraph.\n\nSecond paragraph."


def test_docx_detected_without_filename() -> None:
    kind, _mime = detect_document_kind(
        data=_docx_bytes("Body."), filename=None, content_type=None
    )

    assert kind == "docx"


def test_parse_text_document() -> None:
    data = "  Plain notes about tides.\n".encode()

    parsed = parse_document(data, filename="tides.txt")

    assert parsed.kind == "text"
    assert parsed.mime_type == "text/plain"
    assert parsed.page_count == 1
    assert parsed.text == "Plain notes about tides."
    assert parsed.checksum_sha256 == sha256_hex(data)


def test_markdown_keeps_its_mime_type() -> None:
    parsed = parse_document(b"# Title\n\nBody.", filename="readme.md")

    assert parsed.mime_type == "text/markdown"


def test_whitespace_only_text_is_empty() -> None:
    with pytest.raises(EmptyDocumentError):
        parse_document(b" \n\t ", filename="empty.txt")


def test_binary_payload_is_unsupported() -> None:
    with pytest.raises(UnsupportedDocumentTypeError, match="Unsupported document type"):
        parse_document(bytes(range(256)) * 4, filename="image.bin")
