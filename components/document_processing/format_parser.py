"""Format detection and text extraction for uploaded documents."""

import io
import logging
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import PurePosixPath
from typing import Callable, Dict, Optional

import docx
import fitz  # PyMuPDF
from components.kb_service.models import ParseResult

from .manifest_extractor import extract_cartridge

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DOCX_MEDIA_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)
ZIP_MEDIA_TYPES = frozenset({"application/zip", "application/x-zip-compressed"})


class DocumentFormat(str, Enum):
    """Closed set of document kinds the parser understands."""

    PDF = "pdf"
    DOCX = "docx"
    CARTRIDGE = "cartridge"
    UNSUPPORTED = "unsupported"


def detect_format(media_type: Optional[str], file_name: Optional[str]) -> DocumentFormat:
    """Pick a format from the declared media type, falling back to the extension.

    Declared types are often generic (a plain zip type for a cartridge), so the
    extension decides whenever the media type alone is not conclusive.
    """
    media = (media_type or "").split(";", 1)[0].strip().lower()
    suffix = PurePosixPath((file_name or "").lower()).suffix

    if media == PDF_MEDIA_TYPE or suffix == ".pdf":
        return DocumentFormat.PDF
    if media == DOCX_MEDIA_TYPE or suffix == ".docx":
        return DocumentFormat.DOCX
    if suffix == ".imscc" or media in ZIP_MEDIA_TYPES:
        return DocumentFormat.CARTRIDGE
    return DocumentFormat.UNSUPPORTED


@dataclass(frozen=True)
class PdfExtraction:
    text: str
    page_count: int


def extract_pdf_text(data: bytes) -> PdfExtraction:
    """Extract trimmed text and the page count from a PDF."""
    logger.debug(f"Starting PDF parse. Buffer size: {len(data)} bytes")
    with fitz.open(stream=data, filetype="pdf") as pdf:
        page_count = pdf.page_count
        text = "\n".join(page.get_text() for page in pdf)
    return PdfExtraction(text=text.strip(), page_count=page_count)


def extract_docx_text(data: bytes) -> Optional[str]:
    """Extract raw text from a DOCX file; formatting is discarded."""
    document = docx.Document(io.BytesIO(data))
    parts = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.extend(cell.text for cell in row.cells)
    text = "\n\n".join(part for part in parts if part.strip()).strip()
    return text or None


def _parse_pdf(data: bytes) -> Optional[ParseResult]:
    extraction = extract_pdf_text(data)
    logger.debug(
        f"PDF parse result: pages={extraction.page_count}, "
        f"text_length={len(extraction.text)}"
    )
    metadata = {"isScanned": False, "pageCount": extraction.page_count}

    if not extraction.text and extraction.page_count > 0:
        logger.warning(
            f"PDF looks scanned (pages: {extraction.page_count}, text: 0 chars)"
        )
        metadata["isScanned"] = True

    return ParseResult(content=extraction.text, metadata=metadata)


def _parse_docx(data: bytes) -> Optional[ParseResult]:
    text = extract_docx_text(data)
    return ParseResult(content=text) if text else None


def _unsupported(data: bytes) -> Optional[ParseResult]:
    return None


Parser = Callable[[bytes], Optional[ParseResult]]


def build_parsers(strip_namespace_prefixes: bool = True) -> Dict[DocumentFormat, Parser]:
    """Map every DocumentFormat to the function that parses it."""
    return {
        DocumentFormat.PDF: _parse_pdf,
        DocumentFormat.DOCX: _parse_docx,
        DocumentFormat.CARTRIDGE: partial(
            extract_cartridge, strip_namespace_prefixes=strip_namespace_prefixes
        ),
        DocumentFormat.UNSUPPORTED: _unsupported,
    }


PARSERS = build_parsers()


def parse_document(
    data: bytes,
    media_type: Optional[str],
    file_name: Optional[str],
    parsers: Optional[Dict[DocumentFormat, Parser]] = None,
) -> Optional[ParseResult]:
    """Extract content from an uploaded document.

    Returns None when the format is unsupported or the document cannot be
    parsed. Failures are logged here and never raised, so one bad upload does
    not stop a batch.
    """
    registry = parsers or PARSERS
    document_format = detect_format(media_type, file_name)
    logger.info(f"Parsing '{file_name}' ({media_type}) as {document_format.value}")

    try:
        return registry[document_format](data)
    except Exception as e:
        logger.error(
            f"Failed to parse '{file_name}' as {document_format.value}: {e}",
            exc_info=True,
        )
        return None
