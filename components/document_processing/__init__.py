"""Document processing component.

This component handles uploaded-document parsing (PDF, DOCX, course
cartridges) and the section-level chunking of knowledge-base articles.
"""

from .document_loader import (
    DocumentLoaderError,
    list_knowledge_files,
    read_knowledge_file,
    source_id_for,
)
from .format_parser import DocumentFormat, detect_format, parse_document
from .knowledge_chunker import DEFAULT_MIN_CHUNK_LENGTH, chunk_markdown
from .manifest_extractor import TITLE_STRATEGIES, extract_cartridge, resolve_title

__all__ = [
    # Knowledge-base loading
    "DocumentLoaderError",
    "list_knowledge_files",
    "read_knowledge_file",
    "source_id_for",
    # Upload parsing
    "DocumentFormat",
    "detect_format",
    "parse_document",
    "extract_cartridge",
    "resolve_title",
    "TITLE_STRATEGIES",
    # Chunking
    "DEFAULT_MIN_CHUNK_LENGTH",
    "chunk_markdown",
]
