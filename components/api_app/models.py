"""Request and response models for the HTTP API."""

from typing import Any, List, Optional

from components.kb_service.models import ChatMessage, FileIngestionReport
from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """A live question plus the conversation that preceded it."""

    message: Optional[str] = Field(
        default=None, description="The user's current question"
    )
    history: List[ChatMessage] = Field(
        default_factory=list,
        description="Earlier turns, oldest first; excludes the current question",
    )


class ExtractionResponse(BaseModel):
    """Outcome of extracting content from an uploaded document."""

    file_name: str
    format: str
    usable: bool
    message: Optional[str] = Field(
        default=None, description="User-facing explanation when not usable"
    )
    title: Optional[str] = None
    is_scanned: bool = False
    page_count: Optional[int] = None
    text_length: Optional[int] = None
    content: Any = Field(
        default=None, description="Extracted text, or the cartridge manifest tree"
    )


class ReindexResponse(BaseModel):
    """Summary of a full re-ingestion."""

    success: bool
    message: str
    total_chunks: int = 0
    files: List[FileIngestionReport] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    indexed_chunks: int
