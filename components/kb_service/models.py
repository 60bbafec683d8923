"""Data models for the knowledge-base RAG pipeline."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ParseResult(BaseModel):
    """Outcome of extracting content from an uploaded document."""

    content: Union[str, Dict[str, Any]] = Field(
        ...,
        description="Plain text, or the structured manifest tree for cartridges",
    )
    title: Optional[str] = Field(default=None, description="Resolved document title")
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Format-specific facts such as isScanned and pageCount",
    )

    @property
    def is_scanned(self) -> bool:
        return bool(self.metadata.get("isScanned", False))

    @property
    def text(self) -> Optional[str]:
        """The content when it is plain text, otherwise None."""
        return self.content if isinstance(self.content, str) else None


class ChunkMetadata(BaseModel):
    """Section-level metadata carried by every knowledge chunk."""

    model_config = ConfigDict(frozen=True)

    file: str = Field(..., description="Source file identifier")
    section: str = Field(..., description="Second-level heading of the section")
    title: str = Field(..., description="Breadcrumb title, e.g. 'Guide > Setup'")


class KnowledgeChunk(BaseModel):
    """A minimal indexed unit of knowledge-base text."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(..., description="Unique identifier for the chunk")
    content: str = Field(
        ..., description="Section text, prefixed with its heading breadcrumb"
    )
    metadata: ChunkMetadata


class SearchResult(BaseModel):
    """A ranked match returned by the vector index."""

    id: str = Field(..., description="Identifier of the matched chunk")
    content: str = Field(..., description="Content of the matched chunk")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    similarity: float = Field(..., description="Cosine similarity to the query")

    @property
    def title(self) -> Optional[str]:
        title = self.metadata.get("title")
        return str(title) if title else None


class ChatMessage(BaseModel):
    """One turn of conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class StreamEventType(str, Enum):
    DELTA = "delta"
    DONE = "done"
    ERROR = "error"


class StreamChunk(BaseModel):
    """An incremental fragment of assistant output, or a terminal marker."""

    type: StreamEventType
    content: str = ""
    error: Optional[str] = None

    @classmethod
    def delta(cls, content: str) -> "StreamChunk":
        return cls(type=StreamEventType.DELTA, content=content)

    @classmethod
    def done(cls) -> "StreamChunk":
        return cls(type=StreamEventType.DONE)

    @classmethod
    def failed(cls, error: str) -> "StreamChunk":
        return cls(type=StreamEventType.ERROR, error=error)

    @property
    def is_terminal(self) -> bool:
        return self.type is not StreamEventType.DELTA


class FileIngestionReport(BaseModel):
    """Per-file outcome of a knowledge-base ingestion run."""

    file: str
    chunks_ingested: int = 0
    success: bool = True
    error: Optional[str] = None


class IngestionReport(BaseModel):
    """Totals of a full knowledge-base ingestion run."""

    files: List[FileIngestionReport] = Field(default_factory=list)

    @property
    def total_chunks(self) -> int:
        return sum(f.chunks_ingested for f in self.files)

    @property
    def succeeded(self) -> int:
        return sum(1 for f in self.files if f.success)

    @property
    def failed(self) -> int:
        return sum(1 for f in self.files if not f.success)
