"""
This service encapsulates the business logic of the knowledge-base RAG pipeline.
It is decoupled from any web framework and is shared by the HTTP app and the
batch ingestion entry point.

Responsibilities:
- Full-refresh ingestion of the knowledge-base directory.
- Embedding queries and searching the vector index.
- Assembling context and streaming generated answers.
- Extracting text from uploaded documents.
"""

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Sequence

from components.answer_engine import AnswerStreamer, build_context
from components.document_processing import (
    DocumentLoaderError,
    chunk_markdown,
    list_knowledge_files,
    parse_document,
    read_knowledge_file,
    source_id_for,
)
from components.document_processing.format_parser import build_parsers
from components.embedding_system import EmbeddingGenerator
from components.vector_store.vector_store import VectorStore
from shared.config import Config, RetrievalProfile

from .models import (
    ChatMessage,
    FileIngestionReport,
    IngestionReport,
    ParseResult,
    SearchResult,
    StreamChunk,
)

logger = logging.getLogger(__name__)

SCANNED_DOCUMENT_MESSAGE = (
    "This document appears to be a scanned PDF (image only). "
    "We can only process text-selectable PDFs."
)
TOO_LITTLE_TEXT_MESSAGE = "Could not extract enough text from this document."
UNREADABLE_DOCUMENT_MESSAGE = "Unsupported or unreadable document."


class KnowledgeBaseService:
    """The central service for all knowledge-base business logic."""

    def __init__(
        self,
        config: Config,
        vector_store: VectorStore,
        embedder: EmbeddingGenerator,
        streamers: Optional[Dict[str, AnswerStreamer]] = None,
    ):
        """
        Initializes the service with its required dependencies.

        Args:
            config: The application's configuration object.
            vector_store: The VectorStore instance for index reads and writes.
            embedder: The process-wide EmbeddingGenerator.
            streamers: AnswerStreamers keyed by prompt section ("chat", "support").
        """
        self.config = config
        self.vector_store = vector_store
        self.embedder = embedder
        self.streamers = streamers or {}
        self._parsers = build_parsers(config.document_parsing.strip_namespace_prefixes)

    # --- Ingestion ---

    def ingest_file(self, path: Path) -> int:
        """Chunk, embed and store one article. Returns the number of chunks."""
        text = read_knowledge_file(path)
        chunks = chunk_markdown(
            text,
            source_id_for(path),
            min_length=self.config.ingestion.min_chunk_length,
        )
        if not chunks:
            logger.info(f"{path.name}: no sections long enough to index")
            return 0

        vectors = self.embedder.embed_batch([chunk.content for chunk in chunks])
        for chunk, vector in zip(chunks, vectors, strict=True):
            self.vector_store.upsert(chunk, vector)
        return len(chunks)

    def ingest_knowledge_base(self) -> IngestionReport:
        """
        Rebuilds the index from the knowledge-base directory.

        The index is cleared first, then every article is processed one at a
        time. A failing article is recorded in the report and the run moves on.

        Raises:
            DocumentLoaderError: If the knowledge-base directory is missing.
            VectorStoreError: If the index cannot be cleared.
        """
        files = list_knowledge_files(self.config)
        logger.info(f"Starting knowledge-base ingestion of {len(files)} files")

        self.vector_store.clear_all()

        report = IngestionReport()
        for path in files:
            try:
                count = self.ingest_file(path)
                report.files.append(
                    FileIngestionReport(file=path.name, chunks_ingested=count)
                )
                logger.info(f"{path.name}: {count} chunks ingested")
            except Exception as e:
                logger.error(f"{path.name}: ingestion failed: {e}", exc_info=True)
                report.files.append(
                    FileIngestionReport(file=path.name, success=False, error=str(e))
                )

        logger.info(
            f"Ingestion finished: {report.total_chunks} chunks from "
            f"{report.succeeded} files, {report.failed} failures"
        )
        return report

    async def reindex(self) -> IngestionReport:
        """Run a full re-ingestion without blocking the event loop."""
        return await asyncio.to_thread(self.ingest_knowledge_base)

    # --- Retrieval ---

    def search(self, query: str, profile: RetrievalProfile) -> List[SearchResult]:
        """Embed a query and search the index at the profile's operating point."""
        query_vector = self.embedder.embed(query)
        return self.vector_store.search(
            query_vector,
            threshold=profile.match_threshold,
            top_k=profile.match_count,
        )

    async def retrieve_context(
        self, query: str, profile: RetrievalProfile
    ) -> str:
        """Search for a query and assemble the matches into a context string."""
        results = await asyncio.to_thread(self.search, query, profile)
        logger.info(
            f"Retrieved {len(results)} matches "
            f"(threshold={profile.match_threshold}, top_k={profile.match_count})"
        )
        return build_context(results, max_chars=self.config.retrieval.max_context_chars)

    def answer_stream(
        self,
        query: str,
        history: Sequence[ChatMessage],
        context: str,
        profile: RetrievalProfile,
    ) -> AsyncIterator[StreamChunk]:
        """Stream an answer using the streamer for the profile's prompt section."""
        try:
            streamer = self.streamers[profile.prompt_key]
        except KeyError as e:
            raise ValueError(
                f"No answer streamer configured for '{profile.prompt_key}'"
            ) from e
        return streamer.stream(query, history, context)

    # --- Uploaded documents ---

    def extract_document(
        self, data: bytes, media_type: Optional[str], file_name: Optional[str]
    ) -> Optional[ParseResult]:
        """Parse an uploaded document. Never raises; None means unreadable."""
        return parse_document(data, media_type, file_name, parsers=self._parsers)

    async def aextract_document(
        self, data: bytes, media_type: Optional[str], file_name: Optional[str]
    ) -> Optional[ParseResult]:
        """Parse an upload in a worker thread so the event loop stays free."""
        return await asyncio.to_thread(
            self.extract_document, data, media_type, file_name
        )

    def describe_extraction(self, result: Optional[ParseResult]) -> Optional[str]:
        """
        Returns the user-facing problem with an extraction, or None if usable.

        Structured cartridge content is always usable.
        """
        if result is None:
            return UNREADABLE_DOCUMENT_MESSAGE
        if result.is_scanned:
            return SCANNED_DOCUMENT_MESSAGE
        if result.text is not None and (
            len(result.text) < self.config.document_parsing.min_text_length
        ):
            return TOO_LITTLE_TEXT_MESSAGE
        return None


__all__ = ["DocumentLoaderError", "KnowledgeBaseService"]
