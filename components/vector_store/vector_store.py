"""Vector index for knowledge chunks and similarity search."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import chromadb
from chromadb.config import Settings
from components.kb_service.models import KnowledgeChunk, SearchResult

logger = logging.getLogger(__name__)

COLLECTION_METADATA = {
    "description": "Knowledge-base chunks",
    "hnsw:space": "cosine",
}


class VectorStoreError(Exception):
    """Raised when the vector index cannot be read or written."""


class VectorStore:
    """Stores chunk vectors in ChromaDB and answers top-k similarity queries.

    The store is policy-free: callers choose their own similarity threshold and
    result count. Vectors are expected to be unit-normalized, so cosine
    similarity is ``1 - distance`` in the collection's cosine space.
    """

    def __init__(
        self,
        persist_directory: str = "./chroma_db",
        collection_name: str = "kb_embeddings",
        client: Optional[Any] = None,
    ):
        """Initialize the vector store.

        Args:
            persist_directory: Directory to persist the ChromaDB data
            collection_name: Name of the ChromaDB collection
            client: Pre-built ChromaDB client, mainly for tests
        """
        self.persist_directory = Path(persist_directory)
        self.collection_name = collection_name

        if client is None:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(
                path=str(self.persist_directory),
                settings=Settings(anonymized_telemetry=False, allow_reset=True),
            )
        self.client = client

        try:
            self.collection = self.client.get_or_create_collection(
                name=self.collection_name, metadata=COLLECTION_METADATA
            )
            logger.info(f"Opened collection: {self.collection_name}")
        except Exception as e:
            logger.error(f"Error opening collection {self.collection_name}: {e}")
            raise VectorStoreError(f"Could not open vector collection: {e}") from e

    @staticmethod
    def _chunk_metadata(chunk: KnowledgeChunk) -> Dict[str, str]:
        return {
            "file": chunk.metadata.file,
            "section": chunk.metadata.section,
            "title": chunk.metadata.title,
        }

    def upsert(self, chunk: KnowledgeChunk, vector: Sequence[float]) -> None:
        """Insert or replace a single chunk and its vector."""
        self.upsert_many([chunk], [vector])

    def upsert_many(
        self, chunks: Sequence[KnowledgeChunk], vectors: Sequence[Sequence[float]]
    ) -> None:
        """Insert or replace several chunks with their vectors."""
        if len(chunks) != len(vectors):
            raise ValueError(
                f"Got {len(chunks)} chunks but {len(vectors)} vectors"
            )
        if not chunks:
            return

        try:
            self.collection.upsert(
                ids=[chunk.chunk_id for chunk in chunks],
                embeddings=[list(vector) for vector in vectors],  # type: ignore[arg-type]
                documents=[chunk.content for chunk in chunks],
                metadatas=[self._chunk_metadata(chunk) for chunk in chunks],  # type: ignore[arg-type]
            )
            logger.debug(f"Upserted {len(chunks)} chunks into vector store")
        except Exception as e:
            logger.error(f"Error upserting chunks into vector store: {e}")
            raise VectorStoreError(f"Failed to write to the vector index: {e}") from e

    def search(
        self, query_vector: Sequence[float], threshold: float, top_k: int
    ) -> List[SearchResult]:
        """Return up to ``top_k`` chunks with similarity >= ``threshold``.

        Args:
            query_vector: Unit-normalized query embedding
            threshold: Minimum cosine similarity; weaker matches are excluded
            top_k: Maximum number of results

        Returns:
            SearchResult objects in non-increasing similarity order

        Raises:
            VectorStoreError: If the index cannot be queried
        """
        if top_k <= 0:
            return []

        try:
            count = self.collection.count()
            if count == 0:
                return []

            results = self.collection.query(
                query_embeddings=[list(query_vector)],  # type: ignore[arg-type]
                n_results=min(top_k, count),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            logger.error(f"Error searching vector store: {e}")
            raise VectorStoreError(f"Failed to search the vector index: {e}") from e

        ids = (results.get("ids") or [[]])[0]
        documents = (results.get("documents") or [[]])[0]
        metadatas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        matches = []
        for chunk_id, doc, metadata, distance in zip(
            ids, documents, metadatas, distances, strict=False
        ):
            similarity = 1.0 - float(distance)
            if similarity < threshold:
                continue
            matches.append(
                SearchResult(
                    id=str(chunk_id),
                    content=str(doc),
                    metadata=dict(metadata or {}),
                    similarity=similarity,
                )
            )

        matches.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug(
            f"Search returned {len(matches)} of {len(ids)} candidates "
            f"(threshold={threshold}, top_k={top_k})"
        )
        return matches[:top_k]

    def get_all_files(self) -> List[str]:
        """Get the distinct source files that have chunks in the index."""
        try:
            results = self.collection.get(include=["metadatas"])
        except Exception as e:
            raise VectorStoreError(f"Failed to read the vector index: {e}") from e

        files = {
            str(metadata["file"])
            for metadata in results.get("metadatas") or []
            if metadata and isinstance(metadata.get("file"), str)
        }
        return sorted(files)

    def get_chunk_count(self) -> int:
        """Get the total number of chunks in the vector store."""
        try:
            return self.collection.count()
        except Exception as e:
            raise VectorStoreError(f"Failed to count chunks: {e}") from e

    def clear_all(self) -> None:
        """Clear all data from the vector store."""
        try:
            self.client.delete_collection(name=self.collection_name)
            self.collection = self.client.create_collection(
                name=self.collection_name, metadata=COLLECTION_METADATA
            )
            logger.info("Cleared all data from vector store")

        except Exception as e:
            logger.error(f"Error clearing vector store: {e}")
            raise VectorStoreError(f"Failed to clear the vector index: {e}") from e
