"""Test fixtures and configuration."""

import logging
import math
import sys
from pathlib import Path
from typing import AsyncIterator, Generator, List

import pytest
from components.embedding_system import EmbeddingGenerator
from components.vector_store.vector_store import VectorStore
from llama_index.core.llms import ChatMessage, ChatResponse
from shared.config import (
    Config,
    EmbeddingModelConfig,
    IngestionConfig,
    PathsConfig,
)


def pytest_configure(config):
    """Configure logging to be visible for all tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stdout,
    )


VOCABULARY = [
    "setup",
    "install",
    "class",
    "assignment",
    "grade",
    "detection",
    "reader",
    "library",
]


class KeywordEmbeddingModel:
    """Deterministic bag-of-words embedder over a tiny vocabulary."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    def encode(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            lowered = text.lower()
            counts = [float(lowered.count(word)) for word in VOCABULARY]
            counts.append(0.1)  # keeps every vector non-zero
            norm = math.sqrt(sum(c * c for c in counts))
            vectors.append([c / norm for c in counts])
        return vectors


class ScriptedLLM:
    """Stands in for LiteLLM: replays fixed fragments and records the prompt."""

    def __init__(self, fragments: List[str], fail_after: int | None = None):
        self.fragments = fragments
        self.fail_after = fail_after
        self.received: List[ChatMessage] = []
        self.closed = False

    async def astream_chat(self, messages: List[ChatMessage]) -> AsyncIterator[ChatResponse]:
        self.received = list(messages)

        async def gen() -> AsyncIterator[ChatResponse]:
            text = ""
            try:
                for i, fragment in enumerate(self.fragments):
                    if self.fail_after is not None and i >= self.fail_after:
                        raise RuntimeError("model connection dropped")
                    text += fragment
                    yield ChatResponse(
                        message=ChatMessage(role="assistant", content=text),
                        delta=fragment,
                    )
            finally:
                self.closed = True

        return gen()


@pytest.fixture
def temp_kb_dir(tmp_path: Path) -> Path:
    kb_dir = tmp_path / "knowledge-base"
    kb_dir.mkdir()
    return kb_dir


@pytest.fixture
def test_config(temp_kb_dir: Path, tmp_path: Path) -> Config:
    """Create a test configuration."""
    return Config(
        paths=PathsConfig(
            knowledge_base_dir=str(temp_kb_dir),
            database_dir=str(tmp_path / "test_chroma"),
        ),
        ingestion=IngestionConfig(min_chunk_length=50),
        embedding_model=EmbeddingModelConfig(
            provider="sentence_transformers", model_name="thenlper/gte-small"
        ),
    )


@pytest.fixture
def keyword_model() -> KeywordEmbeddingModel:
    return KeywordEmbeddingModel()


@pytest.fixture
def embedder(test_config: Config, keyword_model: KeywordEmbeddingModel) -> EmbeddingGenerator:
    """An EmbeddingGenerator backed by the keyword model instead of a real one."""
    return EmbeddingGenerator(
        test_config.embedding_model, factory=lambda _config: keyword_model
    )


@pytest.fixture
def vector_store(tmp_path: Path) -> Generator[VectorStore, None, None]:
    """Create a temporary ChromaDB-backed vector store."""
    store = VectorStore(
        persist_directory=str(tmp_path / "index"),
        collection_name="test_kb",
    )
    yield store
