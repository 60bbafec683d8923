import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional, Protocol, cast

import numpy as np
from llama_index.core.embeddings import BaseEmbedding
from pydantic import Field, PrivateAttr
from shared.config import EmbeddingModelConfig

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding provider fails to produce vectors."""


class EmbeddingModel(Protocol):
    """Protocol for embedding models."""

    def encode(self, texts: List[str]) -> List[List[float]]:
        """Encode texts into unit-normalized embeddings."""
        ...


def l2_normalize(vectors: Any) -> List[List[float]]:
    """Scale every row to unit L2 norm; zero rows are left untouched."""
    matrix = np.asarray(vectors, dtype=np.float32)
    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return cast(List[List[float]], (matrix / norms).tolist())


class SentenceTransformersEmbedding(BaseEmbedding):
    """Wrapper for SentenceTransformers embedding models.

    Vectors are mean-pooled by the model's pooling layer and L2-normalized.
    """

    _sentence_model: Any = PrivateAttr(default=None)

    def __init__(self, model_name: str, **kwargs: Any):
        """Initialize SentenceTransformers model.

        Args:
            model_name: Name of the SentenceTransformers model
            **kwargs: Additional arguments for BaseEmbedding
        """
        try:
            from sentence_transformers import SentenceTransformer

            _model = SentenceTransformer(model_name)
            logger.info(f"Loaded SentenceTransformers model: {model_name}")
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for this provider. "
                "Install with: pip install sentence-transformers"
            ) from e

        super().__init__(model_name=model_name, **kwargs)
        self._sentence_model = _model

    def encode(self, texts: List[str]) -> List[List[float]]:
        """Encode texts into embeddings."""
        if not texts:
            return []
        embeddings = self._sentence_model.encode(
            texts, convert_to_numpy=True, normalize_embeddings=True
        )
        return cast(List[List[float]], embeddings.tolist())

    def _get_query_embedding(self, query: str) -> List[float]:
        """Get query embedding."""
        return self.encode([query])[0]

    def _get_text_embedding(self, text: str) -> List[float]:
        """Get text embedding."""
        return self.encode([text])[0]

    async def _aget_query_embedding(self, query: str) -> List[float]:
        """Get query embedding asynchronously."""
        return self._get_query_embedding(query)


class OpenAIEndpointEmbedding(BaseEmbedding):
    """Wrapper for OpenAI-compatible API endpoints."""

    client: Any = Field(default=None, exclude=True)
    api_model_name: str = Field(default="", exclude=True)

    def __init__(self, model_name: str, endpoint_url: str, api_key: str, **kwargs: Any):
        """Initialize OpenAI-compatible embedding client.

        Args:
            model_name: Name of the embedding model
            endpoint_url: API endpoint URL
            api_key: API key for authentication
            **kwargs: Additional arguments for BaseEmbedding
        """
        try:
            from openai import OpenAI

            client = OpenAI(api_key=api_key, base_url=endpoint_url)
            logger.info(
                f"Initialized OpenAI-compatible client for {model_name} "
                f"at {endpoint_url}"
            )
        except ImportError as e:
            raise ImportError(
                "openai is required for this provider. Install with: pip install openai"
            ) from e

        super().__init__(model_name=model_name, **kwargs)
        object.__setattr__(self, "client", client)
        object.__setattr__(self, "api_model_name", model_name)

    def encode(self, texts: List[str]) -> List[List[float]]:
        """Encode texts into embeddings using OpenAI-compatible API."""
        if not texts:
            return []
        try:
            response = self.client.embeddings.create(
                model=self.api_model_name, input=texts
            )
        except Exception as e:
            logger.error(f"Error getting embeddings from OpenAI endpoint: {e}")
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        ordered = sorted(response.data, key=lambda item: item.index)
        return l2_normalize([item.embedding for item in ordered])

    def _get_query_embedding(self, query: str) -> List[float]:
        """Get query embedding."""
        return self.encode([query])[0]

    def _get_text_embedding(self, text: str) -> List[float]:
        """Get text embedding."""
        return self.encode([text])[0]

    async def _aget_query_embedding(self, query: str) -> List[float]:
        """Get query embedding asynchronously."""
        return self._get_query_embedding(query)


def create_embedding_model(config: EmbeddingModelConfig) -> BaseEmbedding:
    """Factory function to create embedding models based on configuration."""
    provider = config.provider.lower()

    if provider == "sentence_transformers":
        return SentenceTransformersEmbedding(config.model_name)

    elif provider == "openai_endpoint":
        if not config.endpoint_url or not config.api_key:
            raise ValueError(
                "endpoint_url and api_key are required for openai_endpoint provider"
            )
        return OpenAIEndpointEmbedding(
            config.model_name, config.endpoint_url, config.api_key
        )

    else:
        raise ValueError(
            f"Unsupported embedding provider: {provider}. "
            f"Supported providers: sentence_transformers, openai_endpoint"
        )


class EmbeddingGenerator:
    """Shared handle that builds the embedding model once, on first use.

    Ingestion and live queries share one generator. The first caller constructs
    the model while concurrent callers wait on the lock, and later callers
    reuse the same instance.
    """

    def __init__(
        self,
        config: EmbeddingModelConfig,
        factory: Callable[[EmbeddingModelConfig], Any] = create_embedding_model,
    ):
        self.config = config
        self._factory = factory
        self._model: Optional[EmbeddingModel] = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def model(self) -> EmbeddingModel:
        if self._model is None:
            with self._lock:
                if self._model is None:
                    logger.info(
                        f"Loading embedding model: "
                        f"{self.config.provider}/{self.config.model_name}"
                    )
                    self._model = cast(EmbeddingModel, self._factory(self.config))
        return self._model

    def embed(self, text: str) -> List[float]:
        """Embed a single chunk or query string."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts; output order matches input order."""
        if not texts:
            return []
        vectors = self.model.encode(list(texts))
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding model returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors

    async def aembed(self, text: str) -> List[float]:
        """Embed from async code without blocking the event loop."""
        return await asyncio.to_thread(self.embed, text)
