"""Embedding system component: providers and the shared lazy generator."""

from .embedding_factory import (
    EmbeddingError,
    EmbeddingGenerator,
    EmbeddingModel,
    OpenAIEndpointEmbedding,
    SentenceTransformersEmbedding,
    create_embedding_model,
    l2_normalize,
)

__all__ = [
    "EmbeddingError",
    "EmbeddingGenerator",
    "EmbeddingModel",
    "OpenAIEndpointEmbedding",
    "SentenceTransformersEmbedding",
    "create_embedding_model",
    "l2_normalize",
]
