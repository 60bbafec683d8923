"""Document ingestion and retrieval-augmented generation for a knowledge base."""

__version__ = "0.1.0"
