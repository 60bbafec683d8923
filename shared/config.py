"""Configuration management for the knowledge-base RAG pipeline."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    knowledge_base_dir: str = Field(
        ..., description="Directory holding the markdown knowledge-base articles"
    )
    database_dir: str = Field(
        default="./chroma_db",
        description="Directory to store the ChromaDB vector database",
    )


class IngestionConfig(BaseModel):
    """Configuration for knowledge-base ingestion."""

    min_chunk_length: int = Field(
        default=50,
        description="Section bodies must be longer than this many characters",
    )
    file_extension: str = Field(
        default=".md", description="Extension of knowledge-base articles"
    )
    excluded_files: List[str] = Field(
        default_factory=lambda: ["README.md"],
        description="File names never ingested",
    )


class EmbeddingModelConfig(BaseModel):
    """Configuration for embedding models."""

    provider: str = Field(
        default="sentence_transformers",
        description="Embedding provider: sentence_transformers or openai_endpoint",
    )
    model_name: str = Field(
        default="thenlper/gte-small", description="Model name or identifier"
    )
    endpoint_url: Optional[str] = Field(
        default=None, description="API endpoint URL for openai_endpoint provider"
    )
    api_key: Optional[str] = Field(
        default=None, description="API key for openai_endpoint provider"
    )


class VectorStoreConfig(BaseModel):
    """Configuration for the vector index."""

    collection_name: str = Field(
        default="kb_embeddings", description="Name of the ChromaDB collection"
    )


class RetrievalProfile(BaseModel):
    """Operating point for one retrieval call site."""

    match_threshold: float = Field(
        default=0.5, description="Minimum cosine similarity for a match"
    )
    match_count: int = Field(default=5, description="Maximum number of matches")
    prompt_key: str = Field(
        default="chat", description="Section of prompts.toml used for generation"
    )


class RetrievalConfig(BaseModel):
    """Configuration for retrieval and context assembly."""

    knowledge_base: RetrievalProfile = Field(
        default_factory=lambda: RetrievalProfile(
            match_threshold=0.5, match_count=5, prompt_key="chat"
        )
    )
    support: RetrievalProfile = Field(
        default_factory=lambda: RetrievalProfile(
            match_threshold=0.65, match_count=4, prompt_key="support"
        )
    )
    max_context_chars: Optional[int] = Field(
        default=None,
        description="Optional character budget for the assembled context",
    )


class DocumentParsingConfig(BaseModel):
    """Configuration for uploaded document parsing."""

    strip_namespace_prefixes: bool = Field(
        default=True,
        description="Strip XML namespace prefixes when reading cartridge manifests",
    )
    min_text_length: int = Field(
        default=50,
        description="Minimum extracted text length for a usable upload",
    )


class GenerationModelConfig(BaseModel):
    """Configuration for text generation models."""

    model_name: str = Field(
        default="gemini/gemini-2.5-flash", description="LiteLLM model identifier"
    )
    api_key: Optional[str] = Field(
        default=None, description="API key for the generation provider"
    )
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"temperature": 0.5, "max_tokens": 1024},
        description="Parameters passed to the LiteLLM client",
    )


class ServerConfig(BaseModel):
    """Configuration for the server."""

    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Root logging level")


class Config(BaseModel):
    """Main configuration model."""

    paths: PathsConfig
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    embedding_model: EmbeddingModelConfig = Field(default_factory=EmbeddingModelConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    document_parsing: DocumentParsingConfig = Field(
        default_factory=DocumentParsingConfig
    )
    generation_model: GenerationModelConfig = Field(
        default_factory=GenerationModelConfig
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    prompts: Dict[str, Any] = Field(
        default_factory=dict, description="Loaded prompts from prompts.toml"
    )

    def get_knowledge_base_path(self) -> Path:
        """Get the knowledge-base directory as a Path object."""
        return Path(self.paths.knowledge_base_dir).expanduser().resolve()

    def should_include_file(self, filename: str) -> bool:
        """Check if a knowledge-base file should be ingested."""
        if filename in self.ingestion.excluded_files:
            return False
        return filename.endswith(self.ingestion.file_extension)

    def get_prompt(self, section: str, key: str, default: str) -> str:
        """Look up a prompt template, falling back to the built-in default."""
        try:
            return str(self.prompts[section][key])
        except (KeyError, TypeError):
            logger.debug(f"Prompt '{section}.{key}' not configured. Using default.")
            return default


# Environment variable -> (section, field)
ENV_OVERRIDES: Dict[str, tuple] = {
    "KB_RAG_KNOWLEDGE_BASE_DIR": ("paths", "knowledge_base_dir"),
    "KB_RAG_DATABASE_DIR": ("paths", "database_dir"),
    "KB_RAG_EMBEDDING_MODEL": ("embedding_model", "model_name"),
    "KB_RAG_EMBEDDING_API_KEY": ("embedding_model", "api_key"),
    "KB_RAG_GENERATION_MODEL": ("generation_model", "model_name"),
    "KB_RAG_GENERATION_API_KEY": ("generation_model", "api_key"),
}


def apply_env_overrides(config: Config) -> Config:
    """Apply credential and location overrides from the environment."""
    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        logger.info(f"Overriding {section}.{field} from {env_name}")
        setattr(getattr(config, section), field, value)
    return config


def load_config(
    config_dir: Optional[str] = None,
    app_config_path: Optional[str] = None,
    prompts_config_path: Optional[str] = None,
) -> Config:
    """Load all configurations, handling CLI overrides."""
    base_dir = Path(config_dir) if config_dir else Path("config")

    app_path = Path(app_config_path) if app_config_path else base_dir / "app.toml"
    prompts_path = (
        Path(prompts_config_path) if prompts_config_path else base_dir / "prompts.toml"
    )

    try:
        logger.info(f"Loading app config from: {app_path}")
        with open(app_path, "r") as f:
            app_data = toml.load(f)
    except FileNotFoundError:
        logger.error(f"Application config file not found at {app_path}. Aborting.")
        raise

    try:
        logger.info(f"Loading prompts from: {prompts_path}")
        with open(prompts_path, "r") as f:
            prompts_data = toml.load(f)
    except FileNotFoundError:
        logger.warning(
            f"Prompts config file not found at {prompts_path}. Using default prompts."
        )
        prompts_data = {}

    config = Config(**app_data)
    config.prompts = prompts_data

    return apply_env_overrides(config)
