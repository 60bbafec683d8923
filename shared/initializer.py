"""
Centralized application initializer.

This component is responsible for parsing command-line arguments, loading
configurations, and initializing all the core backend services (VectorStore,
EmbeddingGenerator, AnswerStreamers, KnowledgeBaseService).
It is the single owner of the process-wide embedding model handle, which the
ingestion job and the HTTP app both receive from here.
"""

import argparse
import logging
from typing import Optional, Tuple

from components.answer_engine import AnswerStreamer, PromptSet, create_generation_llm
from components.embedding_system import EmbeddingGenerator
from components.kb_service.main import KnowledgeBaseService
from components.vector_store.vector_store import VectorStore

from shared.config import Config, load_config

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for an entry point."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_arg_parser() -> argparse.ArgumentParser:
    """
    Creates and returns the command-line argument parser with the arguments
    shared by the server and the ingestion job.

    Returns:
        An ArgumentParser instance with all common arguments defined.
    """
    parser = argparse.ArgumentParser(description="Knowledge Base RAG.")
    parser.add_argument(
        "--database-dir",
        help="Override the storage directory for the vector database.",
    )
    parser.add_argument(
        "--knowledge-base-dir",
        help="Override the directory holding the knowledge-base articles.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to the config folder to use for all config files.",
    )
    parser.add_argument(
        "-a",
        "--app-config",
        help="Path to the app.toml file to use.",
    )
    parser.add_argument(
        "-p",
        "--prompts-config",
        help="Path to the prompts.toml file to use.",
    )
    return parser


def load_config_from_args(args: argparse.Namespace) -> Config:
    """Load configuration files and apply command-line overrides."""
    config = load_config(
        config_dir=args.config,
        app_config_path=args.app_config,
        prompts_config_path=args.prompts_config,
    )

    if getattr(args, "database_dir", None):
        logger.info(f"Overriding database directory with: {args.database_dir}")
        config.paths.database_dir = args.database_dir
    if getattr(args, "knowledge_base_dir", None):
        logger.info(
            f"Overriding knowledge base directory with: {args.knowledge_base_dir}"
        )
        config.paths.knowledge_base_dir = args.knowledge_base_dir
    if getattr(args, "host", None):
        config.server.host = args.host
    if getattr(args, "port", None):
        config.server.port = args.port

    return config


def build_service(
    config: Config, embedder: Optional[EmbeddingGenerator] = None
) -> KnowledgeBaseService:
    """
    Wires the core components into a KnowledgeBaseService.

    1. Opens the VectorStore.
    2. Creates the shared EmbeddingGenerator (the model itself loads lazily).
    3. Creates one AnswerStreamer per retrieval profile, sharing one LLM client.
    """
    logger.info("Initializing VectorStore...")
    vector_store = VectorStore(
        persist_directory=config.paths.database_dir,
        collection_name=config.vector_store.collection_name,
    )

    embedder = embedder or EmbeddingGenerator(config.embedding_model)

    logger.info("Initializing answer streamers...")
    llm = create_generation_llm(config.generation_model)
    profiles = (config.retrieval.knowledge_base, config.retrieval.support)
    streamers = {
        profile.prompt_key: AnswerStreamer(
            llm, PromptSet.from_config(config, profile.prompt_key)
        )
        for profile in profiles
    }

    logger.info("Initializing KnowledgeBaseService...")
    return KnowledgeBaseService(
        config=config,
        vector_store=vector_store,
        embedder=embedder,
        streamers=streamers,
    )


def initialize_service_from_args(
    args: argparse.Namespace,
) -> Tuple[Config, KnowledgeBaseService]:
    """
    Loads configuration and initializes all core components based on command-line
    arguments.

    Args:
        args: Parsed command-line arguments from an ArgumentParser.

    Returns:
        A tuple containing the loaded Config object and the fully initialized
        KnowledgeBaseService instance.
    """
    logger.info("Initializing application core services...")
    config = load_config_from_args(args)
    configure_logging(config.logging.level)
    service = build_service(config)
    logger.info("Core services initialized successfully.")
    return config, service
