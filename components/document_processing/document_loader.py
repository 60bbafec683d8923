"""Discovery and loading of knowledge-base articles from disk."""

import logging
from pathlib import Path
from typing import List

from shared.config import Config

logger = logging.getLogger(__name__)


class DocumentLoaderError(Exception):
    """Raised when the knowledge-base directory cannot be read."""


def list_knowledge_files(config: Config) -> List[Path]:
    """
    List the knowledge-base articles that should be ingested.

    Args:
        config: Application configuration

    Returns:
        Sorted list of article paths directly inside the knowledge-base directory

    Raises:
        DocumentLoaderError: If the directory does not exist
    """
    kb_path = config.get_knowledge_base_path()
    if not kb_path.is_dir():
        raise DocumentLoaderError(f"Knowledge base directory does not exist: {kb_path}")

    files = sorted(
        p for p in kb_path.iterdir() if p.is_file() and config.should_include_file(p.name)
    )
    logger.debug(f"Found {len(files)} knowledge-base files in {kb_path}")
    return files


def read_knowledge_file(path: Path) -> str:
    """Read an article as UTF-8 text."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentLoaderError(f"Could not read {path}: {e}") from e


def source_id_for(path: Path) -> str:
    """The identifier stored with every chunk of an article: its stem."""
    return path.stem
