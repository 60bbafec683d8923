"""Section-level chunking of authored knowledge-base articles."""

import logging
from typing import List

from components.kb_service.models import ChunkMetadata, KnowledgeChunk

logger = logging.getLogger(__name__)

DEFAULT_MIN_CHUNK_LENGTH = 50

H1_MARKER = "# "
H2_MARKER = "## "


class _SectionBuffer:
    """Accumulates the body of the section currently being read."""

    def __init__(self, source_id: str, min_length: int):
        self.source_id = source_id
        self.min_length = min_length
        self.h1 = ""
        self.h2 = ""
        self.lines: List[str] = []
        self.chunks: List[KnowledgeChunk] = []

    def flush(self) -> None:
        if not self.h2 or not self.lines:
            return
        body = "\n".join(self.lines).strip()
        if len(body) <= self.min_length:
            logger.debug(
                f"Dropping section '{self.h2}' of {self.source_id} "
                f"({len(body)} chars)"
            )
            return
        position = len(self.chunks)
        self.chunks.append(
            KnowledgeChunk(
                chunk_id=f"{self.source_id}|{position}",
                content=f"# {self.h1}\n\n## {self.h2}\n\n{body}",
                metadata=ChunkMetadata(
                    file=self.source_id,
                    section=self.h2,
                    title=f"{self.h1} > {self.h2}",
                ),
            )
        )


def chunk_markdown(
    text: str, source_id: str, min_length: int = DEFAULT_MIN_CHUNK_LENGTH
) -> List[KnowledgeChunk]:
    """Split a markdown article into one chunk per second-level section.

    The H1 heading becomes the breadcrumb root of every chunk. Content before
    the first H2 belongs to no chunk, and sections whose trimmed body is not
    longer than ``min_length`` are dropped.

    Args:
        text: Markdown source of the article.
        source_id: Identifier of the article, stored as ``metadata.file``.
        min_length: Minimum-significance threshold for a section body.

    Returns:
        Chunks in document order.
    """
    buffer = _SectionBuffer(source_id, min_length)

    # Only "\n" ends a line; form feeds and Unicode separators stay in the body.
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if line.startswith(H1_MARKER):
            buffer.h1 = line[len(H1_MARKER):].strip()
            continue
        if line.startswith(H2_MARKER):
            buffer.flush()
            buffer.h2 = line[len(H2_MARKER):].strip()
            buffer.lines = []
            continue
        buffer.lines.append(line)

    buffer.flush()
    return buffer.chunks
