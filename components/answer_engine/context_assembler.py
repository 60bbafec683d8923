"""Turns ranked search results into a single prompt-context string."""

import logging
from typing import List, Optional, Sequence

from components.kb_service.models import SearchResult

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n---\n\n"


def format_source(index: int, result: SearchResult) -> str:
    """Render one result as a ``[Source N: title]`` block (index is 1-based)."""
    label = f"Source {index}: {result.title}" if result.title else f"Source {index}"
    return f"[{label}]\n{result.content}"


def build_context(
    results: Sequence[SearchResult], max_chars: Optional[int] = None
) -> str:
    """Concatenate results, in the given order, into one context string.

    An empty result list yields ``""``. With ``max_chars`` set, trailing
    blocks are dropped whole once the budget would be exceeded; the first
    block is always kept.
    """
    if not results:
        return ""

    blocks: List[str] = []
    used = 0
    for i, result in enumerate(results, start=1):
        block = format_source(i, result)
        added = len(block) + (len(BLOCK_SEPARATOR) if blocks else 0)
        if max_chars is not None and blocks and used + added > max_chars:
            logger.debug(
                f"Context budget of {max_chars} chars reached; "
                f"dropping {len(results) - len(blocks)} trailing sources"
            )
            break
        blocks.append(block)
        used += added

    return BLOCK_SEPARATOR.join(blocks)
