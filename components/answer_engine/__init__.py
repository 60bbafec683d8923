"""Answer engine component.

Assembles retrieved chunks into prompt context and streams generated answers.

Key pieces:
- build_context: ranked SearchResults -> one bounded context string
- AnswerStreamer: history + context + live query -> stream of StreamChunks
- create_generation_llm: LiteLLM client factory
"""

from .answer_stream import (
    AnswerStreamer,
    PromptSet,
    build_live_turn,
    create_generation_llm,
    to_llm_history,
)
from .context_assembler import build_context

__all__ = [
    "AnswerStreamer",
    "PromptSet",
    "build_context",
    "build_live_turn",
    "create_generation_llm",
    "to_llm_history",
]
