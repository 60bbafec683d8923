"""Streaming answer generation over retrieved context and chat history.

The generation call is the producer of text fragments and the caller is the
consumer. Each fragment is yielded as soon as the model emits it. The
consumer cancels by closing the iterator (``aclose()``, or task cancellation
when an HTTP client disconnects), which closes the upstream model stream.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence

from components.kb_service.models import ChatMessage, StreamChunk
from llama_index.core.llms import LLM
from llama_index.core.llms import ChatMessage as LLMChatMessage
from llama_index.core.llms import MessageRole
from llama_index.llms.litellm import LiteLLM
from shared.config import Config, GenerationModelConfig

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a friendly and knowledgeable help assistant for an \
online learning platform.

Guidelines:
- Answer questions based ONLY on the provided context from the knowledge base
- Be concise but thorough - aim for helpful, actionable responses
- If the context doesn't contain relevant information, say "I don't have specific \
information about that in my knowledge base. You may want to check the documentation \
or contact support."
- Use markdown formatting for better readability (lists, bold, code blocks)
- When referencing features, explain them step-by-step if appropriate"""

DEFAULT_CONTEXT_TEMPLATE = (
    "Relevant Knowledge Base Context:\n{context}\n\nUser Question: {query}"
)
DEFAULT_NO_CONTEXT_TEMPLATE = (
    "No relevant context found in knowledge base.\n\nUser Question: {query}"
)

ROLE_MAP = {
    "user": MessageRole.USER,
    "assistant": MessageRole.ASSISTANT,
}


@dataclass(frozen=True)
class PromptSet:
    """System prompt and live-turn templates for one answering channel."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    context_template: str = DEFAULT_CONTEXT_TEMPLATE
    no_context_template: str = DEFAULT_NO_CONTEXT_TEMPLATE

    @classmethod
    def from_config(cls, config: Config, section: str) -> "PromptSet":
        return cls(
            system_prompt=config.get_prompt(
                section, "system_prompt", DEFAULT_SYSTEM_PROMPT
            ),
            context_template=config.get_prompt(
                section, "context_template", DEFAULT_CONTEXT_TEMPLATE
            ),
            no_context_template=config.get_prompt(
                section, "no_context_template", DEFAULT_NO_CONTEXT_TEMPLATE
            ),
        )


def build_live_turn(query: str, context: str, prompts: PromptSet) -> str:
    """Combine the user's query with the context preamble.

    An empty context produces the explicit no-context preamble, so the model
    never assumes grounding it does not have.
    """
    if context:
        return prompts.context_template.format(context=context, query=query)
    return prompts.no_context_template.format(query=query)


def to_llm_history(history: Sequence[ChatMessage]) -> List[LLMChatMessage]:
    """Translate conversation history into the LLM's role vocabulary."""
    return [
        LLMChatMessage(role=ROLE_MAP[message.role], content=message.content)
        for message in history
    ]


def create_generation_llm(config: GenerationModelConfig) -> LLM:
    """Build the LiteLLM client used for answer generation."""
    llm_parameters = dict(config.parameters or {})
    if config.api_key:
        llm_parameters["api_key"] = config.api_key
    logger.info(f"Creating generation LLM: {config.model_name}")
    return LiteLLM(model=config.model_name, **llm_parameters)


class AnswerStreamer:
    """Streams an answer for a query, its context and the prior conversation."""

    def __init__(self, llm: LLM, prompts: Optional[PromptSet] = None):
        self.llm = llm
        self.prompts = prompts or PromptSet()

    def build_messages(
        self, query: str, history: Sequence[ChatMessage], context: str
    ) -> List[LLMChatMessage]:
        messages = [
            LLMChatMessage(role=MessageRole.SYSTEM, content=self.prompts.system_prompt)
        ]
        messages.extend(to_llm_history(history))
        messages.append(
            LLMChatMessage(
                role=MessageRole.USER,
                content=build_live_turn(query, context, self.prompts),
            )
        )
        return messages

    async def stream(
        self, query: str, history: Sequence[ChatMessage], context: str
    ) -> AsyncIterator[StreamChunk]:
        """Yield answer fragments, then a single ``done`` or ``error`` chunk.

        Fragments already yielded remain valid when the stream later fails.
        """
        messages = self.build_messages(query, history, context)
        logger.info(
            f"Streaming answer (history={len(history)}, "
            f"context={'yes' if context else 'no'})"
        )

        fragments = 0
        try:
            response_stream = await self.llm.astream_chat(messages)
            try:
                async for response in response_stream:
                    if response.delta:
                        fragments += 1
                        yield StreamChunk.delta(response.delta)
            finally:
                aclose = getattr(response_stream, "aclose", None)
                if aclose is not None:
                    await aclose()
        except Exception as e:
            logger.error(
                f"Generation failed after {fragments} fragments: {e}", exc_info=True
            )
            yield StreamChunk.failed(str(e))
            return

        logger.debug(f"Generation finished with {fragments} fragments")
        yield StreamChunk.done()
