"""LLM stream source — stream note text straight from a chat model.

Builds the release-note prompt for a request and yields the text content
of every chunk from ``llm.astream()``. Provider failures are translated
into the stream error taxonomy so the consumer can record them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import httpx
import openai

from relnotes.exceptions import NetworkError, ProtocolError, ValidationError
from relnotes.notes.grammar import SectionGrammar
from relnotes.notes.prompts import build_messages

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from relnotes.notes.request import GenerationRequest

logger = logging.getLogger(__name__)


class LLMNoteSource:
    """Stream opener backed by a langchain chat model.

    Usage::

        source = LLMNoteSource()
        consumer = NoteStreamConsumer(store, source.open_stream)
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        *,
        grammar: SectionGrammar | None = None,
        max_diff_chars: int | None = None,
    ) -> None:
        if llm is None:
            from relnotes.llm.factory import get_llm

            llm = get_llm()
        if grammar is None:
            grammar = SectionGrammar.from_settings()
        if max_diff_chars is None:
            from relnotes.settings import get_settings

            max_diff_chars = get_settings().max_diff_chars

        self.llm = llm
        self.grammar = grammar
        self.max_diff_chars = max_diff_chars

    async def open_stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Build the prompt and return an async generator of text chunks.

        Prompt validation happens here, before any chunk is pulled, so a
        request without a diff fails fast.

        Raises:
            ProtocolError: If the request cannot be turned into a prompt.
        """
        try:
            messages = build_messages(
                request,
                grammar=self.grammar,
                max_diff_chars=self.max_diff_chars,
            )
        except ValidationError as e:
            raise ProtocolError(f"Rejected generation request: {e}", detail=str(e)) from e
        logger.debug(
            "Opening LLM stream for %s (%d prompt chars)",
            request.item_id,
            sum(len(str(m.content)) for m in messages),
        )
        return self._stream(messages)

    async def _stream(self, messages) -> AsyncIterator[str]:
        try:
            async for chunk in self.llm.astream(messages):
                content = chunk.content
                if not content:
                    continue
                yield content if isinstance(content, str) else _flatten_content(content)
        except openai.APIStatusError as e:
            raise ProtocolError(
                f"LLM provider returned HTTP {e.status_code}",
                status_code=e.status_code,
                detail=e.message,
            ) from e
        except (openai.APIConnectionError, httpx.TransportError) as e:
            raise NetworkError(f"LLM provider unreachable: {e}") from e


def _flatten_content(content: list) -> str:
    """Join the text parts of a multi-part message chunk."""
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
