"""Stream sources: collaborators that open a note stream for a request."""

from relnotes.sources.base import StreamOpener, StreamSource, ensure_async_iterable, release_stream
from relnotes.sources.http import HTTPNoteSource, HTTPNoteStream
from relnotes.sources.llm import LLMNoteSource

__all__ = [
    "HTTPNoteSource",
    "HTTPNoteStream",
    "LLMNoteSource",
    "StreamOpener",
    "StreamSource",
    "ensure_async_iterable",
    "release_stream",
]
