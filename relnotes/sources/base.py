"""Stream source contract shared by the consumer and the concrete sources.

A stream opener is an async callable that takes a GenerationRequest and
returns a stream source: anything asynchronously iterable over ``bytes``
or ``str`` chunks. Sources that hold a resource expose ``aclose()`` (or a
plain ``close()``) so the consumer can release them on every exit path.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from relnotes.exceptions import StreamUnsupported
from relnotes.notes.request import GenerationRequest

Chunk = bytes | str


@runtime_checkable
class StreamSource(Protocol):
    """A releasable async stream of text or byte chunks."""

    def __aiter__(self) -> AsyncIterator[Chunk]: ...

    async def aclose(self) -> None: ...


StreamOpener = Callable[[GenerationRequest], Awaitable[Any]]


def ensure_async_iterable(source: Any) -> AsyncIterator[Chunk]:
    """Return an async iterator over ``source`` or raise StreamUnsupported.

    Raises:
        StreamUnsupported: If the source does not support ``async for``.
    """
    if not isinstance(source, AsyncIterable):
        raise StreamUnsupported(
            f"Stream source of type {type(source).__name__} is not async iterable"
        )
    return source.__aiter__()


async def release_stream(source: Any) -> None:
    """Release the resource behind a stream source, if it holds one."""
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        result = aclose()
        if inspect.isawaitable(result):
            await result
        return

    close = getattr(source, "close", None)
    if close is not None:
        result = close()
        if inspect.isawaitable(result):
            await result
