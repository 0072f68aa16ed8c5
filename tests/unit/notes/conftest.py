"""Shared fixtures for note streaming tests."""

import asyncio

import pytest

from relnotes.notes.request import GenerationRequest


class FakeStream:
    """Releasable async stream of canned chunks.

    Args:
        chunks: Chunks to yield, in order.
        gated: When True, chunk ``i`` is only returned after ``gates[i]`` is set.
        hang: When True, the stream never ends after its last chunk.
        error: Exception raised when pulling chunk ``error_at``.
        error_at: Index of the pull that raises ``error``.
        close_delay: Seconds ``aclose()`` takes before the stream counts as released.
    """

    def __init__(
        self, chunks, *, gated=False, hang=False, error=None, error_at=0, close_delay=0.0
    ):
        self.chunks = list(chunks)
        self.gated = gated
        self.hang = hang
        self.error = error
        self.error_at = error_at
        self.close_delay = close_delay
        self.gates = [asyncio.Event() for _ in self.chunks]
        self.pulled = 0
        self.release_count = 0
        self.released = False
        self.release_started = asyncio.Event()

    def __aiter__(self):
        return self

    async def __anext__(self):
        index = self.pulled
        if self.error is not None and index == self.error_at:
            raise self.error
        if index >= len(self.chunks):
            if self.hang:
                await asyncio.Event().wait()
            raise StopAsyncIteration
        if self.gated:
            await self.gates[index].wait()
        self.pulled += 1
        return self.chunks[index]

    async def aclose(self):
        self.release_count += 1
        self.release_started.set()
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.released = True


@pytest.fixture
def make_stream():
    """Factory for FakeStream instances."""
    return FakeStream


@pytest.fixture
def opener():
    """Build a stream opener that returns the given source and counts opens."""

    def _opener(source):
        async def open_stream(request):
            open_stream.calls.append(request)
            return source

        open_stream.calls = []
        return open_stream

    return _opener


@pytest.fixture
def request_42() -> GenerationRequest:
    """Generation request for PR #42."""
    return GenerationRequest(
        item_id="42",
        diff="diff --git a/auth.py b/auth.py\n+if token is None:\n+    return None\n",
        description="Fix sign-in crash (#17)",
        owner="acme",
        repo="webapp",
    )
