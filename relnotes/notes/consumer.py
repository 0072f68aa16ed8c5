"""Stream consumer: drive a note stream into the note store.

Opens a stream for a GenerationRequest, pulls chunks one at a time,
re-parses the whole accumulated buffer after every chunk and publishes
the resulting sections to the NoteStore. Pulling the next chunk is the
only suspension point; a wall-clock timeout and an explicit cancel both
act at that point.

Only one session per item id runs at a time. A request for an item that
is already streaming is ignored rather than queued, so two streams can
never interleave writes into the same record.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from relnotes.exceptions import GenerationTimeoutError, NoteStreamError
from relnotes.notes.grammar import SectionGrammar
from relnotes.notes.parser import has_any_marker, parse_sections
from relnotes.notes.state import GenerationStatus, NoteRecord, NoteStore
from relnotes.sources.base import ensure_async_iterable, release_stream

if TYPE_CHECKING:
    from codecs import IncrementalDecoder

    from relnotes.notes.request import GenerationRequest
    from relnotes.sources.base import Chunk, StreamOpener

logger = logging.getLogger(__name__)

# Error type names surfaced on the record, keyed by exception class.
_ERROR_TYPE_NAMES: dict[type[BaseException], str] = {
    GenerationTimeoutError: "TimeoutError",
}


@dataclass
class _Session:
    """Bookkeeping for one in-flight generation."""

    item_id: str
    started_at: datetime
    task: asyncio.Task[None] | None = None
    cancel_requested: bool = False


class NoteStreamConsumer:
    """Consume note streams and publish parsed sections.

    Usage::

        consumer = NoteStreamConsumer(store, source.open_stream)
        record = await consumer.consume(GenerationRequest(item_id="42", diff=diff))
        # from another task:
        consumer.cancel("42")
    """

    def __init__(
        self,
        store: NoteStore,
        open_stream: StreamOpener,
        *,
        grammar: SectionGrammar | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            store: Store receiving parsed sections and session status.
            open_stream: Async callable returning a stream source for a request.
            grammar: Section vocabulary (defaults to the configured one).
            timeout_seconds: Wall-clock limit per stream (defaults to
                settings.generation_timeout_seconds).
        """
        if grammar is None:
            grammar = SectionGrammar.from_settings()
        if timeout_seconds is None:
            from relnotes.settings import get_settings

            timeout_seconds = get_settings().generation_timeout_seconds

        self._store = store
        self._open_stream = open_stream
        self._grammar = grammar
        self._timeout_seconds = timeout_seconds
        self._sessions: dict[str, _Session] = {}

    @property
    def active_ids(self) -> list[str]:
        return list(self._sessions)

    def is_active(self, item_id: str) -> bool:
        return item_id in self._sessions

    async def consume(self, request: GenerationRequest) -> NoteRecord | None:
        """Run one generation session to completion, failure or cancellation.

        Stream failures never propagate: they end up in the record's
        ``error``/``error_type`` with status ``failed``. Cancelling the
        task awaiting this coroutine cancels the stream, marks the record
        cancelled and re-raises.

        Returns:
            The final record, or None if a session for the same item was
            already running and this request was ignored.
        """
        item_id = request.item_id
        if item_id in self._sessions:
            logger.info("Generation already running for %s, ignoring new request", item_id)
            return None

        session = _Session(item_id=item_id, started_at=datetime.now(UTC))
        self._sessions[item_id] = session
        try:
            self._store.reset(item_id)
            self._store.update(
                item_id,
                {"status": GenerationStatus.STREAMING, "started_at": session.started_at},
            )

            pump = asyncio.create_task(
                self._pump(request, session),
                name=f"relnotes-stream-{item_id}",
            )
            session.task = pump

            try:
                done, _ = await asyncio.wait({pump}, timeout=self._timeout_seconds)
            except asyncio.CancelledError:
                session.cancel_requested = True
                pump.cancel()
                await asyncio.wait({pump})
                self._finish(item_id, GenerationStatus.CANCELLED)
                raise

            timed_out = False
            if not done:
                timed_out = pump.cancel()
                await asyncio.wait({pump})

            if timed_out:
                self._fail(
                    item_id,
                    GenerationTimeoutError(
                        f"Note generation timed out after {self._timeout_seconds:g}s",
                        timeout_seconds=self._timeout_seconds,
                    ),
                )
            elif session.cancel_requested or pump.cancelled():
                logger.info("Generation for %s cancelled", item_id)
                self._finish(item_id, GenerationStatus.CANCELLED)
            elif pump.exception() is not None:
                self._fail(item_id, pump.exception())
            else:
                record = self._finish(item_id, GenerationStatus.COMPLETED)
                if record.raw_text and not has_any_marker(record.raw_text, self._grammar):
                    logger.warning(
                        "Stream for %s completed without any section marker (%d chars)",
                        item_id,
                        len(record.raw_text),
                    )
        finally:
            self._sessions.pop(item_id, None)

        return self._store.get(item_id)

    def cancel(self, item_id: str) -> bool:
        """Stop the running session for ``item_id`` at its next chunk boundary.

        Returns:
            True if a session was running.
        """
        session = self._sessions.get(item_id)
        if session is None:
            return False
        if not session.cancel_requested:
            session.cancel_requested = True
            if session.task is not None and not session.task.done():
                session.task.cancel()
        return True

    async def _pump(self, request: GenerationRequest, session: _Session) -> None:
        """Open the stream and publish sections for every chunk pulled."""
        source = None
        try:
            source = await self._open_stream(request)
            chunks = ensure_async_iterable(source)
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            buffer = ""

            while not session.cancel_requested:
                try:
                    chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    break
                if session.cancel_requested:
                    logger.debug("Discarding chunk for %s received after cancel", session.item_id)
                    break

                text = _decode(chunk, decoder)
                if text:
                    buffer += text
                    self._publish(session.item_id, buffer)

            tail = decoder.decode(b"", final=True)
            if tail and not session.cancel_requested:
                buffer += tail
                self._publish(session.item_id, buffer)
        finally:
            if source is not None:
                await self._release(session.item_id, source)

    def _publish(self, item_id: str, buffer: str) -> None:
        sections = parse_sections(buffer, self._grammar)
        self._store.update(item_id, {"sections": sections, "raw_text": buffer})

    async def _release(self, item_id: str, source: object) -> None:
        """Release ``source`` to completion, even if the pump is cancelled meanwhile.

        A cancel or timeout landing while ``aclose()`` is in flight is
        re-raised only after the release has finished.
        """
        release = asyncio.ensure_future(release_stream(source))
        cancelled = False
        while not release.done():
            try:
                await asyncio.shield(release)
            except asyncio.CancelledError:
                cancelled = True
            except Exception:
                break

        if not release.cancelled() and release.exception() is not None:
            logger.warning(
                "Failed to release stream for %s", item_id, exc_info=release.exception()
            )
        if cancelled:
            raise asyncio.CancelledError

    def _finish(self, item_id: str, status: GenerationStatus) -> NoteRecord:
        return self._store.update(item_id, {"status": status, "finished_at": datetime.now(UTC)})

    def _fail(self, item_id: str, exc: BaseException) -> NoteRecord:
        if isinstance(exc, NoteStreamError):
            error_type = _ERROR_TYPE_NAMES.get(type(exc), type(exc).__name__)
            message = str(exc) or error_type
            logger.warning("Generation for %s failed (%s): %s", item_id, error_type, message)
        else:
            # Unclassified source failures are reported as transport errors
            error_type = "NetworkError"
            message = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            logger.error(
                "Generation for %s failed with unexpected error", item_id, exc_info=exc
            )

        return self._store.update(
            item_id,
            {
                "status": GenerationStatus.FAILED,
                "error": message,
                "error_type": error_type,
                "finished_at": datetime.now(UTC),
            },
        )


def _decode(chunk: Chunk, decoder: IncrementalDecoder) -> str:
    if isinstance(chunk, str):
        return chunk
    if isinstance(chunk, bytes | bytearray | memoryview):
        return decoder.decode(bytes(chunk))
    return str(chunk)
