"""Unit tests for NoteStreamConsumer.

Tests that the consumer accumulates chunks, publishes re-parsed sections
after each one, and handles timeout, cancellation, concurrency and
stream errors without ever raising them to the caller.
"""

import asyncio
import logging

import pytest

from relnotes.exceptions import NetworkError, ProtocolError
from relnotes.notes.consumer import NoteStreamConsumer
from relnotes.notes.state import GenerationStatus


def _consumer(store, open_stream, grammar, timeout=5.0):
    return NoteStreamConsumer(store, open_stream, grammar=grammar, timeout_seconds=timeout)


class TestConsumeCompletion:
    """Normal completion of a stream."""

    @pytest.mark.asyncio
    async def test_sections_reflect_final_buffer(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(
            ["DEVELOPER: Fixed null", " check\nMARKE", "TING: More reliable sign-in"]
        )
        consumer = _consumer(store, opener(stream), grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.COMPLETED
        assert record.is_generating is False
        assert record.error is None
        assert record.dev_note == "Fixed null check"
        assert record.marketing_note == "More reliable sign-in"
        assert record.raw_text == "DEVELOPER: Fixed null check\nMARKETING: More reliable sign-in"
        assert record.started_at is not None
        assert record.finished_at is not None
        assert stream.release_count == 1
        assert consumer.is_active("42") is False

    @pytest.mark.asyncio
    async def test_publishes_after_every_chunk(
        self, store, grammar, make_stream, opener, request_42
    ):
        chunks = ["DEVELOPER: a", "b", "\nMARKETING: c"]
        consumer = _consumer(store, opener(make_stream(chunks)), grammar)
        published = []
        store.subscribe(
            lambda _id, record: published.append(
                (record.raw_text, record.dev_note, record.status)
            )
            if record.raw_text
            else None
        )

        await consumer.consume(request_42)

        streamed = [p for p in published if p[2] is GenerationStatus.STREAMING]
        assert [raw for raw, _, _ in streamed] == [
            "DEVELOPER: a",
            "DEVELOPER: ab",
            "DEVELOPER: ab\nMARKETING: c",
        ]
        assert [dev for _, dev, _ in streamed] == ["a", "ab", "ab"]
        assert published[-1][2] is GenerationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_status_streaming_while_pulling(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: x"], gated=True)
        consumer = _consumer(store, opener(stream), grammar)

        task = asyncio.create_task(consumer.consume(request_42))
        await asyncio.sleep(0.01)

        assert store.get("42").status is GenerationStatus.STREAMING
        assert store.get("42").is_generating is True
        assert consumer.active_ids == ["42"]

        stream.gates[0].set()
        record = await task
        assert record.status is GenerationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_bytes_split_inside_multibyte_character(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream([b"DEVELOPER: caf\xc3", b"\xa9 fixed\nMARKETING: ok"])
        consumer = _consumer(store, opener(stream), grammar)

        record = await consumer.consume(request_42)

        assert record.dev_note == "café fixed"
        assert record.marketing_note == "ok"

    @pytest.mark.asyncio
    async def test_empty_chunks_publish_nothing(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["", "DEVELOPER: x", b""])
        consumer = _consumer(store, opener(stream), grammar)
        raw_texts = []
        store.subscribe(lambda _id, record: raw_texts.append(record.raw_text))

        await consumer.consume(request_42)

        assert [t for t in raw_texts if t] == ["DEVELOPER: x", "DEVELOPER: x"]

    @pytest.mark.asyncio
    async def test_new_generation_resets_previous_notes(
        self, store, grammar, make_stream, opener, request_42
    ):
        store.update("42", {"sections": {"DEVELOPER": "old"}, "raw_text": "DEVELOPER: old"})
        consumer = _consumer(store, opener(make_stream(["MARKETING: new"])), grammar)

        record = await consumer.consume(request_42)

        assert record.dev_note == ""
        assert record.marketing_note == "new"
        assert record.raw_text == "MARKETING: new"

    @pytest.mark.asyncio
    async def test_completion_without_markers_is_logged(
        self, store, grammar, make_stream, opener, request_42, caplog
    ):
        consumer = _consumer(store, opener(make_stream(["I cannot help with that."])), grammar)

        with caplog.at_level(logging.WARNING, logger="relnotes.notes.consumer"):
            record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.COMPLETED
        assert record.sections == grammar.empty_sections()
        assert "without any section marker" in caplog.text


class TestConsumeTimeout:
    """The wall-clock timeout stops a stream that never finishes."""

    @pytest.mark.asyncio
    async def test_hanging_stream_times_out(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: partial"], hang=True)
        consumer = _consumer(store, opener(stream), grammar, timeout=0.05)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.is_generating is False
        assert record.error_type == "TimeoutError"
        assert "timed out after 0.05s" in record.error
        assert record.dev_note == "partial"  # partial notes stay visible
        assert stream.release_count == 1

    @pytest.mark.asyncio
    async def test_no_updates_after_timeout(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: a", " late"], gated=True)
        consumer = _consumer(store, opener(stream), grammar, timeout=0.05)
        updates = []
        store.subscribe(lambda _id, record: updates.append(record))

        stream.gates[0].set()
        record = await consumer.consume(request_42)
        count = len(updates)

        stream.gates[1].set()
        await asyncio.sleep(0.05)

        assert record.error_type == "TimeoutError"
        assert len(updates) == count
        assert store.get("42").raw_text == "DEVELOPER: a"
        assert stream.pulled == 1

    @pytest.mark.asyncio
    async def test_timeout_covers_stream_opening(self, store, grammar, request_42):
        async def slow_open(request):
            await asyncio.sleep(10)

        consumer = _consumer(store, slow_open, grammar, timeout=0.05)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.error_type == "TimeoutError"

    @pytest.mark.asyncio
    async def test_timeout_defaults_to_settings(self, store, grammar, mock_settings):
        consumer = NoteStreamConsumer(store, lambda request: None, grammar=grammar)
        assert consumer._timeout_seconds == mock_settings.generation_timeout_seconds


class TestConsumeCancellation:
    """Explicit cancel and cancellation of the awaiting task."""

    @pytest.mark.asyncio
    async def test_cancel_before_second_chunk(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: one", " two", " three"], gated=True)
        consumer = _consumer(store, opener(stream), grammar)
        first_published = asyncio.Event()
        store.subscribe(lambda _id, record: first_published.set() if record.raw_text else None)

        task = asyncio.create_task(consumer.consume(request_42))
        stream.gates[0].set()
        await asyncio.wait_for(first_published.wait(), timeout=1)

        assert consumer.cancel("42") is True
        record = await task

        assert record.status is GenerationStatus.CANCELLED
        assert record.error is None
        assert record.raw_text == "DEVELOPER: one"
        assert stream.pulled == 1
        assert stream.release_count == 1

        stream.gates[1].set()
        await asyncio.sleep(0.01)
        assert store.get("42").raw_text == "DEVELOPER: one"

    @pytest.mark.asyncio
    async def test_chunk_received_after_cancel_is_discarded(
        self, store, grammar, make_stream, opener, request_42
    ):
        consumer = None

        class CancelInFlight(make_stream):
            async def __anext__(self):
                chunk = await super().__anext__()
                if self.pulled == 2:
                    consumer.cancel("42")
                return chunk

        stream = CancelInFlight(["DEVELOPER: one", " two", " three"])
        consumer = _consumer(store, opener(stream), grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.CANCELLED
        assert record.raw_text == "DEVELOPER: one"
        assert stream.release_count == 1

    @pytest.mark.asyncio
    async def test_cancel_unknown_item(self, store, grammar, opener, make_stream):
        consumer = _consumer(store, opener(make_stream([])), grammar)
        assert consumer.cancel("missing") is False

    @pytest.mark.asyncio
    async def test_cancelling_caller_task_propagates(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: x"], gated=True)
        open_stream = opener(stream)
        consumer = _consumer(store, open_stream, grammar)

        task = asyncio.create_task(consumer.consume(request_42))
        await asyncio.sleep(0.01)
        assert open_stream.calls

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        record = store.get("42")
        assert record.status is GenerationStatus.CANCELLED
        assert stream.release_count == 1
        assert consumer.is_active("42") is False


class TestConsumeConcurrency:
    """At most one session per item id."""

    @pytest.mark.asyncio
    async def test_second_request_for_same_item_is_ignored(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: x"], gated=True)
        open_stream = opener(stream)
        consumer = _consumer(store, open_stream, grammar)

        first = asyncio.create_task(consumer.consume(request_42))
        await asyncio.sleep(0.01)

        assert await consumer.consume(request_42) is None
        assert len(open_stream.calls) == 1

        stream.gates[0].set()
        record = await first
        assert record.status is GenerationStatus.COMPLETED
        assert record.dev_note == "x"

    @pytest.mark.asyncio
    async def test_different_items_stream_concurrently(
        self, store, grammar, make_stream, request_42
    ):
        streams = {
            "42": make_stream(["DEVELOPER: forty-two"]),
            "43": make_stream(["DEVELOPER: forty-three"]),
        }

        async def open_stream(request):
            return streams[request.item_id]

        consumer = _consumer(store, open_stream, grammar)
        other = request_42.model_copy(update={"item_id": "43"})

        records = await asyncio.gather(consumer.consume(request_42), consumer.consume(other))

        assert [r.dev_note for r in records] == ["forty-two", "forty-three"]

    @pytest.mark.asyncio
    async def test_item_can_be_regenerated_after_completion(
        self, store, grammar, make_stream, request_42
    ):
        streams = [make_stream(["DEVELOPER: first"]), make_stream(["DEVELOPER: second"])]

        async def open_stream(request):
            return streams.pop(0)

        consumer = _consumer(store, open_stream, grammar)

        await consumer.consume(request_42)
        record = await consumer.consume(request_42)

        assert record.dev_note == "second"
        assert record.raw_text == "DEVELOPER: second"


class TestConsumeErrors:
    """Stream failures end up on the record, never raised."""

    @pytest.mark.asyncio
    async def test_protocol_error_before_streaming(self, store, grammar, request_42):
        async def open_stream(request):
            raise ProtocolError("HTTP error! status: 500", status_code=500)

        consumer = _consumer(store, open_stream, grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.error == "HTTP error! status: 500"
        assert record.error_type == "ProtocolError"

    @pytest.mark.asyncio
    async def test_network_error_mid_stream_keeps_partial_notes(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(
            ["DEVELOPER: one\n", "MARKETING: two"],
            error=NetworkError("connection reset"),
            error_at=1,
        )
        consumer = _consumer(store, opener(stream), grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.error == "connection reset"
        assert record.error_type == "NetworkError"
        assert record.dev_note == "one"
        assert stream.release_count == 1

    @pytest.mark.asyncio
    async def test_non_iterable_source_is_unsupported(self, store, grammar, opener, request_42):
        consumer = _consumer(store, opener(["DEVELOPER: x"]), grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.error_type == "StreamUnsupported"
        assert "list" in record.error

    @pytest.mark.asyncio
    async def test_unexpected_error_reported_as_network_error(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: x"], error=RuntimeError("socket went away"))
        consumer = _consumer(store, opener(stream), grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.error_type == "NetworkError"
        assert record.error == "RuntimeError: socket went away"
        assert stream.release_count == 1

    @pytest.mark.asyncio
    async def test_release_failure_does_not_mask_result(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: x"])

        async def broken_close():
            raise OSError("already closed")

        stream.aclose = broken_close
        consumer = _consumer(store, opener(stream), grammar)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.COMPLETED
        assert record.dev_note == "x"

    @pytest.mark.asyncio
    async def test_session_slot_freed_after_failure(self, store, grammar, request_42):
        async def open_stream(request):
            raise NetworkError("down")

        consumer = _consumer(store, open_stream, grammar)

        await consumer.consume(request_42)

        assert consumer.is_active("42") is False
        assert (await consumer.consume(request_42)).error == "down"


class TestStreamRelease:
    """A cancel or timeout arriving during open or release never skips the release."""

    @pytest.mark.asyncio
    async def test_cancel_during_slow_release(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream(["DEVELOPER: done"], close_delay=0.05)
        consumer = _consumer(store, opener(stream), grammar)

        task = asyncio.create_task(consumer.consume(request_42))
        await asyncio.wait_for(stream.release_started.wait(), timeout=1)
        assert consumer.cancel("42") is True

        record = await task

        assert record.status is GenerationStatus.CANCELLED
        assert stream.release_count == 1
        assert stream.released is True

    @pytest.mark.asyncio
    async def test_timeout_during_slow_release(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream([], close_delay=0.2)
        consumer = _consumer(store, opener(stream), grammar, timeout=0.05)

        record = await consumer.consume(request_42)

        assert record.status is GenerationStatus.FAILED
        assert record.error_type == "TimeoutError"
        assert stream.release_count == 1
        assert stream.released is True

    @pytest.mark.asyncio
    async def test_caller_cancelled_during_slow_release(
        self, store, grammar, make_stream, opener, request_42
    ):
        stream = make_stream([], close_delay=0.05)
        consumer = _consumer(store, opener(stream), grammar)

        task = asyncio.create_task(consumer.consume(request_42))
        await asyncio.wait_for(stream.release_started.wait(), timeout=1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.get("42").status is GenerationStatus.CANCELLED
        assert stream.release_count == 1
        assert stream.released is True

    @pytest.mark.asyncio
    async def test_cancel_while_opening(self, store, grammar, request_42):
        opened = asyncio.Event()

        async def slow_open(request):
            opened.set()
            await asyncio.sleep(10)

        consumer = _consumer(store, slow_open, grammar)

        task = asyncio.create_task(consumer.consume(request_42))
        await asyncio.wait_for(opened.wait(), timeout=1)
        consumer.cancel("42")
        record = await task

        assert record.status is GenerationStatus.CANCELLED
        assert consumer.is_active("42") is False
