"""Note state store — latest parsed sections plus generation status per item.

The store is the single write path for note records: the stream consumer
publishes parsed sections through it, the enrichment service merges
contributors into it, and renderers subscribe to it. It never raises on
writes; invalid partial updates are dropped with a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

NoteListener = Callable[[str, "NoteRecord"], None]


class GenerationStatus(str, Enum):
    """Lifecycle of the generation session attached to a note record."""

    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Contributor(BaseModel):
    """A person involved in the pull request behind a note."""

    login: str
    name: str
    role: Literal["Author", "Reviewer", "Committer"]
    avatar_url: str = ""


class NoteRecord(BaseModel):
    """Externally visible note state for one item (e.g. a pull request).

    Attributes:
        item_id: External item identifier.
        sections: Latest parsed sections, keyed by section tag.
        raw_text: Raw buffer the sections were parsed from.
        status: Generation session state.
        error: Human-readable failure message, set only for failed sessions.
        error_type: Failure class name (NetworkError, ProtocolError, ...).
        started_at: When the current generation session started.
        finished_at: When the current generation session ended.
        contributors: Enrichment payload, fetched separately.
    """

    item_id: str
    sections: dict[str, str] = Field(default_factory=dict)
    raw_text: str = ""
    status: GenerationStatus = GenerationStatus.IDLE
    error: str | None = None
    error_type: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    contributors: list[Contributor] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_status_consistency(self) -> NoteRecord:
        if self.status is GenerationStatus.STREAMING and self.error is not None:
            raise ValueError("a streaming session cannot carry an error")
        if self.status is GenerationStatus.FAILED and not self.error:
            raise ValueError("a failed session needs an error message")
        return self

    @property
    def is_generating(self) -> bool:
        return self.status is GenerationStatus.STREAMING

    @property
    def dev_note(self) -> str:
        return self.sections.get("DEVELOPER", "")

    @property
    def marketing_note(self) -> str:
        return self.sections.get("MARKETING", "")

    def section(self, tag: str) -> str:
        return self.sections.get(tag, "")


# Fields cleared by reset(); contributors survive a new generation cycle.
_SESSION_FIELDS = (
    "sections",
    "raw_text",
    "status",
    "error",
    "error_type",
    "started_at",
    "finished_at",
)


class NoteStore:
    """In-memory note records keyed by item id.

    Usage::

        store = NoteStore()
        unsubscribe = store.subscribe(lambda item_id, record: render(record))
        store.update("42", {"sections": {"DEVELOPER": "Fixed null check"}})
    """

    def __init__(self) -> None:
        self._records: dict[str, NoteRecord] = {}
        self._listeners: list[NoteListener] = []

    def get(self, item_id: str) -> NoteRecord:
        """Return the record for ``item_id``, creating a default one if missing."""
        record = self._records.get(item_id)
        if record is None:
            record = NoteRecord(item_id=item_id)
            self._records[item_id] = record
        return record

    def update(self, item_id: str, partial: Mapping[str, Any]) -> NoteRecord:
        """Merge ``partial`` into the record (last writer wins per field).

        Fields not named in ``partial`` are left alone. A partial with an
        unknown field or a value the record model rejects is dropped as a
        whole and the current record is returned unchanged.
        """
        current = self.get(item_id)

        if not isinstance(partial, Mapping):
            logger.warning(
                "Dropping note update for %s: expected a mapping, got %s",
                item_id,
                type(partial).__name__,
            )
            return current

        unknown = sorted(
            name for name in partial if name not in NoteRecord.model_fields or name == "item_id"
        )
        if unknown:
            logger.warning(
                "Dropping note update for %s: unknown or read-only fields %s",
                item_id,
                ", ".join(unknown),
            )
            return current

        try:
            updated = NoteRecord.model_validate({**current.model_dump(), **partial})
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid note update for %s: %s",
                item_id,
                exc.errors(include_url=False),
            )
            return current

        self._records[item_id] = updated
        self._notify(item_id, updated)
        return updated

    def reset(self, item_id: str) -> NoteRecord:
        """Clear sections and session fields; the record keeps existing."""
        current = self.get(item_id)
        defaults = NoteRecord(item_id=item_id)
        cleared = current.model_copy(
            update={name: getattr(defaults, name) for name in _SESSION_FIELDS}
        )
        self._records[item_id] = cleared
        self._notify(item_id, cleared)
        return cleared

    def subscribe(self, listener: NoteListener) -> Callable[[], None]:
        """Register ``listener`` for every successful write.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def items(self) -> Iterator[tuple[str, NoteRecord]]:
        return iter(list(self._records.items()))

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def _notify(self, item_id: str, record: NoteRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(item_id, record)
            except Exception:
                logger.exception("Note listener failed for %s", item_id)
