"""Section grammar — the ordered tag vocabulary of the note stream.

The model is asked to emit its output as runs of ``<TAG>: content``. The
vocabulary order is the canonical order: a section's content ends at the
marker of its canonical successor, never at whichever tag happens to come
next in the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from relnotes.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relnotes.settings import Settings

DEFAULT_SECTION_TAGS: tuple[str, ...] = (
    "DEVELOPER",
    "MARKETING",
    "FEEDBACK",
    "SECURITY",
    "READABILITY",
    "TESTS",
    "CONTRIBUTORS",
    "CHANGES",
)

MARKER_SUFFIX = ":"

_TAG_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")


@dataclass(frozen=True)
class SectionGrammar:
    """Ordered, validated section tag vocabulary.

    Attributes:
        tags: Section tags in canonical order.
    """

    tags: tuple[str, ...] = DEFAULT_SECTION_TAGS

    def __post_init__(self) -> None:
        tags = tuple(self.tags)
        object.__setattr__(self, "tags", tags)

        if not tags:
            raise ConfigurationError("Section grammar needs at least one tag")
        for tag in tags:
            if not _TAG_RE.match(tag):
                raise ConfigurationError(
                    f"Invalid section tag {tag!r}: use A-Z, 0-9 and _ starting with a letter"
                )
        if len(set(tags)) != len(tags):
            raise ConfigurationError(f"Duplicate section tags in {', '.join(tags)}")

    @classmethod
    def from_tags(cls, tags: Iterable[str]) -> SectionGrammar:
        """Build a grammar from loosely formatted tag names."""
        return cls(tuple(tag.strip().upper() for tag in tags if tag.strip()))

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> SectionGrammar:
        """Build the grammar configured in settings."""
        if settings is None:
            from relnotes.settings import get_settings

            settings = get_settings()
        return cls(settings.section_tags)

    @property
    def first(self) -> str:
        return self.tags[0]

    def marker(self, tag: str) -> str:
        """Literal marker that opens a section, e.g. ``"DEVELOPER:"``."""
        return f"{tag}{MARKER_SUFFIX}"

    def index(self, tag: str) -> int:
        return self.tags.index(tag)

    def successors(self, tag: str) -> tuple[str, ...]:
        """Tags that follow ``tag`` in canonical order, nearest first."""
        return self.tags[self.index(tag) + 1 :]

    def empty_sections(self) -> dict[str, str]:
        """A section map with every tag present and empty."""
        return dict.fromkeys(self.tags, "")

    def __contains__(self, tag: object) -> bool:
        return tag in self.tags

    def __iter__(self):
        return iter(self.tags)

    def __len__(self) -> int:
        return len(self.tags)


DEFAULT_GRAMMAR = SectionGrammar()
