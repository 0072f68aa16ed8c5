"""Incremental section parser — re-derive every section from the raw buffer.

Pure function over the full text received so far. The consumer calls it
after every appended chunk; no parse state survives between calls, so
parsing the same buffer twice always yields the same map.

A section starts at the first occurrence of its ``TAG:`` marker and runs
to the marker of its canonical successor. If the successor has not been
emitted, the next tag in canonical order is tried, and so on; with no
later marker in sight the section runs to the end of the buffer.

Marker text is not escaped: a later tag's marker appearing verbatim inside
an earlier section's content ends that section early.
"""

from __future__ import annotations

import logging

from relnotes.exceptions import ParseDegraded
from relnotes.notes.grammar import DEFAULT_GRAMMAR, SectionGrammar

logger = logging.getLogger(__name__)


def parse_sections(text: str, grammar: SectionGrammar | None = None) -> dict[str, str]:
    """Split a (possibly partial) note stream into its sections.

    Never raises. Tags whose marker has not appeared yet map to ``""``; a
    buffer with no recognised marker (e.g. a preamble still streaming in)
    maps every tag to ``""``.

    Args:
        text: Full text received so far.
        grammar: Tag vocabulary; defaults to the built-in vocabulary.

    Returns:
        Mapping with one entry per configured tag, in canonical order,
        each value stripped of surrounding whitespace.
    """
    grammar = grammar or DEFAULT_GRAMMAR
    if not text:
        return grammar.empty_sections()

    try:
        return _extract_sections(text, grammar)
    except Exception as exc:
        degraded = ParseDegraded(
            f"Could not split note stream into sections: {exc}",
            buffer_length=len(text),
        )
        logger.warning(
            "%s (correlation_id=%s, buffer_length=%d)",
            degraded,
            degraded.correlation_id,
            degraded.buffer_length,
            exc_info=exc,
        )
        return _degraded_sections(text, grammar)


def _extract_sections(text: str, grammar: SectionGrammar) -> dict[str, str]:
    sections = grammar.empty_sections()
    for tag in grammar.tags:
        marker = grammar.marker(tag)
        start = text.find(marker)
        if start < 0:
            continue
        content_start = start + len(marker)
        content_end = _section_end(text, content_start, tag, grammar)
        sections[tag] = text[content_start:content_end].strip()
    return sections


def _section_end(text: str, content_start: int, tag: str, grammar: SectionGrammar) -> int:
    """Offset where ``tag``'s content stops: its nearest emitted successor marker."""
    for successor in grammar.successors(tag):
        position = text.find(grammar.marker(successor), content_start)
        if position >= 0:
            return position
    return len(text)


def _degraded_sections(text: str, grammar: SectionGrammar) -> dict[str, str]:
    sections = dict.fromkeys(grammar.tags, "")
    if grammar.marker(grammar.first) in text:
        sections[grammar.first] = text.strip()
    return sections


def has_any_marker(text: str, grammar: SectionGrammar | None = None) -> bool:
    """Whether ``text`` contains at least one recognised section marker."""
    grammar = grammar or DEFAULT_GRAMMAR
    return any(grammar.marker(tag) in text for tag in grammar.tags)
