"""Note streaming core: section grammar, incremental parser, consumer and store.

Provides independently testable components for turning a streamed,
section-tagged model response into live note records.
"""

from relnotes.notes.consumer import NoteStreamConsumer
from relnotes.notes.grammar import DEFAULT_GRAMMAR, DEFAULT_SECTION_TAGS, SectionGrammar
from relnotes.notes.parser import parse_sections
from relnotes.notes.request import GenerationRequest
from relnotes.notes.state import Contributor, GenerationStatus, NoteRecord, NoteStore

__all__ = [
    "DEFAULT_GRAMMAR",
    "DEFAULT_SECTION_TAGS",
    "Contributor",
    "GenerationRequest",
    "GenerationStatus",
    "NoteRecord",
    "NoteStore",
    "NoteStreamConsumer",
    "SectionGrammar",
    "parse_sections",
]
