"""Prompt builder for dual-tone release note generation.

Turns a GenerationRequest into chat messages that ask the model to answer
in the section-tagged format understood by the parser, one ``TAG:`` line
per configured section, in canonical order.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from relnotes.exceptions import ValidationError
from relnotes.notes.grammar import DEFAULT_GRAMMAR, SectionGrammar

if TYPE_CHECKING:
    from relnotes.notes.request import GenerationRequest

TRUNCATION_SUFFIX = "... [truncated]"

_ISSUE_REF_RE = re.compile(r"#(\d+)")

SECTION_DESCRIPTIONS: dict[str, str] = {
    "DEVELOPER": (
        "Technical, concise, focused on what was changed and why. "
        "Include technical details relevant to developers."
    ),
    "MARKETING": (
        "User-centric, highlights benefits, uses simpler language to explain the impact."
    ),
    "FEEDBACK": "Constructive review feedback on the change.",
    "SECURITY": "Security implications of the change, or 'None evident'.",
    "READABILITY": "Comments on naming, structure and clarity of the changed code.",
    "TESTS": "Tests added or changed, and notable gaps in coverage.",
    "CONTRIBUTORS": "List of potential contributors based on the diff.",
    "CHANGES": (
        "Analysis of the scope and type of changes - feature, bugfix, refactor, etc."
    ),
}

GUIDELINES = """Important guidelines:
- Make each note a single sentence, less than 150 characters if possible
- Be specific about what changed based on the diff content
- Don't hallucinate features not evident in the diff
- If you cannot determine what changed, say so honestly
- Do not include markdown formatting
- Start every section on its own line with its tag exactly as shown"""


def extract_issue_references(description: str) -> list[str]:
    """Issue numbers referenced as ``#123`` in a description, deduplicated in order."""
    seen: dict[str, None] = {}
    for number in _ISSUE_REF_RE.findall(description or ""):
        seen.setdefault(number, None)
    return list(seen)


def truncate_diff(diff: str, limit: int) -> str:
    """Cut ``diff`` to ``limit`` characters, marking the cut."""
    if len(diff) <= limit:
        return diff
    return diff[:limit] + TRUNCATION_SUFFIX


def build_system_prompt(grammar: SectionGrammar = DEFAULT_GRAMMAR) -> str:
    """System prompt describing every configured section and the wire format."""
    descriptions = "\n".join(
        f"{number}. {tag}: {SECTION_DESCRIPTIONS.get(tag, f'Notes about {tag.lower()}.')}"
        for number, tag in enumerate(grammar.tags, start=1)
    )
    format_lines = "\n".join(f"{grammar.marker(tag)} [your {tag.lower()} note here]" for tag in grammar)
    return (
        "You are a dual-tone release note generator with ability to analyze diffs. "
        "For the given Git diff, write the following sections:\n"
        f"{descriptions}\n\n"
        "Format your response as follows:\n"
        f"{format_lines}\n\n"
        f"{GUIDELINES}"
    )


def build_user_prompt(request: GenerationRequest, *, max_diff_chars: int) -> str:
    issues = extract_issue_references(request.description)
    if issues:
        issues_context = "Related issues: " + ", ".join(f"#{issue}" for issue in issues)
    else:
        issues_context = "No related issues found in PR description."

    repository = ""
    if request.owner and request.repo:
        repository = f" in {request.owner}/{request.repo}"

    return (
        f'Generate release notes for this PR #{request.item_id}{repository}: "{request.description}"\n\n'
        f"Context: {issues_context}\n\n"
        f"Diff:\n{truncate_diff(request.diff, max_diff_chars)}"
    )


def build_messages(
    request: GenerationRequest,
    *,
    grammar: SectionGrammar = DEFAULT_GRAMMAR,
    max_diff_chars: int = 50_000,
) -> list[BaseMessage]:
    """Chat messages for one generation request.

    Raises:
        ValidationError: If the request carries no diff.
    """
    if not request.diff.strip():
        raise ValidationError(f"Missing diff content for item {request.item_id}")

    return [
        SystemMessage(content=build_system_prompt(grammar)),
        HumanMessage(content=build_user_prompt(request, max_diff_chars=max_diff_chars)),
    ]
