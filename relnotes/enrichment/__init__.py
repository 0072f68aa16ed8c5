"""Contributor enrichment for note records."""

from relnotes.enrichment.github import (
    GitHubClientConfig,
    GitHubContributorsClient,
    extract_pr_number,
)
from relnotes.enrichment.service import enrich_note

__all__ = [
    "GitHubClientConfig",
    "GitHubContributorsClient",
    "enrich_note",
    "extract_pr_number",
]
