"""Contributor enrichment of note records.

Runs independently of note generation: a failed or slow enrichment never
blocks or alters the parsed sections.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from relnotes.exceptions import EnrichmentError
from relnotes.notes.state import Contributor, NoteRecord, NoteStore

logger = logging.getLogger(__name__)

ContributorFetcher = Callable[[str, str, str], Awaitable[list[Contributor]]]


async def enrich_note(
    store: NoteStore,
    item_id: str,
    owner: str,
    repo: str,
    fetcher: ContributorFetcher,
) -> NoteRecord:
    """Merge contributors into the note record for ``item_id``.

    Does nothing when the record already has contributors. Any failure
    other than cancellation is logged and the record is returned unchanged,
    so enrichment never affects note generation.

    Args:
        store: Note store holding the record.
        item_id: Pull request id (or URL).
        owner: Repository owner.
        repo: Repository name.
        fetcher: Async callable ``(item_id, owner, repo) -> contributors``,
            e.g. ``GitHubContributorsClient.fetch_contributors``.
    """
    record = store.get(item_id)
    if record.contributors:
        logger.debug("Contributors already present for %s, skipping fetch", item_id)
        return record

    try:
        contributors = await fetcher(item_id, owner, repo)
    except EnrichmentError as e:
        logger.warning(
            "Contributor enrichment failed for %s/%s#%s: %s (correlation_id=%s)",
            owner,
            repo,
            item_id,
            e,
            e.correlation_id,
        )
        return store.get(item_id)
    except Exception:
        logger.exception(
            "Unexpected contributor enrichment failure for %s/%s#%s", owner, repo, item_id
        )
        return store.get(item_id)

    if not contributors:
        return store.get(item_id)
    return store.update(item_id, {"contributors": contributors})
