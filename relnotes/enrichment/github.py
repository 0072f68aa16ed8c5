"""GitHub contributors client — who authored, reviewed and committed a PR.

Thin async REST client over httpx. Collects the PR author, unique
reviewers and unique commit authors, in that order.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from relnotes.exceptions import EnrichmentError
from relnotes.notes.state import Contributor
from relnotes.settings import get_settings

logger = logging.getLogger(__name__)

_PR_URL_RE = re.compile(r"/pull/(\d+)")


class GitHubClientConfig(BaseModel):
    """Configuration for the GitHub client."""

    api_url: str = Field(default="https://api.github.com", description="GitHub REST API root")
    token: str = Field(default="", description="Token (empty = unauthenticated)")
    timeout: float = Field(default=10.0, description="Request timeout in seconds")


def extract_pr_number(id_or_url: str) -> int | None:
    """PR number from a bare number or a ``.../pull/<n>`` URL."""
    value = str(id_or_url).strip()
    if value.isdigit():
        return int(value)
    match = _PR_URL_RE.search(value)
    if match:
        return int(match.group(1))
    return None


class GitHubContributorsClient:
    """Fetch PR contributors from the GitHub REST API."""

    def __init__(
        self,
        config: GitHubClientConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if config is None:
            settings = get_settings()
            config = GitHubClientConfig(
                api_url=settings.github_api_url,
                token=settings.github_token.get_secret_value(),
                timeout=settings.github_timeout_seconds,
            )
        self.config = config
        self._http_client = client

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Accept": "application/vnd.github+json"}
            if self.config.token:
                headers["Authorization"] = f"Bearer {self.config.token}"
            self._http_client = httpx.AsyncClient(
                base_url=self.config.api_url,
                headers=headers,
                timeout=self.config.timeout,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_contributors(self, item_id: str, owner: str, repo: str) -> list[Contributor]:
        """Author, reviewers and committers of a pull request.

        Raises:
            EnrichmentError: On an unparseable id, HTTP errors or transport failures.
        """
        number = extract_pr_number(item_id)
        if number is None:
            raise EnrichmentError(f"Not a pull request number or URL: {item_id!r}")

        base = f"/repos/{owner}/{repo}/pulls/{number}"
        pr = await self._get_json(base, owner, repo, number)
        reviews = await self._get_json(f"{base}/reviews", owner, repo, number)
        commits = await self._get_json(f"{base}/commits", owner, repo, number)
        if not (
            isinstance(pr, dict) and isinstance(reviews, list) and isinstance(commits, list)
        ):
            raise EnrichmentError(f"Unexpected GitHub API payload for {owner}/{repo}#{number}")

        contributors: list[Contributor] = []
        author = _contributor(pr.get("user"), "Author")
        if author is not None:
            contributors.append(author)

        reviewers: set[str] = set()
        for review in reviews:
            reviewer = _contributor(
                review.get("user") if isinstance(review, dict) else None, "Reviewer"
            )
            if reviewer is not None and reviewer.login not in reviewers:
                reviewers.add(reviewer.login)
                contributors.append(reviewer)

        committers: set[str] = set()
        for commit in commits:
            committer = _contributor(
                commit.get("author") if isinstance(commit, dict) else None, "Committer"
            )
            if committer is not None and committer.login not in committers:
                committers.add(committer.login)
                contributors.append(committer)

        logger.debug(
            "Found %d contributors for %s/%s#%d", len(contributors), owner, repo, number
        )
        return contributors

    async def _get_json(self, path: str, owner: str, repo: str, number: int) -> Any:
        client = self._get_http_client()
        try:
            response = await client.get(path)
        except httpx.TimeoutException as e:
            raise EnrichmentError(f"GitHub API timed out: {path}") from e
        except httpx.TransportError as e:
            raise EnrichmentError(f"GitHub API unreachable: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise EnrichmentError(f"GitHub API request failed: {type(e).__name__}") from e

        status = response.status_code
        if status == 200:
            try:
                return response.json()
            except ValueError as e:
                raise EnrichmentError(
                    f"GitHub API returned invalid JSON for {path}", status_code=status
                ) from e
        if status == 403:
            message = (
                "GitHub API rate limit exceeded. Please try again later or use a GitHub token."
            )
        elif status == 401:
            message = "GitHub API authentication failed. Please check your GitHub token."
        elif status == 404:
            message = f"Repository or PR not found: {owner}/{repo}#{number}"
        else:
            message = f"GitHub API returned HTTP {status} for {path}"
        raise EnrichmentError(message, status_code=status)


def _contributor(user: Any, role: str) -> Contributor | None:
    """Contributor for a GitHub user object, or None if it is malformed."""
    if not isinstance(user, dict) or not isinstance(user.get("login"), str):
        return None
    login = user["login"]
    try:
        return Contributor(
            login=login,
            name=user.get("name") or login,
            role=role,
            avatar_url=user.get("avatar_url") or "",
        )
    except ValidationError:
        logger.debug("Skipping malformed GitHub user %r", login)
        return None
