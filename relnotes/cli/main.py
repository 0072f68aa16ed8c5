"""CLI entry point.

Provides the main CLI application with commands for:
- parse: Split a saved model response into sections
- generate: Stream release notes for a diff, rendering sections live
- contributors: List the contributors of a pull request
"""

# Configure logging early before other imports
import relnotes.logging_config  # noqa: F401

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from relnotes.exceptions import ConfigurationError, EnrichmentError
from relnotes.notes.grammar import SectionGrammar
from relnotes.notes.request import GenerationRequest
from relnotes.notes.state import Contributor, GenerationStatus, NoteRecord

app = typer.Typer(
    name="relnotes",
    help="Live, dual-tone release notes for pull request diffs",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def _sections_table(sections: dict[str, str], title: str = "Sections") -> Table:
    table = Table(title=title, show_header=True, expand=True)
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Content")
    for tag, content in sections.items():
        table.add_row(tag, content or "[dim]-[/dim]")
    return table


def _contributors_table(contributors: list[Contributor]) -> Table:
    table = Table(title=f"Contributors ({len(contributors)})", show_header=True)
    table.add_column("Login", style="cyan")
    table.add_column("Name")
    table.add_column("Role")
    for contributor in contributors:
        table.add_row(contributor.login, contributor.name, contributor.role)
    return table


def _render_record(record: NoteRecord) -> Group:
    status_style = {
        GenerationStatus.STREAMING: "yellow",
        GenerationStatus.COMPLETED: "green",
        GenerationStatus.FAILED: "red",
        GenerationStatus.CANCELLED: "magenta",
    }.get(record.status, "dim")

    parts: list = [
        _sections_table(record.sections, title=f"PR #{record.item_id}"),
        f"[{status_style}]Status: {record.status.value}[/{status_style}]",
    ]
    if record.error:
        parts.append(Panel(f"[red]Error: {record.error}[/red]", border_style="red"))
    if record.contributors:
        parts.append(_contributors_table(record.contributors))
    return Group(*parts)


@app.command()
def parse(
    path: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, help="File holding a raw model response"),
    ],
) -> None:
    """Split a saved model response into its sections."""
    from relnotes.notes.parser import parse_sections

    text = path.read_text(encoding="utf-8")
    sections = parse_sections(text, SectionGrammar.from_settings())
    console.print(_sections_table(sections, title=path.name))


@app.command()
def generate(
    diff_file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, help="Unified diff to describe"),
    ],
    item_id: Annotated[
        str,
        typer.Option("--id", "-i", help="Pull request number or URL"),
    ],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="PR title or description"),
    ] = "",
    owner: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--owner", help="Repository owner"),
    ] = None,
    repo: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--repo", help="Repository name"),
    ] = None,
    endpoint: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--endpoint", "-e", help="Remote generate-notes service (default: call the LLM)"),
    ] = None,
    timeout: Annotated[
        Optional[float],  # noqa: UP007
        typer.Option("--timeout", "-t", help="Generation timeout in seconds"),
    ] = None,
    contributors: Annotated[
        bool,
        typer.Option("--contributors", "-c", help="Also fetch PR contributors from GitHub"),
    ] = False,
) -> None:
    """Stream release notes for a diff, rendering sections as they arrive."""
    request = GenerationRequest(
        item_id=item_id,
        diff=diff_file.read_text(encoding="utf-8"),
        description=description,
        owner=owner,
        repo=repo,
    )
    try:
        record = asyncio.run(_run_generation(request, endpoint, timeout, contributors))
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    if record is None or record.status is GenerationStatus.FAILED:
        raise typer.Exit(code=1)


async def _run_generation(
    request: GenerationRequest,
    endpoint: str | None,
    timeout: float | None,
    with_contributors: bool,
) -> NoteRecord | None:
    """Run one generation with a live view of the note record."""
    from relnotes.enrichment import GitHubContributorsClient, enrich_note
    from relnotes.notes.consumer import NoteStreamConsumer
    from relnotes.notes.state import NoteStore
    from relnotes.settings import get_settings
    from relnotes.sources.http import HTTPNoteSource
    from relnotes.sources.llm import LLMNoteSource

    settings = get_settings()
    grammar = SectionGrammar.from_settings(settings)
    store = NoteStore()

    endpoint = endpoint or settings.notes_api_url
    if endpoint:
        source = HTTPNoteSource(endpoint)
        open_stream = source.open_stream
    else:
        source = None
        open_stream = LLMNoteSource(grammar=grammar).open_stream

    consumer = NoteStreamConsumer(store, open_stream, grammar=grammar, timeout_seconds=timeout)
    github = GitHubContributorsClient() if with_contributors else None

    with Live(_render_record(store.get(request.item_id)), console=console, refresh_per_second=8) as live:
        unsubscribe = store.subscribe(lambda _id, record: live.update(_render_record(record)))
        try:
            jobs = [consumer.consume(request)]
            if github is not None:
                jobs.append(
                    enrich_note(
                        store,
                        request.item_id,
                        request.owner or settings.github_owner,
                        request.repo or settings.github_repo,
                        github.fetch_contributors,
                    )
                )
            results = await asyncio.gather(*jobs)
        finally:
            unsubscribe()
            if source is not None:
                await source.close()
            if github is not None:
                await github.close()

    return results[0]


@app.command("contributors")
def contributors_command(
    pr: Annotated[str, typer.Argument(help="Pull request number or URL")],
    owner: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--owner", help="Repository owner (default: GITHUB_OWNER)"),
    ] = None,
    repo: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--repo", help="Repository name (default: GITHUB_REPO)"),
    ] = None,
) -> None:
    """List the author, reviewers and committers of a pull request."""
    from relnotes.settings import get_settings

    settings = get_settings()
    try:
        found = asyncio.run(
            _fetch_contributors(pr, owner or settings.github_owner, repo or settings.github_repo)
        )
    except EnrichmentError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    if not found:
        console.print("[yellow]No contributors found.[/yellow]")
        return
    console.print(_contributors_table(found))


async def _fetch_contributors(pr: str, owner: str, repo: str) -> list[Contributor]:
    from relnotes.enrichment import GitHubContributorsClient

    client = GitHubContributorsClient()
    try:
        return await client.fetch_contributors(pr, owner, repo)
    finally:
        await client.close()


@app.command()
def version() -> None:
    """Show the relnotes version."""
    from relnotes import __version__

    console.print(f"relnotes {__version__}")


if __name__ == "__main__":
    app()
