"""CLI application setup using Typer.

Provides the command-line interface for relnotes.
"""

from relnotes.cli.main import app

__all__ = ["app"]
