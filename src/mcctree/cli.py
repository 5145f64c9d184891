#!/usr/bin/env python3
"""
mcctree - Manager account hierarchy explorer

A CLI tool for discovering the accounts reachable through Google Ads manager accounts.
"""
import typer
from rich.console import Console

from . import __version__
from .commands import hierarchy, profile

app = typer.Typer(
    help="Manager account hierarchy explorer - discover every Google Ads account reachable through your manager (MCC) accounts.",
    add_completion=True,
    no_args_is_help=True,
)
console = Console()

# Add subcommands
app.add_typer(profile.app, name="profile")
app.add_typer(hierarchy.app, name="hierarchy")


@app.command()
def version():
    """Show the application version and exit."""
    console.print(f"mcctree version: {__version__}")
    raise typer.Exit()


if __name__ == "__main__":
    app()
