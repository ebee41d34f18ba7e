# ABOUTME: The `folian validate` command for checking an EPUB's structure.
# ABOUTME: Prints errors and warnings; exits non-zero only when errors are found.

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from folian.cli.options import epub_path
from folian.core.inspector import validate_epub

console = Console()


@click.command("validate")
@click.argument("path", type=epub_path)
def validate(path: Path) -> None:
    """Check that an EPUB has the files a reader needs."""
    result = validate_epub(path)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
    for error in result.errors:
        console.print(f"[red]Error:[/red] {escape(error)}")

    if not result.valid:
        console.print(f"\n[red]{path.name} failed validation.[/red]")
        raise SystemExit(1)

    console.print(f"[green]{path.name} passed validation.[/green]")
