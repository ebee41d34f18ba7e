# ABOUTME: The `folian analyze` and `folian compare` commands for EPUB statistics.
# ABOUTME: Counts content documents, images, stylesheets, and fonts per archive.

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from folian.cli.options import epub_path
from folian.core.inspector import InspectError, analyze_epub, compare_epubs

console = Console()

_ROWS = (
    ("Content files", "content_files"),
    ("Images", "image_files"),
    ("CSS files", "css_files"),
    ("Fonts", "font_files"),
)


def _format_delta(delta: int) -> str:
    if delta > 0:
        return f"[green]+{delta}[/green]"
    if delta < 0:
        return f"[yellow]{delta}[/yellow]"
    return "[dim]0[/dim]"


@click.command("analyze")
@click.argument("path", type=epub_path)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the statistics as JSON.")
def analyze(path: Path, as_json: bool) -> None:
    """Show the structure of an EPUB without processing it."""
    try:
        stats = analyze_epub(path)
    except InspectError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    if as_json:
        click.echo(json.dumps(stats.to_dict(), indent=2))
        return

    table = Table(title=str(path.name), show_header=False, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for label, name in _ROWS:
        table.add_row(label, str(getattr(stats, name)))
    table.add_row("Total size", f"{stats.total_size_mb:.2f} MB")
    console.print(table)

    for note in stats.recommendations:
        console.print(f"[cyan]Recommendation:[/cyan] {note}")


@click.command("compare")
@click.argument("original", type=epub_path)
@click.argument("enhanced", type=epub_path)
def compare(original: Path, enhanced: Path) -> None:
    """Compare an original EPUB with its processed version."""
    try:
        comparison = compare_epubs(original, enhanced)
    except InspectError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    table = Table()
    table.add_column("Field", style="bold")
    table.add_column("Original", justify="right")
    table.add_column("Enhanced", justify="right")
    table.add_column("Change", justify="right")

    deltas = comparison.deltas
    for label, name in _ROWS:
        table.add_row(
            label,
            str(getattr(comparison.original, name)),
            str(getattr(comparison.enhanced, name)),
            _format_delta(deltas[name]),
        )
    size_delta = (comparison.enhanced.total_size - comparison.original.total_size) / (1024 * 1024)
    table.add_row(
        "Size (MB)",
        f"{comparison.original.total_size_mb:.2f}",
        f"{comparison.enhanced.total_size_mb:.2f}",
        f"{size_delta:+.2f}",
    )
    console.print(table)
