# ABOUTME: The `folian inspect` command for viewing how Folian reads an EPUB.
# ABOUTME: Shows the parsed metadata, manifest and spine sizes, cover, and content documents.

import tempfile
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from folian.book.classifier import classify
from folian.cli.options import epub_path
from folian.formats.archive import ArchiveError, extract_archive
from folian.formats.opf import ParseError, parse_book

console = Console()


@click.command()
@click.argument("path", type=epub_path)
def inspect(path: Path) -> None:
    """Show the book model Folian builds from an EPUB."""
    with tempfile.TemporaryDirectory(prefix="folian-") as tmp:
        try:
            book = parse_book(extract_archive(path, Path(tmp)))
        except (ArchiveError, ParseError) as exc:
            console.print(f"[red]Error:[/red] {escape(str(exc))}")
            raise SystemExit(1) from exc
        classification = classify(book)

    meta = book.metadata
    table = Table(title=str(path.name), show_header=False, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Title", escape(meta.title) or "[dim]unknown[/dim]")
    table.add_row("Author", escape(meta.creator) or "[dim]unknown[/dim]")
    table.add_row("Language", meta.language or "[dim]unknown[/dim]")
    table.add_row("Publisher", escape(meta.publisher) or "[dim]unknown[/dim]")
    table.add_row("Identifier", escape(meta.identifier) or "[dim]none[/dim]")
    table.add_row("Manifest items", str(len(book.manifest)))
    table.add_row("Spine entries", str(len(book.spine)))
    table.add_row("Content documents", str(len(classification.documents)))
    table.add_row("Images", str(len(classification.images)))
    table.add_row("Stylesheets", str(len(classification.stylesheets)))
    table.add_row("Fonts", str(len(classification.fonts)))
    table.add_row("Cover", escape(book.cover_image) if book.cover_image else "[dim]none[/dim]")
    console.print(table)

    if classification.documents:
        documents = Table(title="Content documents")
        documents.add_column("#", style="dim", justify="right")
        documents.add_column("ID")
        documents.add_column("Href")
        for number, item in enumerate(classification.documents, start=1):
            documents.add_row(str(number), escape(item.id), escape(item.href))
        console.print(documents)
