# ABOUTME: The `folian process` command for restructuring a single EPUB.
# ABOUTME: Builds a FolianConfig from the flags and runs the full pipeline.

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from folian.cli.options import epub_path, format_dir_option
from folian.config import FolianConfig
from folian.core.pipeline import PipelineError, default_output_path, process_epub

console = Console()


@click.command("process")
@click.argument("input_path", metavar="INPUT", type=epub_path)
@click.option(
    "-o", "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output EPUB path (default: <input>-fixed.epub).",
)
@format_dir_option
@click.option(
    "--enhanced/--direct",
    default=True,
    help="Merge fragmented documents into chapters, or keep one chapter per document.",
)
@click.option(
    "--min-length",
    type=click.IntRange(min=0),
    default=None,
    help="Documents with less text than this are merged into the previous chapter.",
)
@click.option(
    "--max-length",
    type=click.IntRange(min=1),
    default=None,
    help="Upper bound on the text length of a merged chapter.",
)
@click.option(
    "--chapter-label",
    default=None,
    help='Word used for numbered chapter titles (default: "Chapter").',
)
def process(
    input_path: Path,
    output_path: Path | None,
    format_dir: Path | None,
    enhanced: bool,
    min_length: int | None,
    max_length: int | None,
    chapter_label: str | None,
) -> None:
    """Restructure an EPUB into the canonical Folian layout."""
    overrides: dict[str, object] = {"enhanced": enhanced}
    if format_dir is not None:
        overrides["format_dir"] = format_dir
    if min_length is not None:
        overrides["min_chapter_length"] = min_length
    if max_length is not None:
        overrides["max_chapter_length"] = max_length
    if chapter_label:
        overrides["chapter_label"] = chapter_label
    config = FolianConfig().with_overrides(**overrides)

    output_path = output_path or default_output_path(input_path)
    console.print(f"Processing [bold]{input_path.name}[/bold]")

    try:
        result = process_epub(input_path, output_path, config)
    except PipelineError as exc:
        console.print(f"[red]Error: {exc.stage}: {escape(exc.message)}[/red]")
        raise SystemExit(1) from exc

    if result.warnings:
        console.print(f"\n[yellow]{len(result.warnings)} warning(s):[/yellow]")
        for warning in result.warnings:
            console.print(f"  [dim]-[/dim] {escape(warning)}")

    console.print(
        f"[green]Wrote {result.output_path}[/green] "
        f"({result.document_count} documents -> {result.chapter_count} chapters"
        f"{', with cover' if result.has_cover else ''})"
    )
