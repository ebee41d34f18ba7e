# ABOUTME: Shared Click options for Folian CLI commands.
# ABOUTME: Provides the --format-dir decorator and the EPUB path argument type.

from pathlib import Path

import click

from folian.config import DEFAULT_FORMAT_DIR

format_dir_option = click.option(
    "--format-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help=f"Directory holding templates, stylesheet, and font (default: ./{DEFAULT_FORMAT_DIR})",
)

epub_path = click.Path(exists=True, dir_okay=False, path_type=Path)
