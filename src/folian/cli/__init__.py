# ABOUTME: CLI package for Folian, built on Click.
# ABOUTME: Defines the root command group, configures logging, and registers subcommands.

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from folian.cli.commands import analyze_cmd, inspect_cmd, process_cmd, validate_cmd

LOG_FORMAT = "%(message)s"


def setup_logging(debug: bool) -> None:
    """Send log records to stderr through rich. WARNING by default, DEBUG with --debug."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format=LOG_FORMAT,
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(package_name="folian")
@click.option("--debug", is_flag=True, default=False, help="Show debug logging.")
def cli(debug: bool) -> None:
    """Folian - restructure messy EPUB files into a clean, consistent layout."""
    setup_logging(debug)


cli.add_command(process_cmd.process)
cli.add_command(validate_cmd.validate)
cli.add_command(analyze_cmd.analyze)
cli.add_command(analyze_cmd.compare)
cli.add_command(inspect_cmd.inspect)
