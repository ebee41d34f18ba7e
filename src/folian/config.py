# ABOUTME: Run configuration for the Folian restructuring pipeline.
# ABOUTME: One frozen FolianConfig is built per invocation and passed to every component.

from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_FORMAT_DIR = Path("format")

# 100 MiB per archive entry
DEFAULT_MAX_ENTRY_SIZE = 100 * 1024 * 1024


@dataclass(frozen=True)
class FolianConfig:
    """Settings shared by the reader, consolidation engine, and structure builder.

    The heuristic thresholds are exposed as fields rather than inline literals so
    callers (and tests) can exercise consolidation behavior exactly at the boundaries.
    """

    format_dir: Path = DEFAULT_FORMAT_DIR
    enhanced: bool = True

    # Consolidation engine
    direct_mode_limit: int = 20
    min_chapter_length: int = 800
    max_chapter_length: int = 15000
    link_density_threshold: float = 10.0
    nav_min_links: int = 5
    navigation_markers: tuple[str, ...] = (
        "table of contents",
        "mục lục",
        "contents",
        "toc",
        "navigation",
    )

    # Title cleanup
    title_prefixes: tuple[str, ...] = ("part", "phần", "section")
    generic_title_words: tuple[str, ...] = ("chapter", "part")
    chapter_label: str = "Chapter"

    # Output package defaults
    default_language: str = "en"
    default_subtitle: str = "A Folian Book"

    # Package reader
    max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE

    def with_overrides(self, **changes: object) -> "FolianConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
