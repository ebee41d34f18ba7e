# ABOUTME: Locates asset files declared in the manifest, tolerating wrong or stale hrefs.
# ABOUTME: Tries the declared path, several guessed roots, then a full filename search.

import logging
import posixpath
from pathlib import Path
from urllib.parse import unquote

from folian.book.types import Book

logger = logging.getLogger(__name__)

COVER_FILENAMES = ("cover.jpg", "cover.jpeg", "cover.png")


def _candidate_paths(book: Book, href: str) -> list[Path]:
    rel = unquote(href.split("#", 1)[0])
    base = posixpath.basename(rel)
    package_dir = book.package_dir
    root = book.path
    return [
        package_dir / rel,
        root / rel,
        root / "OEBPS" / rel,
        root / "OEBPS" / "images" / base,
        root / "OEBPS" / "Images" / base,
        package_dir / "images" / base,
        package_dir / "Images" / base,
        root / base,
    ]


def _search_by_name(root: Path, name: str) -> Path | None:
    matches = sorted(path for path in root.rglob("*") if path.name == name and path.is_file())
    if not matches:
        return None
    if len(matches) > 1:
        # Duplicate basenames are ambiguous; the first path in sorted order wins.
        logger.warning(
            "Found %d files named %s, using %s", len(matches), name, matches[0].relative_to(root)
        )
    return matches[0]


def resolve_asset(book: Book, href: str) -> Path | None:
    """Find the file behind a manifest href.

    Returns the first existing candidate that stays inside the extracted tree,
    or None when even the recursive filename search finds nothing.
    """
    root = book.path.resolve()
    for candidate in _candidate_paths(book, href):
        resolved = candidate.resolve()
        if resolved.is_relative_to(root) and resolved.is_file():
            return resolved

    name = posixpath.basename(unquote(href.split("#", 1)[0]))
    if not name:
        return None
    logger.debug("Searching for %s in %s", name, root)
    return _search_by_name(root, name)


def find_cover_on_disk(book: Book) -> str | None:
    """Look for a conventionally named cover file next to the package descriptor."""
    for name in COVER_FILENAMES:
        if (book.package_dir / name).is_file():
            return name
    return None
