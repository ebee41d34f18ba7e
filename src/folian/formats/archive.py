# ABOUTME: Zip container I/O for EPUB packages: safe extraction and ordered serialization.
# ABOUTME: Enforces path containment and per-entry size caps; writes mimetype first, stored.

import logging
import os
import shutil
import zipfile
from pathlib import Path

from folian.config import DEFAULT_MAX_ENTRY_SIZE

logger = logging.getLogger(__name__)

MIMETYPE_NAME = "mimetype"
MIMETYPE_CONTENT = b"application/epub+zip"

_CHUNK_SIZE = 64 * 1024


class ArchiveError(Exception):
    """Raised when an archive cannot be read or written."""


class PathTraversalError(ArchiveError):
    """Raised when an archive entry would extract outside the destination directory."""


class EntrySizeError(ArchiveError):
    """Raised when an archive entry exceeds the per-entry size cap."""


def _safe_target(dest_dir: Path, name: str) -> Path:
    """Resolve an entry name under dest_dir, rejecting anything that escapes it."""
    target = (dest_dir / name).resolve()
    if not target.is_relative_to(dest_dir):
        raise PathTraversalError(f"Invalid file path (path traversal): {name}")
    return target


def _extract_member(
    archive: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path, max_size: int
) -> None:
    """Stream one entry to disk. The file only appears under its final name on success."""
    if info.file_size > max_size:
        raise EntrySizeError(
            f"Entry {info.filename} is {info.file_size} bytes (limit {max_size})"
        )

    partial = target.with_name(target.name + ".part")
    written = 0
    try:
        with archive.open(info) as src, partial.open("wb") as dst:
            while chunk := src.read(_CHUNK_SIZE):
                written += len(chunk)
                # The header size can lie, so count what actually decompresses.
                if written > max_size:
                    raise EntrySizeError(
                        f"Entry {info.filename} exceeds the {max_size} byte limit"
                    )
                dst.write(chunk)
        partial.replace(target)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise


def extract_archive(
    archive_path: Path, dest_dir: Path, *, max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE
) -> Path:
    """Extract every entry of a zip container into dest_dir.

    Args:
        archive_path: Source .epub (or any zip) file.
        dest_dir: Directory to extract into. Created if missing.
        max_entry_size: Maximum uncompressed size of a single entry, in bytes.

    Returns:
        The resolved destination directory.

    Raises:
        ArchiveError: If the archive cannot be opened or an entry cannot be written.
        PathTraversalError: If any entry would land outside dest_dir.
        EntrySizeError: If any entry exceeds max_entry_size.
    """
    if not archive_path.exists():
        raise ArchiveError(f"File not found: {archive_path}")

    dest_dir.mkdir(parents=True, exist_ok=True)
    dest_dir = dest_dir.resolve()

    try:
        archive = zipfile.ZipFile(archive_path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveError(f"Failed to open archive: {archive_path}: {exc}") from exc

    with archive:
        for info in archive.infolist():
            target = _safe_target(dest_dir, info.filename)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            if target == dest_dir:
                # "" or "." would overwrite the destination directory itself.
                raise PathTraversalError(
                    f"Invalid file path (names the destination): {info.filename!r}"
                )
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                _extract_member(archive, info, target, max_entry_size)
            except (zipfile.BadZipFile, OSError) as exc:
                raise ArchiveError(f"Failed to extract {info.filename}: {exc}") from exc

    logger.debug("Extracted %s into %s", archive_path, dest_dir)
    return dest_dir


def _entry_sort_key(rel_path: str) -> tuple[int, str]:
    """META-INF goes right after the mimetype, then everything else alphabetically."""
    return (0 if rel_path.startswith("META-INF/") else 1, rel_path)


def _collect_entries(content_dir: Path) -> list[tuple[str, Path]]:
    entries = []
    for path in content_dir.rglob("*"):
        if not path.is_file():
            continue
        rel_path = path.relative_to(content_dir).as_posix()
        if rel_path == MIMETYPE_NAME:
            continue
        entries.append((rel_path, path))
    return sorted(entries, key=lambda entry: _entry_sort_key(entry[0]))


def write_epub_archive(content_dir: Path, output_path: Path) -> Path:
    """Serialize a restructured directory tree into an EPUB archive.

    The mimetype entry is always written first and stored uncompressed with the
    fixed literal content; every other file is deflated. The archive is built in a
    temporary sibling file and moved into place only after it is complete, so a
    failure never leaves a truncated file under output_path.

    Args:
        content_dir: Root of the tree to archive.
        output_path: Final location of the .epub file.

    Returns:
        output_path.

    Raises:
        ArchiveError: If any file cannot be read or the archive cannot be written.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = output_path.with_name(f".{output_path.name}.tmp")

    try:
        with zipfile.ZipFile(tmp_path, "w") as dst:
            dst.writestr(MIMETYPE_NAME, MIMETYPE_CONTENT, compress_type=zipfile.ZIP_STORED)
            for rel_path, path in _collect_entries(content_dir):
                info = zipfile.ZipInfo.from_file(path, arcname=rel_path)
                info.compress_type = zipfile.ZIP_DEFLATED
                with path.open("rb") as src, dst.open(info, "w") as out:
                    shutil.copyfileobj(src, out, _CHUNK_SIZE)
        os.replace(tmp_path, output_path)
    except (OSError, zipfile.BadZipFile, ValueError) as exc:
        tmp_path.unlink(missing_ok=True)
        raise ArchiveError(f"Failed to write EPUB: {output_path}: {exc}") from exc

    logger.debug("Wrote %s", output_path)
    return output_path
