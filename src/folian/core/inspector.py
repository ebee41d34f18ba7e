# ABOUTME: Read-only checks on EPUB files: structural validation, content statistics, comparison.
# ABOUTME: Validation also loads the package with ebooklib to catch problems readers would hit.

import logging
import zipfile
from dataclasses import asdict, dataclass, field
from pathlib import Path, PurePosixPath

from ebooklib import epub

from folian.formats.archive import MIMETYPE_CONTENT, MIMETYPE_NAME

logger = logging.getLogger(__name__)

CONTAINER_ENTRY = "META-INF/container.xml"

DOCUMENT_EXTENSIONS = frozenset({".html", ".xhtml"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
STYLE_EXTENSIONS = frozenset({".css"})
FONT_EXTENSIONS = frozenset({".ttf", ".otf", ".woff", ".woff2"})

# Documents whose names contain these are front matter or navigation, not reading content.
NON_CONTENT_NAME_PARTS = ("nav", "toc", "title", "cover")

MANY_CONTENT_FILES = 50
MANY_STYLESHEETS = 3


class InspectError(Exception):
    """Raised when a file cannot be opened as a zip container."""


@dataclass
class ValidationResult:
    """Outcome of validate_epub. Errors make a file invalid; warnings do not."""

    path: Path
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_epub(path: Path) -> ValidationResult:
    """Check that path is a structurally usable EPUB.

    Args:
        path: The file to check.

    Returns:
        ValidationResult listing every problem found.
    """
    result = ValidationResult(path=path)
    if not path.is_file():
        result.errors.append(f"File not found: {path}")
        return result

    try:
        with zipfile.ZipFile(path) as archive:
            infos = archive.infolist()
            names = [info.filename for info in infos]

            if MIMETYPE_NAME not in names:
                result.warnings.append("Missing mimetype file")
            else:
                first = infos[0]
                if first.filename != MIMETYPE_NAME:
                    result.warnings.append("mimetype is not the first entry")
                if archive.getinfo(MIMETYPE_NAME).compress_type != zipfile.ZIP_STORED:
                    result.warnings.append("mimetype entry is compressed")
                if archive.read(MIMETYPE_NAME).strip() != MIMETYPE_CONTENT:
                    result.warnings.append("mimetype content is not application/epub+zip")

            if CONTAINER_ENTRY not in names:
                result.errors.append(f"Missing required {CONTAINER_ENTRY}")
            if not any(name.lower().endswith(".opf") for name in names):
                result.errors.append("Missing required OPF file")
    except (zipfile.BadZipFile, OSError) as exc:
        result.errors.append(f"Not a valid ZIP archive: {exc}")
        return result

    if result.valid:
        try:
            epub.read_epub(str(path), options={"ignore_ncx": True})
        except Exception as exc:
            result.errors.append(f"Failed to load package: {exc}")

    logger.debug("Validated %s: %d errors, %d warnings", path, len(result.errors), len(result.warnings))
    return result


@dataclass
class EpubStats:
    """File counts and size for one EPUB, by role."""

    path: Path
    content_files: int = 0
    image_files: int = 0
    css_files: int = 0
    font_files: int = 0
    total_size: int = 0

    @property
    def total_size_mb(self) -> float:
        return self.total_size / (1024 * 1024)

    @property
    def recommendations(self) -> list[str]:
        notes = []
        if self.content_files > MANY_CONTENT_FILES:
            notes.append(
                f"{self.content_files} content files detected. Enhanced processing will "
                "consolidate these into meaningful chapters."
            )
        if self.css_files > MANY_STYLESHEETS:
            notes.append(
                f"{self.css_files} CSS files detected. Processing will replace these with "
                "a single stylesheet."
            )
        if self.font_files == 0:
            notes.append("No fonts detected. Processing will add the Jura font.")
        return notes

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["path"] = str(self.path)
        data["recommendations"] = self.recommendations
        return data


def _is_content_document(name: str) -> bool:
    lowered = name.lower()
    return not any(part in lowered for part in NON_CONTENT_NAME_PARTS)


def analyze_epub(path: Path) -> EpubStats:
    """Count the entries of an EPUB archive by role.

    Raises:
        InspectError: If the file is not a readable zip archive.
    """
    stats = EpubStats(path=path)
    try:
        with zipfile.ZipFile(path) as archive:
            infos = archive.infolist()
    except (zipfile.BadZipFile, OSError) as exc:
        raise InspectError(f"Failed to open EPUB: {path}: {exc}") from exc

    for info in infos:
        stats.total_size += info.file_size
        name = info.filename
        extension = PurePosixPath(name).suffix.lower()
        if extension in DOCUMENT_EXTENSIONS:
            if _is_content_document(name):
                stats.content_files += 1
        elif extension in IMAGE_EXTENSIONS:
            stats.image_files += 1
        elif extension in STYLE_EXTENSIONS:
            stats.css_files += 1
        elif extension in FONT_EXTENSIONS:
            stats.font_files += 1
    return stats


@dataclass
class EpubComparison:
    """Stats of an original and a processed EPUB side by side."""

    original: EpubStats
    enhanced: EpubStats

    @property
    def deltas(self) -> dict[str, int]:
        """enhanced minus original for each counted field."""
        return {
            name: getattr(self.enhanced, name) - getattr(self.original, name)
            for name in ("content_files", "image_files", "css_files", "font_files", "total_size")
        }


def compare_epubs(original: Path, enhanced: Path) -> EpubComparison:
    """Analyze two EPUBs for side-by-side display.

    Raises:
        InspectError: If either file is not a readable zip archive.
    """
    return EpubComparison(original=analyze_epub(original), enhanced=analyze_epub(enhanced))
