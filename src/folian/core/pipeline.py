# ABOUTME: End-to-end restructuring pipeline: extract, parse, classify, consolidate, build, package.
# ABOUTME: Any fatal error is reported as a PipelineError naming the stage that failed.

import logging
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from folian.book.classifier import classify, load_documents
from folian.config import FolianConfig
from folian.core.builder import BuildError, StructureBuilder
from folian.core.consolidation import consolidate
from folian.core.templates import TemplateError
from folian.formats.archive import ArchiveError, extract_archive, write_epub_archive
from folian.formats.opf import ParseError, parse_book

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "-fixed"

_FATAL_ERRORS = (ArchiveError, ParseError, TemplateError, BuildError, OSError)


class PipelineError(Exception):
    """A fatal error, tagged with the pipeline stage it happened in."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message


@dataclass
class ProcessResult:
    """Summary of one successful run."""

    output_path: Path
    title: str
    document_count: int
    chapter_count: int
    has_cover: bool
    warnings: list[str] = field(default_factory=list)


def default_output_path(input_path: Path) -> Path:
    """book.epub -> book-fixed.epub, next to the input."""
    return input_path.with_name(f"{input_path.stem}{OUTPUT_SUFFIX}.epub")


@contextmanager
def _stage(name: str) -> Iterator[None]:
    logger.debug("Stage %s", name)
    try:
        yield
    except _FATAL_ERRORS as exc:
        raise PipelineError(name, str(exc)) from exc


def process_epub(
    input_path: Path, output_path: Path | None = None, config: FolianConfig | None = None
) -> ProcessResult:
    """Restructure one EPUB into the canonical layout.

    All intermediate files live in a private temporary directory that is removed
    on every exit path. The output archive only appears once it is complete.

    Args:
        input_path: Source EPUB.
        output_path: Destination EPUB. Defaults to <stem>-fixed.epub beside the input.
        config: Run settings. Defaults to FolianConfig().

    Returns:
        ProcessResult describing the written file.

    Raises:
        PipelineError: If any stage fails fatally.
    """
    config = config or FolianConfig()
    output_path = output_path or default_output_path(input_path)

    with tempfile.TemporaryDirectory(prefix="folian-") as tmp:
        workspace = Path(tmp)

        with _stage("extract"):
            extracted = extract_archive(
                input_path, workspace / "extracted", max_entry_size=config.max_entry_size
            )

        with _stage("parse"):
            book = parse_book(extracted)

        with _stage("classify"):
            classification = classify(book)
            documents = load_documents(book, classification)
        logger.info(
            "%s: %d content documents, %d images, %d fonts",
            input_path.name,
            len(documents),
            len(classification.images),
            len(classification.fonts),
        )

        with _stage("consolidate"):
            book.chapters = consolidate(documents, config)

        with _stage("build"):
            report = StructureBuilder(config).build(book, classification, workspace / "restructured")

        with _stage("package"):
            write_epub_archive(report.root, output_path)

    logger.info("Wrote %s with %d chapters", output_path, len(book.chapters))
    return ProcessResult(
        output_path=output_path,
        title=book.metadata.title,
        document_count=len(documents),
        chapter_count=len(book.chapters),
        has_cover=report.has_cover,
        warnings=report.warnings,
    )
