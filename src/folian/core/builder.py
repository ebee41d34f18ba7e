# ABOUTME: Lays out the canonical EPUB tree and regenerates its package and navigation documents.
# ABOUTME: Asset copies are best-effort with warnings; structural documents abort the build.

import html
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from bs4 import BeautifulSoup
from lxml import etree

from folian.book.classifier import Classification
from folian.book.types import Book
from folian.config import FolianConfig
from folian.core.resolver import find_cover_on_disk, resolve_asset
from folian.core.sanitizer import sanitize
from folian.core.templates import (
    BOOK_AUTHOR,
    BOOK_SUBTITLE,
    BOOK_TITLE,
    COVER_IMAGE,
    FONT_FILE,
    LOGO_FILE,
    STYLESHEET_FILE,
    TOC_ENTRIES,
    TemplateSet,
    fill_template,
)

logger = logging.getLogger(__name__)

OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
NCX_NS = "http://www.daisy.org/z3986/2005/ncx/"
NCX_DOCTYPE = (
    '<!DOCTYPE ncx PUBLIC "-//NISO//DTD ncx 2005-1//EN" '
    '"http://www.daisy.org/z3986/2005/ncx-2005-1.dtd">'
)

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

CHAPTER_XHTML = """<?xml version='1.0' encoding='utf-8'?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" lang="{lang}" xml:lang="{lang}">

<head>
  <title>{title}</title>
  <link href="../styles/stylesheet.css" rel="stylesheet" type="text/css"/>
</head>

<body>
  <h1>{title}</h1>

{body}

</body>

</html>
"""

OEBPS = "OEBPS"
SUBDIRECTORIES = ("images", "styles", "fonts", "chapters")

MEDIA_TYPES = {
    ".xhtml": "application/xhtml+xml",
    ".html": "application/xhtml+xml",
    ".css": "text/css",
    ".ncx": "application/x-dtbncx+xml",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".ttf": "application/vnd.ms-opentype",
    ".otf": "application/vnd.ms-opentype",
    ".woff": "application/font-woff",
    ".woff2": "font/woff2",
}

SUBTITLE_LIMIT = 60
SUBTITLE_CUT = 57


def media_type_for(filename: str) -> str:
    """Media type from the file extension, defaulting to JPEG for unknown images."""
    return MEDIA_TYPES.get(Path(filename).suffix.lower(), "image/jpeg")


def chapter_filename(number: int) -> str:
    return f"chapter_{number:03d}.xhtml"


def derive_subtitle(description: str, default: str) -> str:
    """Plain-text description, shortened to 57 characters plus an ellipsis past 60."""
    text = BeautifulSoup(description, "html.parser").get_text(" ", strip=True) if description else ""
    if not text:
        return default
    if len(text) > SUBTITLE_LIMIT:
        return text[:SUBTITLE_CUT] + "..."
    return text


def _generator() -> str:
    try:
        return f"Folian {version('folian')}"
    except PackageNotFoundError:
        return "Folian"


class BuildError(Exception):
    """Raised when a structural part of the output tree cannot be written."""


@dataclass
class BuildReport:
    """What the builder actually wrote. Manifest generation reads from this, so
    assets that could not be found never appear in the output package."""

    root: Path
    identifier: str = ""
    cover_filename: str | None = None
    has_logo: bool = False
    stylesheet: str = STYLESHEET_FILE
    images: list[str] = field(default_factory=list)
    fonts: list[str] = field(default_factory=list)
    chapter_files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def oebps(self) -> Path:
        return self.root / OEBPS

    @property
    def has_cover(self) -> bool:
        return self.cover_filename is not None

    def warn(self, message: str, *args: object) -> None:
        """Log a non-fatal problem and keep it for the caller's summary."""
        logger.warning(message, *args)
        self.warnings.append(message % args)


class StructureBuilder:
    """Writes a restructured EPUB tree for one Book.

    The builder owns final chapter numbering: chapters are written as
    chapters/chapter_NNN.xhtml in book.chapters order, and the package document,
    nav.xhtml, and toc.ncx are all generated from that same list.
    """

    def __init__(self, config: FolianConfig, templates: TemplateSet | None = None) -> None:
        self.config = config
        self.templates = templates or TemplateSet(config.format_dir)

    def build(self, book: Book, classification: Classification, dest: Path) -> BuildReport:
        """Produce the full output tree under dest.

        Raises:
            BuildError: If a structural file cannot be written or generated.
            TemplateError: If a required format-directory file is missing.
        """
        report = BuildReport(
            root=dest, identifier=book.metadata.identifier or f"urn:uuid:{uuid.uuid4()}"
        )
        self._write_skeleton(report)
        self._write_styles_and_fonts(book, classification, report)
        self._write_cover(book, report)
        self._write_images(book, classification, report)
        self._write_chapters(book, report)
        try:
            self._write_package_document(book, report)
            self._write_nav_document(book, report)
            self._write_ncx(book, report)
        except ValueError as exc:
            # lxml rejects text that is not XML-compatible.
            raise BuildError(f"Failed to generate the package documents: {exc}") from exc
        logger.info(
            "Built %d chapters, %d images, %d fonts (%d warnings)",
            len(report.chapter_files),
            len(report.images),
            len(report.fonts),
            len(report.warnings),
        )
        return report

    def _write(self, path: Path, data: bytes | str) -> None:
        try:
            if isinstance(data, str):
                path.write_text(data, encoding="utf-8")
            else:
                path.write_bytes(data)
        except OSError as exc:
            raise BuildError(f"Failed to write {path.name}: {exc}") from exc

    def _write_skeleton(self, report: BuildReport) -> None:
        try:
            for subdirectory in SUBDIRECTORIES:
                (report.oebps / subdirectory).mkdir(parents=True, exist_ok=True)
            (report.root / "META-INF").mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BuildError(f"Failed to create the output layout: {exc}") from exc
        self._write(report.root / "mimetype", "application/epub+zip")
        self._write(report.root / "META-INF" / "container.xml", CONTAINER_XML)

    def _copy_asset(self, book: Book, href: str, dest: Path, report: BuildReport, kind: str) -> bool:
        source = resolve_asset(book, href)
        if source is None:
            report.warn("Failed to find %s %s", kind, href)
            return False
        try:
            shutil.copyfile(source, dest)
        except OSError as exc:
            report.warn("Failed to copy %s %s: %s", kind, href, exc)
            return False
        return True

    def _write_styles_and_fonts(
        self, book: Book, classification: Classification, report: BuildReport
    ) -> None:
        self._write(report.oebps / "styles" / STYLESHEET_FILE, self.templates.stylesheet())
        self._write(report.oebps / "fonts" / FONT_FILE, self.templates.font())
        report.fonts.append(FONT_FILE)

        for item in classification.fonts:
            name = Path(item.href).name
            if name in report.fonts:
                report.warn("Skipping font %s: another font already uses that name", item.href)
                continue
            if self._copy_asset(book, item.href, report.oebps / "fonts" / name, report, "font"):
                report.fonts.append(name)

    def _template_values(self, book: Book, cover_filename: str) -> dict[str, str]:
        metadata = book.metadata
        return {
            COVER_IMAGE: cover_filename,
            BOOK_TITLE: html.escape(metadata.title or "Book Title"),
            BOOK_AUTHOR: html.escape(metadata.creator or "Author"),
            BOOK_SUBTITLE: html.escape(
                derive_subtitle(metadata.description, self.config.default_subtitle)
            ),
        }

    def _write_cover(self, book: Book, report: BuildReport) -> None:
        href = book.cover_image or find_cover_on_disk(book)
        if not href:
            logger.info("No cover image declared or found")
            return

        source = resolve_asset(book, href)
        if source is None:
            report.warn("Failed to find cover image %s, continuing without a cover", href)
            return

        cover_filename = "cover" + (source.suffix.lower() or ".jpg")
        try:
            shutil.copyfile(source, report.oebps / "images" / cover_filename)
        except OSError as exc:
            report.warn("Failed to copy cover image %s: %s", href, exc)
            return

        book.cover_image = href
        report.cover_filename = cover_filename
        values = self._template_values(book, cover_filename)
        self._write(report.oebps / "titlepage.xhtml", fill_template(self.templates.titlepage(), values))
        self._write(report.oebps / "jacket.xhtml", fill_template(self.templates.jacket(), values))

        logo = self.templates.logo()
        if logo is None:
            logger.info("No %s in the format directory", LOGO_FILE)
        else:
            self._write(report.oebps / "images" / LOGO_FILE, logo)
            report.has_logo = True

    def _write_images(
        self, book: Book, classification: Classification, report: BuildReport
    ) -> None:
        reserved = {report.cover_filename, LOGO_FILE}
        for item in classification.images:
            if item.href == book.cover_image:
                continue
            name = Path(item.href).name
            if name in reserved or name in report.images:
                report.warn("Skipping image %s: another image already uses that name", item.href)
                continue
            if self._copy_asset(book, item.href, report.oebps / "images" / name, report, "image"):
                report.images.append(name)

    def _write_chapters(self, book: Book, report: BuildReport) -> None:
        language = html.escape(book.metadata.language or self.config.default_language)
        for number, chapter in enumerate(book.chapters, start=1):
            filename = chapter_filename(number)
            document = CHAPTER_XHTML.format(
                lang=language,
                title=html.escape(chapter.title),
                body=sanitize(chapter.content),
            )
            self._write(report.oebps / "chapters" / filename, document)
            report.chapter_files.append(filename)
            logger.debug("Wrote %s (%s)", filename, chapter.title)

    def _toc_entries(self, book: Book, report: BuildReport) -> list[tuple[str, str]]:
        """(href, title) for every chapter. nav.xhtml and toc.ncx both use this list."""
        return [
            (f"chapters/{filename}", chapter.title)
            for filename, chapter in zip(report.chapter_files, book.chapters, strict=True)
        ]

    def _write_package_document(self, book: Book, report: BuildReport) -> None:
        metadata = book.metadata
        opf = f"{{{OPF_NS}}}"
        dc = f"{{{DC_NS}}}"
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        package = etree.Element(
            f"{opf}package",
            nsmap={None: OPF_NS},
            attrib={"version": "3.0", "unique-identifier": "BookID"},
        )
        meta = etree.SubElement(package, f"{opf}metadata", nsmap={"dc": DC_NS})
        etree.SubElement(meta, f"{dc}title", id="title").text = metadata.title
        if metadata.creator:
            etree.SubElement(meta, f"{dc}creator", id="creator").text = metadata.creator
        etree.SubElement(meta, f"{dc}language").text = (
            metadata.language or self.config.default_language
        )
        etree.SubElement(meta, f"{dc}identifier", id="BookID").text = report.identifier
        for name in ("publisher", "description"):
            value = getattr(metadata, name)
            if value:
                etree.SubElement(meta, f"{dc}{name}").text = value
        etree.SubElement(meta, f"{dc}date").text = metadata.date or now
        etree.SubElement(meta, f"{opf}meta", property="dcterms:modified").text = now
        if metadata.creator:
            role = etree.SubElement(
                meta, f"{opf}meta", refines="#creator", property="role", scheme="marc:relators"
            )
            role.text = "aut"
        etree.SubElement(meta, f"{opf}meta", name="generator", content=_generator())
        if report.has_cover:
            etree.SubElement(meta, f"{opf}meta", name="cover", content="cover-image")

        manifest = etree.SubElement(package, f"{opf}manifest")

        def add_item(item_id: str, href: str, properties: str = "") -> None:
            attrs = {"id": item_id, "href": href, "media-type": media_type_for(href)}
            if properties:
                attrs["properties"] = properties
            etree.SubElement(manifest, f"{opf}item", attrib=attrs)

        add_item("ncx", "toc.ncx")
        add_item("nav", "nav.xhtml", "nav")
        if report.has_cover:
            titlepage = (report.oebps / "titlepage.xhtml").read_text(encoding="utf-8")
            add_item("titlepage", "titlepage.xhtml", "svg" if "<svg" in titlepage else "")
            add_item("jacket", "jacket.xhtml")
            add_item("cover-image", f"images/{report.cover_filename}", "cover-image")
            if report.has_logo:
                add_item("folian-logo", f"images/{LOGO_FILE}")
        add_item("stylesheet", f"styles/{report.stylesheet}")
        for number, filename in enumerate(report.chapter_files, start=1):
            add_item(f"chapter{number}", f"chapters/{filename}")
        for number, name in enumerate(report.images, start=1):
            add_item(f"image{number}", f"images/{name}")
        for number, name in enumerate(report.fonts, start=1):
            add_item(f"font{number}", f"fonts/{name}")

        spine = etree.SubElement(package, f"{opf}spine", toc="ncx")
        spine_ids = ["titlepage", "jacket"] if report.has_cover else []
        spine_ids.append("nav")
        spine_ids.extend(f"chapter{number}" for number in range(1, len(report.chapter_files) + 1))
        for idref in spine_ids:
            etree.SubElement(spine, f"{opf}itemref", idref=idref)

        if report.has_cover:
            guide = etree.SubElement(package, f"{opf}guide")
            etree.SubElement(guide, f"{opf}reference", type="cover", href="titlepage.xhtml", title="Cover")
            etree.SubElement(
                guide, f"{opf}reference", type="title-page", href="jacket.xhtml", title="Title Page"
            )

        self._write_tree(package, report.oebps / "content.opf")

    def _write_tree(self, root: etree._Element, path: Path, doctype: str | None = None) -> None:
        try:
            etree.ElementTree(root).write(
                str(path), xml_declaration=True, encoding="UTF-8", pretty_print=True, doctype=doctype
            )
        except OSError as exc:
            raise BuildError(f"Failed to write {path.name}: {exc}") from exc

    def _write_nav_document(self, book: Book, report: BuildReport) -> None:
        entries = "\n".join(
            f'<li><a href="{href}">{html.escape(title)}</a></li>'
            for href, title in self._toc_entries(book, report)
        )
        content = fill_template(
            self.templates.nav(),
            {BOOK_TITLE: html.escape(book.metadata.title), TOC_ENTRIES: entries},
        )
        self._write(report.oebps / "nav.xhtml", content)

    def _write_ncx(self, book: Book, report: BuildReport) -> None:
        ncx = f"{{{NCX_NS}}}"
        root = etree.Element(f"{ncx}ncx", nsmap={None: NCX_NS}, version="2005-1")
        head = etree.SubElement(root, f"{ncx}head")
        for name, content in (
            ("dtb:uid", report.identifier),
            ("dtb:depth", "1"),
            ("dtb:totalPageCount", "0"),
            ("dtb:maxPageNumber", "0"),
        ):
            etree.SubElement(head, f"{ncx}meta", name=name, content=content)
        etree.SubElement(etree.SubElement(root, f"{ncx}docTitle"), f"{ncx}text").text = (
            book.metadata.title
        )
        etree.SubElement(etree.SubElement(root, f"{ncx}docAuthor"), f"{ncx}text").text = (
            book.metadata.creator
        )

        nav_points = []
        if report.has_cover:
            nav_points.append(("navpoint-titlepage", "Cover", "titlepage.xhtml"))
            nav_points.append(("navpoint-jacket", "Title Page", "jacket.xhtml"))
        for number, (href, title) in enumerate(self._toc_entries(book, report), start=1):
            nav_points.append((f"navpoint-{number}", title, href))

        nav_map = etree.SubElement(root, f"{ncx}navMap")
        for play_order, (point_id, label, src) in enumerate(nav_points, start=1):
            point = etree.SubElement(
                nav_map, f"{ncx}navPoint", id=point_id, playOrder=str(play_order)
            )
            etree.SubElement(etree.SubElement(point, f"{ncx}navLabel"), f"{ncx}text").text = label
            etree.SubElement(point, f"{ncx}content", src=src)

        self._write_tree(root, report.oebps / "toc.ncx", doctype=NCX_DOCTYPE)
