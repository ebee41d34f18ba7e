# ABOUTME: Builds the in-memory Book model from an extracted EPUB tree.
# ABOUTME: Strict lxml parse of the package descriptor with a tolerant text-scan fallback.

import html
import logging
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote

from lxml import etree

from folian.book.types import Book, GuideReference, ManifestItem, Metadata, SpineItem
from folian.formats.xmltext import xml_safe

logger = logging.getLogger(__name__)

CONTAINER_PATH = Path("META-INF") / "container.xml"

METADATA_FIELDS = ("title", "creator", "language", "identifier", "publisher", "description", "date")

IMAGE_MEDIA_PREFIX = "image/"
DOCUMENT_MEDIA_TYPES = frozenset({"application/xhtml+xml", "text/html"})


class ParseError(Exception):
    """Raised when the package structure cannot be turned into a Book."""


class MissingRootFileError(ParseError):
    """Raised when container.xml is absent, unparsable, or names no root file."""


class PackageParseError(ParseError):
    """Raised by a single package-descriptor parser that cannot handle its input."""


@dataclass
class PackageDocument:
    """Everything recovered from a package descriptor, independent of how it was parsed."""

    metadata: Metadata = field(default_factory=Metadata)
    manifest: dict[str, ManifestItem] = field(default_factory=dict)
    spine: list[SpineItem] = field(default_factory=list)
    guide: list[GuideReference] = field(default_factory=list)
    cover_meta_id: str | None = None


class PackageParser(Protocol):
    """A strategy that turns raw package-descriptor bytes into a PackageDocument."""

    name: str

    def parse(self, data: bytes) -> PackageDocument: ...


def _add_manifest_item(doc: PackageDocument, attrs: dict[str, str]) -> None:
    item_id = attrs.get("id", "")
    href = attrs.get("href", "")
    if not item_id or not href:
        logger.debug("Skipping manifest item without id or href: %s", attrs)
        return
    if item_id in doc.manifest:
        logger.warning("Duplicate manifest id %r, keeping the first declaration", item_id)
        return
    doc.manifest[item_id] = ManifestItem(
        id=item_id,
        href=href,
        media_type=attrs.get("media-type", ""),
        properties=attrs.get("properties", ""),
    )


def _local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def _element_attrs(element: etree._Element) -> dict[str, str]:
    """Attributes keyed by local name, so opf:-prefixed variants are found too."""
    return {etree.QName(key).localname: value for key, value in element.attrib.items()}


class StrictPackageParser:
    """Namespace-agnostic lxml parse. Rejects anything that is not well-formed XML."""

    name = "strict"

    def __init__(self) -> None:
        self._parser = etree.XMLParser(
            recover=False, resolve_entities=False, no_network=True, remove_comments=True
        )

    def parse(self, data: bytes) -> PackageDocument:
        try:
            root = etree.fromstring(data, parser=self._parser)
        except (etree.XMLSyntaxError, ValueError) as exc:
            raise PackageParseError(f"Malformed package descriptor: {exc}") from exc

        sections = {}
        for child in root:
            if isinstance(child.tag, str):
                sections.setdefault(_local_name(child), child)

        if "manifest" not in sections or "spine" not in sections:
            raise PackageParseError("Package descriptor has no manifest or spine section")

        doc = PackageDocument()
        metadata = sections.get("metadata")
        if metadata is not None:
            self._read_metadata(metadata, doc)

        for item in sections["manifest"].iter("{*}item"):
            _add_manifest_item(doc, _element_attrs(item))

        for itemref in sections["spine"].iter("{*}itemref"):
            attrs = _element_attrs(itemref)
            doc.spine.append(
                SpineItem(
                    idref=attrs.get("idref", ""),
                    linear=attrs.get("linear", ""),
                    properties=attrs.get("properties", ""),
                )
            )

        guide = sections.get("guide")
        if guide is not None:
            for reference in guide.iter("{*}reference"):
                attrs = _element_attrs(reference)
                doc.guide.append(
                    GuideReference(
                        type=attrs.get("type", ""),
                        href=attrs.get("href", ""),
                        title=attrs.get("title", ""),
                    )
                )
        return doc

    def _read_metadata(self, metadata: etree._Element, doc: PackageDocument) -> None:
        seen: set[str] = set()
        for element in metadata.iter():
            if not isinstance(element.tag, str):
                continue
            name = _local_name(element)
            if name in METADATA_FIELDS and name not in seen:
                # First occurrence wins, so a second dc:creator never overrides the first.
                seen.add(name)
                setattr(doc.metadata, name, "".join(element.itertext()).strip())
            elif name == "meta" and doc.cover_meta_id is None:
                attrs = _element_attrs(element)
                if attrs.get("name") == "cover" and attrs.get("content"):
                    doc.cover_meta_id = attrs["content"]


def _section_re(name: str) -> re.Pattern[str]:
    return re.compile(
        rf"<(?:[\w-]+:)?{name}\b[^>]*>(.*?)</(?:[\w-]+:)?{name}\s*>", re.DOTALL | re.IGNORECASE
    )


_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(["'])(.*?)\2""", re.DOTALL)
_TAG_STRIP_RE = re.compile(r"<[^>]+>")


def _scan_attrs(raw: str) -> dict[str, str]:
    attrs = {}
    for key, _quote, value in _ATTR_RE.findall(raw):
        attrs.setdefault(key.split(":")[-1], xml_safe(html.unescape(value)))
    return attrs


def _tag_re(name: str) -> re.Pattern[str]:
    return re.compile(rf"<(?:[\w-]+:)?{name}\b([^>]*?)/?>", re.DOTALL | re.IGNORECASE)


class TolerantPackageParser:
    """Regex scan that locates each section by its opening and closing tag text.

    Lower precision than StrictPackageParser (no entity resolution beyond HTML
    entities, no nesting awareness) but fills the same PackageDocument fields.
    """

    name = "tolerant"

    _metadata_re = _section_re("metadata")
    _manifest_re = _section_re("manifest")
    _spine_re = _section_re("spine")
    _guide_re = _section_re("guide")
    _item_re = _tag_re("item")
    _itemref_re = _tag_re("itemref")
    _reference_re = _tag_re("reference")
    _meta_re = _tag_re("meta")
    _field_res = {name: _section_re(name) for name in METADATA_FIELDS}

    def parse(self, data: bytes) -> PackageDocument:
        text = data.decode("utf-8", errors="replace")
        manifest = self._manifest_re.search(text)
        spine = self._spine_re.search(text)
        if manifest is None or spine is None:
            raise PackageParseError("Could not locate manifest and spine sections")

        doc = PackageDocument()
        metadata = self._metadata_re.search(text)
        if metadata is not None:
            self._read_metadata(metadata.group(1), doc)

        for match in self._item_re.finditer(manifest.group(1)):
            _add_manifest_item(doc, _scan_attrs(match.group(1)))

        for match in self._itemref_re.finditer(spine.group(1)):
            attrs = _scan_attrs(match.group(1))
            doc.spine.append(
                SpineItem(
                    idref=attrs.get("idref", ""),
                    linear=attrs.get("linear", ""),
                    properties=attrs.get("properties", ""),
                )
            )

        guide = self._guide_re.search(text)
        if guide is not None:
            for match in self._reference_re.finditer(guide.group(1)):
                attrs = _scan_attrs(match.group(1))
                doc.guide.append(
                    GuideReference(
                        type=attrs.get("type", ""),
                        href=attrs.get("href", ""),
                        title=attrs.get("title", ""),
                    )
                )
        return doc

    def _read_metadata(self, section: str, doc: PackageDocument) -> None:
        for name, pattern in self._field_res.items():
            match = pattern.search(section)
            if match is not None:
                value = html.unescape(_TAG_STRIP_RE.sub("", match.group(1)))
                # Regex-recovered text can still hold characters XML forbids.
                setattr(doc.metadata, name, xml_safe(value).strip())
        for match in self._meta_re.finditer(section):
            attrs = _scan_attrs(match.group(1))
            if attrs.get("name") == "cover" and attrs.get("content"):
                doc.cover_meta_id = attrs["content"]
                break


PACKAGE_PARSERS: tuple[PackageParser, ...] = (StrictPackageParser(), TolerantPackageParser())


def parse_package_document(
    data: bytes, parsers: tuple[PackageParser, ...] = PACKAGE_PARSERS
) -> PackageDocument:
    """Run each parser in order and return the first successful result.

    Raises:
        ParseError: If every parser rejects the input.
    """
    failures = []
    for parser in parsers:
        try:
            return parser.parse(data)
        except PackageParseError as exc:
            logger.info("%s package parse failed (%s), trying next parser", parser.name, exc)
            failures.append(f"{parser.name}: {exc}")
    raise ParseError("Unable to parse package descriptor: " + "; ".join(failures))


def read_root_file(root_dir: Path) -> str:
    """Return the package descriptor path named by META-INF/container.xml.

    Raises:
        MissingRootFileError: If the container is missing, malformed, or empty.
    """
    container = root_dir / CONTAINER_PATH
    try:
        data = container.read_bytes()
    except OSError as exc:
        raise MissingRootFileError(f"Failed to read {CONTAINER_PATH}: {exc}") from exc

    try:
        root = etree.fromstring(data, parser=etree.XMLParser(resolve_entities=False, no_network=True))
    except (etree.XMLSyntaxError, ValueError) as exc:
        raise MissingRootFileError(f"Failed to parse {CONTAINER_PATH}: {exc}") from exc

    for rootfile in root.iter("{*}rootfile"):
        full_path = rootfile.get("full-path")
        if full_path:
            return full_path
    raise MissingRootFileError(f"No root file found in {CONTAINER_PATH}")


def resolve_in_package(book: Book, href: str) -> Path | None:
    """Map a manifest-relative href to a file under the extracted tree.

    Returns None when the href points outside the tree, so a crafted manifest
    cannot pull host files into the book.
    """
    root = book.path.resolve()
    path = (book.package_dir / unquote(href.split("#", 1)[0])).resolve()
    if not path.is_relative_to(root):
        logger.warning("Ignoring %s: it points outside the book", href)
        return None
    return path


_IMG_SRC_RE = re.compile(
    r"""<(?:img|(?:svg:)?image)\b[^>]*?\s(?:src|xlink:href|href)\s*=\s*["']([^"']+)["']""",
    re.IGNORECASE,
)


def _cover_from_document(book: Book, doc_href: str) -> str | None:
    """Find the first image referenced by a cover XHTML page, relative to the OPF dir."""
    path = resolve_in_package(book, doc_href)
    if path is None:
        return None
    try:
        markup = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        logger.debug("Guide cover page %s could not be read", doc_href)
        return None
    match = _IMG_SRC_RE.search(markup)
    if match is None:
        return None
    base = posixpath.dirname(doc_href.split("#", 1)[0])
    return posixpath.normpath(posixpath.join(base, match.group(1)))


def _is_image(item: ManifestItem) -> bool:
    return item.media_type.startswith(IMAGE_MEDIA_PREFIX)


def resolve_cover_image(book: Book, cover_meta_id: str | None = None) -> str | None:
    """Pick the cover image href. The first strategy that matches wins.

    Order: manifest cover-image property, EPUB 2 cover meta, guide cover
    reference, then any manifest image whose id or filename mentions "cover".
    """
    for item in book.manifest.values():
        if item.is_cover_image:
            return item.href

    if cover_meta_id and cover_meta_id in book.manifest:
        item = book.manifest[cover_meta_id]
        if _is_image(item):
            return item.href

    for reference in book.guide:
        if reference.type.lower() != "cover" or not reference.href:
            continue
        item = book.find_by_href(reference.href)
        if item is not None and _is_image(item):
            return item.href
        found = _cover_from_document(book, reference.href)
        if found:
            return found

    for item in book.manifest.values():
        if not _is_image(item):
            continue
        if "cover" in item.id.lower() or "cover" in posixpath.basename(item.href).lower():
            return item.href

    return None


def parse_book(root_dir: Path) -> Book:
    """Build a Book from an extracted EPUB tree.

    Args:
        root_dir: Directory holding META-INF/container.xml.

    Returns:
        Book with metadata, manifest, spine, guide, and cover resolved.

    Raises:
        MissingRootFileError: If the root file cannot be located.
        ParseError: If the package descriptor is missing or cannot be parsed.
    """
    root_dir = root_dir.resolve()
    root_file = read_root_file(root_dir)
    opf_path = (root_dir / unquote(root_file)).resolve()
    if not opf_path.is_relative_to(root_dir):
        raise ParseError(f"Root file escapes the package: {root_file}")

    try:
        data = opf_path.read_bytes()
    except OSError as exc:
        raise ParseError(f"Failed to read package descriptor {root_file}: {exc}") from exc

    doc = parse_package_document(data)

    spine = []
    for spine_item in doc.spine:
        if spine_item.idref in doc.manifest:
            spine.append(spine_item)
        else:
            logger.warning("Spine entry %r has no manifest item, skipping", spine_item.idref)

    book = Book(
        path=root_dir,
        opf_path=opf_path,
        metadata=doc.metadata,
        manifest=doc.manifest,
        spine=spine,
        guide=doc.guide,
    )
    book.cover_image = resolve_cover_image(book, doc.cover_meta_id)
    logger.debug(
        "Parsed %s: %d manifest items, %d spine entries, cover=%s",
        root_file,
        len(book.manifest),
        len(book.spine),
        book.cover_image,
    )
    return book
