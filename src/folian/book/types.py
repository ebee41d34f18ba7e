# ABOUTME: Core data structures for the in-memory book model.
# ABOUTME: Book is the aggregate that flows from parsing through consolidation to packaging.

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Metadata:
    """Dublin Core metadata recovered from the package descriptor.

    Every field defaults to the empty string. A source package with no title or
    author is still processable, so absence is never treated as an error.
    """

    title: str = ""
    creator: str = ""
    language: str = ""
    identifier: str = ""
    publisher: str = ""
    description: str = ""
    date: str = ""


@dataclass
class ManifestItem:
    """A file declared in the package manifest. href is relative to the OPF directory."""

    id: str
    href: str
    media_type: str
    properties: str = ""

    @property
    def property_flags(self) -> set[str]:
        return set(self.properties.split())

    @property
    def is_cover_image(self) -> bool:
        return "cover-image" in self.property_flags

    @property
    def is_nav(self) -> bool:
        return "nav" in self.property_flags


@dataclass
class SpineItem:
    """An entry in the reading order, pointing at a manifest id."""

    idref: str
    linear: str = ""
    properties: str = ""


@dataclass
class GuideReference:
    """A legacy (EPUB 2) guide entry such as the cover or title page."""

    type: str
    href: str
    title: str = ""


@dataclass
class Chapter:
    """A logical chapter produced by the consolidation engine."""

    id: str
    title: str
    content: str
    order: int


@dataclass
class RawDocument:
    """A content document read from disk, alive only until consolidation.

    text and link_count are measured once when the document is loaded so the
    consolidation engine never has to re-parse markup. body holds the inner markup
    of <body>, which is what gets merged into chapters.
    """

    id: str
    href: str
    markup: str
    title: str
    text: str = ""
    link_count: int = 0
    body: str = ""

    @property
    def text_length(self) -> int:
        return len(self.text.strip())

    @property
    def fragment(self) -> str:
        return self.body or self.markup


@dataclass
class Book:
    """Root aggregate for one pipeline run.

    path is the extracted source root; opf_path is the package descriptor inside it.
    manifest preserves declaration order, spine preserves reading order.
    """

    path: Path
    opf_path: Path
    metadata: Metadata = field(default_factory=Metadata)
    manifest: dict[str, ManifestItem] = field(default_factory=dict)
    spine: list[SpineItem] = field(default_factory=list)
    guide: list[GuideReference] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)
    cover_image: str | None = None

    @property
    def package_dir(self) -> Path:
        """Directory that manifest hrefs are relative to."""
        return self.opf_path.parent

    @property
    def has_cover(self) -> bool:
        return bool(self.cover_image)

    def find_by_href(self, href: str) -> ManifestItem | None:
        """Look up a manifest item by its href (fragment identifiers ignored)."""
        target = href.split("#", 1)[0]
        for item in self.manifest.values():
            if item.href == target:
                return item
        return None
