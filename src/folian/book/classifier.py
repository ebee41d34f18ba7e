# ABOUTME: Buckets manifest items by role and loads spine content documents in reading order.
# ABOUTME: Classification is pure; load_documents is the only part that touches the disk.

import logging
import re
import warnings
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from folian.book.types import Book, ManifestItem, RawDocument
from folian.formats.opf import DOCUMENT_MEDIA_TYPES, resolve_in_package

logger = logging.getLogger(__name__)

STYLE_MEDIA_TYPES = frozenset({"text/css"})
LEGACY_FONT_MEDIA_TYPES = frozenset(
    {
        "application/vnd.ms-opentype",
        "application/font-woff",
        "application/x-font-ttf",
        "application/x-font-truetype",
        "application/x-font-opentype",
        "application/font-sfnt",
    }
)

# Guide entries whose pages the output regenerates from the cover.
REGENERATED_GUIDE_TYPES = frozenset({"cover", "title-page"})

UNTITLED = "Untitled"

_BODY_RE = re.compile(r"<body\b[^>]*>(.*?)</body\s*>", re.DOTALL | re.IGNORECASE)


@dataclass
class Classification:
    """Manifest items grouped by role. Each list keeps manifest declaration order,
    except documents, which follow spine order."""

    stylesheets: list[ManifestItem] = field(default_factory=list)
    fonts: list[ManifestItem] = field(default_factory=list)
    images: list[ManifestItem] = field(default_factory=list)
    documents: list[ManifestItem] = field(default_factory=list)


def is_font(media_type: str) -> bool:
    return media_type.startswith("font/") or media_type in LEGACY_FONT_MEDIA_TYPES


def classify(book: Book) -> Classification:
    """Group the manifest by media type and pick out the spine's content documents.

    Spine entries that are not content documents, the source's own navigation
    document, and the cover/title pages named in the guide are skipped. Nothing
    is removed from the manifest.
    """
    result = Classification()
    for item in book.manifest.values():
        media_type = item.media_type.lower()
        if media_type in STYLE_MEDIA_TYPES:
            result.stylesheets.append(item)
        elif is_font(media_type):
            result.fonts.append(item)
        elif media_type.startswith("image/"):
            result.images.append(item)

    regenerated = {
        reference.href.split("#", 1)[0]
        for reference in book.guide
        if reference.type.lower() in REGENERATED_GUIDE_TYPES
    }

    seen: set[str] = set()
    for spine_item in book.spine:
        item = book.manifest.get(spine_item.idref)
        if item is None or item.id in seen:
            continue
        if item.media_type.lower() not in DOCUMENT_MEDIA_TYPES:
            continue
        if item.is_nav or item.href in regenerated:
            logger.debug("Skipping regenerated page %s", item.href)
            continue
        seen.add(item.id)
        result.documents.append(item)

    return result


def extract_title(soup: BeautifulSoup) -> str:
    """First <h1> text, else the <title> text, else "Untitled"."""
    for tag_name in ("h1", "title"):
        tag = soup.find(tag_name)
        if tag is not None:
            text = tag.get_text(" ", strip=True)
            if text:
                return text
    return UNTITLED


def extract_body(markup: str) -> str:
    """Inner markup of <body>, taken from the raw text so the source bytes are untouched."""
    match = _BODY_RE.search(markup)
    return match.group(1).strip() if match else markup.strip()


def analyze_document(item_id: str, href: str, markup: str) -> RawDocument:
    """Measure a content document once: title, plain text, and hyperlink count."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(markup, "lxml")
    body = soup.body or soup
    return RawDocument(
        id=item_id,
        href=href,
        markup=markup,
        title=extract_title(soup),
        text=body.get_text(" ", strip=True),
        link_count=len(body.find_all("a")),
        body=extract_body(markup),
    )


def load_documents(book: Book, classification: Classification) -> list[RawDocument]:
    """Read each classified content document from disk, in spine order.

    A document that cannot be read, or that lies outside the extracted tree,
    is logged and skipped.
    """
    documents = []
    for item in classification.documents:
        path = resolve_in_package(book, item.href)
        if path is None:
            continue
        try:
            raw = path.read_bytes()
        except OSError as exc:
            logger.warning("Content document %s could not be read: %s", item.href, exc)
            continue
        documents.append(analyze_document(item.id, item.href, raw.decode("utf-8", errors="replace")))
    return documents
