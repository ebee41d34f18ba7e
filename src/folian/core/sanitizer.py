# ABOUTME: Strips publisher-specific presentation markup from chapter content.
# ABOUTME: BeautifulSoup DOM cleanup with a regex substitution fallback for unparsable input.

import logging
import posixpath
import re
import warnings

from bs4 import BeautifulSoup, ParserRejectedMarkup, XMLParsedAsHTMLWarning

from folian.formats.xmltext import xml_safe

logger = logging.getLogger(__name__)

CLASS_DENY_SUBSTRINGS = ("calibre",)
CLASS_DENY_PREFIXES = ("sgc-", "kobo-", "adobe-")
ID_DENY_SUBSTRINGS = ("calibre", "toc")
ID_DENY_PREFIXES = ("sgc-",)

EMPTY_CONTAINER_TAGS = ("div", "span")

# Chapters live in OEBPS/chapters/, images are flattened into OEBPS/images/.
IMAGE_DIR = "../images/"

_IMAGE_TAGS = ("image", "svg:image")
_IMAGE_HREF_ATTRS = ("xlink:href", "href")

# The HTML parser lowercases names; SVG needs these spelled in camelCase.
SVG_ELEMENT_NAMES = {
    name.lower(): name
    for name in ("clipPath", "foreignObject", "linearGradient", "radialGradient", "textPath")
}
SVG_ATTRIBUTE_NAMES = {
    name.lower(): name
    for name in (
        "viewBox",
        "preserveAspectRatio",
        "gradientTransform",
        "gradientUnits",
        "patternContentUnits",
        "patternTransform",
        "patternUnits",
        "clipPathUnits",
        "maskContentUnits",
        "maskUnits",
        "markerHeight",
        "markerUnits",
        "markerWidth",
        "refX",
        "refY",
        "pathLength",
        "textLength",
        "lengthAdjust",
        "startOffset",
        "spreadMethod",
        "stdDeviation",
        "filterUnits",
        "primitiveUnits",
    )
}


class MarkupParseError(Exception):
    """Raised when a fragment cannot be parsed into a DOM tree."""


def _denied(value: str, substrings: tuple[str, ...], prefixes: tuple[str, ...]) -> bool:
    lowered = value.lower()
    return any(s in lowered for s in substrings) or lowered.startswith(prefixes)


def is_denied_class(token: str) -> bool:
    return _denied(token, CLASS_DENY_SUBSTRINGS, CLASS_DENY_PREFIXES)


def is_denied_id(value: str) -> bool:
    return _denied(value, ID_DENY_SUBSTRINGS, ID_DENY_PREFIXES)


def relink_image(src: str) -> str:
    """Point an image reference at the flattened images/ directory."""
    if not src or src.startswith(("data:", "http://", "https://", "#")):
        return src
    return IMAGE_DIR + posixpath.basename(src.split("#", 1)[0])


def _clean_attributes(tag) -> None:
    tag.attrs.pop("style", None)

    ident = tag.get("id")
    if ident is not None and is_denied_id(ident):
        del tag["id"]

    classes = tag.get("class")
    if classes is not None:
        if isinstance(classes, str):
            classes = classes.split()
        kept = [token for token in classes if not is_denied_class(token)]
        if kept:
            tag["class"] = kept
        else:
            del tag["class"]

    if tag.name == "img" and tag.get("src"):
        tag["src"] = relink_image(tag["src"])
    elif tag.name in _IMAGE_TAGS:
        for attr in _IMAGE_HREF_ATTRS:
            if tag.get(attr):
                tag[attr] = relink_image(tag[attr])


def _restore_svg_case(root) -> None:
    for svg in root.find_all("svg"):
        for tag in [svg, *svg.find_all(True)]:
            tag.name = SVG_ELEMENT_NAMES.get(tag.name, tag.name)
            tag.attrs = {
                SVG_ATTRIBUTE_NAMES.get(key, key): value for key, value in tag.attrs.items()
            }


def sanitize_dom(raw: str) -> str:
    """Clean a markup fragment through a parsed DOM tree and return the body's inner markup.

    Empty <div>/<span> containers are removed in a single pass: an outer container
    that only becomes empty after its children are removed is left in place.

    Raises:
        MarkupParseError: If the markup cannot be parsed.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
            soup = BeautifulSoup(raw, "lxml")
    except ParserRejectedMarkup as exc:
        raise MarkupParseError(str(exc)) from exc

    if raw.strip() and soup.find(True) is None and not soup.get_text(strip=True):
        raise MarkupParseError("Parser produced an empty tree")

    root = soup.body or soup
    for tag in root.find_all(True):
        _clean_attributes(tag)

    for tag in root.find_all(EMPTY_CONTAINER_TAGS):
        if tag.decomposed:
            continue
        if not tag.get_text(strip=True) and tag.find(True) is None:
            tag.decompose()

    _restore_svg_case(root)
    return "".join(str(child) for child in root.contents).strip()


_BODY_RE = re.compile(r"<body\b[^>]*>(.*?)</body\s*>", re.DOTALL | re.IGNORECASE)
_STYLE_ATTR_RE = re.compile(r"""\s+style\s*=\s*(["']).*?\1""", re.DOTALL | re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r"""\s+class\s*=\s*(["'])(.*?)\1""", re.DOTALL | re.IGNORECASE)
_ID_ATTR_RE = re.compile(r"""\s+id\s*=\s*(["'])(.*?)\1""", re.DOTALL | re.IGNORECASE)
_EMPTY_WRAPPER_RE = re.compile(r"<(div|span)\s*>\s*</\1\s*>", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"""(<img\b[^>]*?\ssrc\s*=\s*)(["'])(.*?)\2""", re.DOTALL | re.IGNORECASE)
_XLINK_HREF_RE = re.compile(
    r"""(<(?:svg:)?image\b[^>]*?\s(?:xlink:)?href\s*=\s*)(["'])(.*?)\2""", re.DOTALL | re.IGNORECASE
)


def _filter_class(match: re.Match[str]) -> str:
    quote, value = match.group(1), match.group(2)
    kept = [token for token in value.split() if not is_denied_class(token)]
    return f" class={quote}{' '.join(kept)}{quote}" if kept else ""


def _filter_id(match: re.Match[str]) -> str:
    return "" if is_denied_id(match.group(2)) else match.group(0)


def _relink(match: re.Match[str]) -> str:
    return f"{match.group(1)}{match.group(2)}{relink_image(match.group(3))}{match.group(2)}"


def sanitize_patterns(raw: str) -> str:
    """Text-substitution cleanup used when the DOM path cannot parse the markup.

    Applies the same class/id denylists and removes attribute-less empty wrappers,
    without any knowledge of the document structure.
    """
    match = _BODY_RE.search(raw)
    body = match.group(1) if match else raw

    body = _STYLE_ATTR_RE.sub("", body)
    body = _CLASS_ATTR_RE.sub(_filter_class, body)
    body = _ID_ATTR_RE.sub(_filter_id, body)
    body = _EMPTY_WRAPPER_RE.sub("", body)
    body = _IMG_SRC_RE.sub(_relink, body)
    body = _XLINK_HREF_RE.sub(_relink, body)
    return body.strip()


def sanitize(raw: str) -> str:
    """Clean chapter markup, falling back to pattern substitution if parsing fails.

    Characters that XML forbids are removed from either result, since the
    output is written into a standalone XHTML document.
    """
    try:
        cleaned = sanitize_dom(raw)
    except MarkupParseError as exc:
        logger.info("DOM sanitize failed (%s), using pattern cleanup", exc)
        cleaned = sanitize_patterns(raw)
    return xml_safe(cleaned)
