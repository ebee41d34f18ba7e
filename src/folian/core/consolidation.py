# ABOUTME: Chapter consolidation: merges fragmented content documents into logical chapters.
# ABOUTME: Drops table-of-contents noise and normalizes chapter titles.

import html
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache

from folian.book.types import Chapter, RawDocument
from folian.config import FolianConfig
from folian.formats.xmltext import xml_safe

logger = logging.getLogger(__name__)

_NUMERIC_TITLE_RE = re.compile(r"\d+")


@lru_cache(maxsize=32)
def _marker_pattern(markers: tuple[str, ...]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(marker) for marker in markers)
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)


@lru_cache(maxsize=32)
def _prefix_pattern(prefixes: tuple[str, ...]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(prefix) for prefix in prefixes)
    return re.compile(rf"^(?:{alternation})\s+(.+)$", re.IGNORECASE | re.DOTALL)


def clean_chapter_title(title: str, position: int, config: FolianConfig) -> str:
    """Normalize a chapter title for display.

    Trims, decodes HTML entities, and strips leading "Part"/"Section"-style words.
    Characters that XML forbids are dropped.
    A purely numeric title becomes "<label> <n>"; an empty or "Untitled" title is
    numbered by its 1-based position. Cleaning an already-clean title is a no-op.
    """
    title = xml_safe(html.unescape(title.strip())).strip()

    if config.title_prefixes:
        pattern = _prefix_pattern(config.title_prefixes)
        while match := pattern.match(title):
            title = match.group(1).strip()

    if _NUMERIC_TITLE_RE.fullmatch(title):
        return f"{config.chapter_label} {title}"
    if not title or title.lower() == "untitled":
        return f"{config.chapter_label} {position}"
    return title


def is_better_title(candidate: str, current: str, config: FolianConfig) -> bool:
    """Whether candidate should replace current as a merged chapter's title.

    A title without a generic word ("chapter", "part") beats one with it; failing
    that, a strictly longer title wins if it is longer than 10 characters.
    """
    candidate = candidate.strip()
    current = current.strip()
    candidate_lower = candidate.lower()
    current_lower = current.lower()

    if not candidate or candidate_lower == "untitled":
        return False

    for word in config.generic_title_words:
        if word in current_lower and word not in candidate_lower:
            return True

    return len(candidate) > len(current) and len(candidate) > 10


def link_density(document: RawDocument) -> float:
    """Hyperlinks per 1000 characters of plain text."""
    length = document.text_length
    if length == 0:
        return 0.0
    return document.link_count / length * 1000


def is_navigation_document(document: RawDocument, config: FolianConfig) -> bool:
    """Detect table-of-contents pages and other link-dense navigation noise."""
    if config.navigation_markers:
        pattern = _marker_pattern(config.navigation_markers)
        if pattern.search(document.title) or pattern.search(document.text):
            return True

    return (
        document.link_count > config.nav_min_links
        and link_density(document) > config.link_density_threshold
    )


@dataclass
class _Accumulator:
    """The open chapter during a consolidation scan."""

    id: str
    title: str
    order: int
    parts: list[str] = field(default_factory=list)
    text_length: int = 0

    @classmethod
    def open(cls, document: RawDocument, order: int) -> "_Accumulator":
        return cls(
            id=document.id,
            title=document.title,
            order=order,
            parts=[document.fragment],
            text_length=document.text_length,
        )

    def append(self, document: RawDocument) -> None:
        self.parts.append(document.fragment)
        self.text_length += document.text_length

    def seal(self, position: int, config: FolianConfig) -> Chapter:
        return Chapter(
            id=self.id,
            title=clean_chapter_title(self.title, position, config),
            content="\n\n".join(self.parts),
            order=self.order,
        )


def _direct(documents: list[RawDocument], config: FolianConfig) -> list[Chapter]:
    return [
        Chapter(
            id=document.id,
            title=clean_chapter_title(document.title, index + 1, config),
            content=document.fragment,
            order=index,
        )
        for index, document in enumerate(documents)
    ]


def _merge(documents: list[RawDocument], config: FolianConfig) -> list[Chapter]:
    sealed: list[Chapter] = []
    current: _Accumulator | None = None

    for index, document in enumerate(documents):
        if is_navigation_document(document, config):
            logger.debug("Dropping navigation page %s (%r)", document.href, document.title)
            continue

        length = document.text_length
        if (
            current is not None
            and length < config.min_chapter_length
            and current.text_length + length <= config.max_chapter_length
        ):
            current.append(document)
            if is_better_title(document.title, current.title, config):
                current.title = document.title
            continue

        if current is not None:
            sealed.append(current.seal(len(sealed) + 1, config))
        current = _Accumulator.open(document, index)

    if current is not None:
        sealed.append(current.seal(len(sealed) + 1, config))
    return sealed


def consolidate(documents: list[RawDocument], config: FolianConfig) -> list[Chapter]:
    """Turn spine-ordered content documents into chapters.

    At or below config.direct_mode_limit documents (or with enhanced mode off),
    each document becomes one chapter. Above it, navigation pages are dropped and
    short documents are folded into the open chapter as long as it stays within
    config.max_chapter_length characters of text.

    Args:
        documents: Content documents in spine order.
        config: Thresholds and title settings.

    Returns:
        Chapters in reading order. May be empty if every document is navigation noise.
    """
    if not config.enhanced or len(documents) <= config.direct_mode_limit:
        chapters = _direct(documents, config)
        mode = "direct"
    else:
        chapters = _merge(documents, config)
        mode = "consolidation"

    logger.info("%s mode: %d documents -> %d chapters", mode, len(documents), len(chapters))
    return chapters
