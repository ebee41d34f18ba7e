# ABOUTME: Access to the user-supplied format directory (templates, stylesheet, font, logo).
# ABOUTME: Placeholders are replaced by plain text substitution, every occurrence.

from collections.abc import Mapping
from pathlib import Path

STYLESHEET_FILE = "stylesheet.css"
FONT_FILE = "jura.ttf"
LOGO_FILE = "folian.png"
TITLEPAGE_TEMPLATE = "titlepage.xhtml"
JACKET_TEMPLATE = "jacket.xhtml"
NAV_TEMPLATE = "nav.xhtml"

COVER_IMAGE = "{{COVER_IMAGE}}"
BOOK_TITLE = "{{BOOK_TITLE}}"
BOOK_AUTHOR = "{{BOOK_AUTHOR}}"
BOOK_SUBTITLE = "{{BOOK_SUBTITLE}}"
TOC_ENTRIES = "{{TOC_ENTRIES}}"


class TemplateError(Exception):
    """Raised when a required file is missing from the format directory."""


def fill_template(template: str, values: Mapping[str, str]) -> str:
    """Replace every occurrence of each placeholder token with its value.

    Values are inserted verbatim; callers escape them for the markup context.
    """
    for token, value in values.items():
        template = template.replace(token, value)
    return template


class TemplateSet:
    """The files of one format directory, read on demand."""

    def __init__(self, format_dir: Path) -> None:
        self.format_dir = format_dir

    def _read_bytes(self, name: str) -> bytes:
        path = self.format_dir / name
        try:
            return path.read_bytes()
        except OSError as exc:
            raise TemplateError(f"Failed to read {name} from format directory {self.format_dir}: {exc}") from exc

    def _read_text(self, name: str) -> str:
        return self._read_bytes(name).decode("utf-8")

    def stylesheet(self) -> bytes:
        return self._read_bytes(STYLESHEET_FILE)

    def font(self) -> bytes:
        return self._read_bytes(FONT_FILE)

    def logo(self) -> bytes | None:
        """The logo is optional; None when the format directory has none."""
        try:
            return self._read_bytes(LOGO_FILE)
        except TemplateError:
            return None

    def titlepage(self) -> str:
        return self._read_text(TITLEPAGE_TEMPLATE)

    def jacket(self) -> str:
        return self._read_text(JACKET_TEMPLATE)

    def nav(self) -> str:
        return self._read_text(NAV_TEMPLATE)
