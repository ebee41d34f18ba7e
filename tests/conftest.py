# ABOUTME: Shared pytest fixtures for Folian tests.
# ABOUTME: Builds source EPUBs with ebooklib, a format directory, and deliberately broken archives.

import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest
from ebooklib import epub

from folian.config import FolianConfig
from folian.formats.archive import extract_archive

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
FONT_BYTES = b"\x00\x01\x00\x00" + b"\x00" * 64

PROSE = (
    "The river ran past the old mill and the miller watched the water turn the wheel. "
    "Nobody in the village remembered a summer as dry as this one. "
)

TITLEPAGE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>Cover</title></head>
<body>
<div>
<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" version="1.1" viewBox="0 0 600 800">
<image width="600" height="800" xlink:href="images/{{COVER_IMAGE}}"/>
</svg>
</div>
</body>
</html>
"""

JACKET_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>{{BOOK_TITLE}}</title><link href="styles/stylesheet.css" rel="stylesheet" type="text/css"/></head>
<body>
<h1 class="title">{{BOOK_TITLE}}</h1>
<p class="subtitle">{{BOOK_SUBTITLE}}</p>
<p class="author">{{BOOK_AUTHOR}}</p>
<img src="images/folian.png" alt="Folian"/>
</body>
</html>
"""

NAV_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>{{BOOK_TITLE}}</title></head>
<body>
<nav epub:type="toc" id="toc">
<h1>{{BOOK_TITLE}}</h1>
<ol>
{{TOC_ENTRIES}}
</ol>
</nav>
</body>
</html>
"""


def prose(length: int) -> str:
    """Plain prose of exactly length characters."""
    repeated = PROSE * (length // len(PROSE) + 1)
    return repeated[:length]


@pytest.fixture
def format_dir(tmp_path: Path) -> Path:
    """A complete format directory: templates, stylesheet, font, and logo."""
    directory = tmp_path / "format"
    directory.mkdir()
    (directory / "stylesheet.css").write_text("body { font-family: 'Jura', serif; }\n")
    (directory / "jura.ttf").write_bytes(FONT_BYTES)
    (directory / "folian.png").write_bytes(PNG_BYTES)
    (directory / "titlepage.xhtml").write_text(TITLEPAGE_TEMPLATE)
    (directory / "jacket.xhtml").write_text(JACKET_TEMPLATE)
    (directory / "nav.xhtml").write_text(NAV_TEMPLATE)
    return directory


@pytest.fixture
def config(format_dir: Path) -> FolianConfig:
    """Default settings pointed at the test format directory."""
    return FolianConfig(format_dir=format_dir)


EpubFactory = Callable[..., Path]


@pytest.fixture
def make_epub(tmp_path: Path) -> EpubFactory:
    """Factory that writes an EPUB from (title, body markup) pairs.

    Keyword arguments: name, title, author, description, cover (bool),
    images (list of file names under images/), stylesheet (bool).
    """

    def _make(
        chapters: list[tuple[str, str]],
        *,
        name: str = "book.epub",
        title: str = "The Miller's Year",
        author: str = "Ada Brook",
        description: str = "",
        cover: bool = False,
        images: tuple[str, ...] = (),
        stylesheet: bool = False,
    ) -> Path:
        book = epub.EpubBook()
        book.set_identifier(f"id-{name}")
        book.set_title(title)
        book.set_language("en")
        if author:
            book.add_author(author)
        book.add_metadata("DC", "publisher", "Millstone Press")
        if description:
            book.add_metadata("DC", "description", description)

        if cover:
            book.set_cover("images/cover.jpg", JPEG_BYTES, create_page=False)
        for image in images:
            book.add_item(
                epub.EpubImage(
                    uid=image.rsplit(".", 1)[0],
                    file_name=f"images/{image}",
                    media_type="image/png",
                    content=PNG_BYTES,
                )
            )
        if stylesheet:
            book.add_item(
                epub.EpubItem(
                    uid="style", file_name="styles/main.css", media_type="text/css",
                    content=b"p { margin: 0; }",
                )
            )

        items = []
        for index, (chapter_title, body) in enumerate(chapters, start=1):
            item = epub.EpubHtml(title=chapter_title, file_name=f"text/part{index:04d}.xhtml", lang="en")
            item.content = f"<html><head><title>{chapter_title}</title></head><body>{body}</body></html>"
            book.add_item(item)
            items.append(item)

        book.toc = [epub.Link(item.file_name, item.title, f"link{i}") for i, item in enumerate(items)]
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = ["nav", *items]

        filepath = tmp_path / name
        epub.write_epub(str(filepath), book)
        return filepath

    return _make


@pytest.fixture
def sample_epub(make_epub: EpubFactory) -> Path:
    """A small, well-formed book with a cover, an inline image, and publisher cruft."""
    chapters = [
        (
            "The Mill",
            '<h1 class="calibre1 heading">The Mill</h1>'
            f'<p class="calibre2" style="color: red">{prose(900)}</p>'
            '<p><img src="../images/wheel.png" alt="The wheel"/></p>',
        ),
        (
            "The Drought",
            '<h1>The Drought</h1>'
            f'<div id="calibre_toc_3"><p class="sgc-4 note">{prose(1200)}</p></div>'
            "<div></div>",
        ),
        (
            "The Rain",
            f"<h1>The Rain</h1><p>{prose(1000)}</p>",
        ),
    ]
    return make_epub(
        chapters,
        name="millers_year.epub",
        description="A year in the life of a village miller during the great drought.",
        cover=True,
        images=("wheel.png",),
        stylesheet=True,
    )


@pytest.fixture
def fragmented_epub(make_epub: EpubFactory) -> Path:
    """A split-up book: a link list page, then three long openers each followed by nine fragments."""
    links = "".join(f'<li><a href="part{n:04d}.xhtml">Part {n}</a></li>' for n in range(2, 22))
    chapters = [("Table of Contents", f"<h1>Table of Contents</h1><ol>{links}</ol>")]
    for story in ("The First Story", "The Second Story", "The Third Story"):
        chapters.append((story, f"<h1>{story}</h1><p>{prose(1000)}</p>"))
        for fragment in range(1, 10):
            chapters.append((f"Part {fragment}", f"<p>{prose(300)}</p>"))
    return make_epub(chapters, name="fragmented.epub")


@pytest.fixture
def extracted_sample(sample_epub: Path, tmp_path: Path) -> Path:
    """The sample EPUB unpacked into a directory."""
    return extract_archive(sample_epub, tmp_path / "extracted")


@pytest.fixture
def corrupt_epub(tmp_path: Path) -> Path:
    """A file that is not a zip archive at all."""
    filepath = tmp_path / "corrupt.epub"
    filepath.write_text("this is not a valid epub file")
    return filepath


MALFORMED_OPF = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="uid">
<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
<dc:title>Salt &amp; Stone</dc:title>
<dc:creator>First Author</dc:creator>
<dc:creator>Second Author</dc:creator>
<dc:language>en</dc:language>
<dc:description>Broken & unescaped <br> markup</dc:description>
<meta name="cover" content="cover-img"/>
</metadata>
<manifest>
<item id="cover-img" href="images/front.jpg" media-type="image/jpeg"/>
<item id="ch1" href="ch1.xhtml" media-type="application/xhtml+xml"/>
<item id="ch2" href="ch2.xhtml" media-type="application/xhtml+xml"/>
<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
</manifest>
<spine toc="ncx">
<itemref idref="ch1"/>
<itemref idref="ch2"/>
<itemref idref="ghost"/>
</spine>
</package>
"""

CONTAINER = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
<rootfiles><rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/></rootfiles>
</container>
"""


def write_zip(path: Path, entries: dict[str, bytes | str]) -> Path:
    """Write a zip archive with a stored mimetype followed by the given entries."""
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        for name, data in entries.items():
            archive.writestr(name, data, compress_type=zipfile.ZIP_DEFLATED)
    return path


@pytest.fixture
def malformed_opf_epub(tmp_path: Path) -> Path:
    """An EPUB whose package descriptor is not well-formed XML."""
    return write_zip(
        tmp_path / "malformed.epub",
        {
            "META-INF/container.xml": CONTAINER,
            "OEBPS/content.opf": MALFORMED_OPF,
            "OEBPS/images/front.jpg": JPEG_BYTES,
            "OEBPS/ch1.xhtml": f"<html><body><h1>Salt</h1><p>{prose(500)}</p></body></html>",
            "OEBPS/ch2.xhtml": f"<html><body><h1>Stone</h1><p>{prose(500)}</p></body></html>",
        },
    )


@pytest.fixture
def traversal_zip(tmp_path: Path) -> Path:
    """A zip with an entry that climbs out of the extraction directory."""
    return write_zip(
        tmp_path / "evil.epub",
        {"META-INF/container.xml": CONTAINER, "../../escaped.txt": "gotcha"},
    )


@pytest.fixture
def control_char_epub(tmp_path: Path) -> Path:
    """A malformed package whose title and first heading carry a form feed."""
    return write_zip(
        tmp_path / "formfeed.epub",
        {
            "META-INF/container.xml": CONTAINER,
            "OEBPS/content.opf": MALFORMED_OPF.replace("Salt &amp; Stone", "Salt\x0c &amp; Stone"),
            "OEBPS/images/front.jpg": JPEG_BYTES,
            "OEBPS/ch1.xhtml": f"<html><body><h1>Salt&#12;</h1><p>&#12;{prose(500)}</p></body></html>",
            "OEBPS/ch2.xhtml": f"<html><body><h1>Stone</h1><p>{prose(500)}</p></body></html>",
        },
    )


@pytest.fixture
def host_file(tmp_path: Path) -> Path:
    """A file outside any extracted book."""
    path = tmp_path / "host" / "private.xhtml"
    path.parent.mkdir()
    path.write_text("<html><body><h1>Private</h1><p>HOST-ONLY-CONTENT</p></body></html>")
    return path


@pytest.fixture
def escaping_manifest_epub(tmp_path: Path, host_file: Path) -> Path:
    """A package whose second content document climbs out to host_file."""
    climbing_href = "../" * 40 + host_file.as_posix().lstrip("/")
    opf = f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="uid">
<metadata xmlns:dc="http://purl.org/dc/elements/1.1/"><dc:title>Open Door</dc:title></metadata>
<manifest>
<item id="ch1" href="ch1.xhtml" media-type="application/xhtml+xml"/>
<item id="leak" href="{climbing_href}" media-type="application/xhtml+xml"/>
</manifest>
<spine><itemref idref="ch1"/><itemref idref="leak"/></spine>
</package>
"""
    return write_zip(
        tmp_path / "door.epub",
        {
            "META-INF/container.xml": CONTAINER,
            "OEBPS/content.opf": opf,
            "OEBPS/ch1.xhtml": f"<html><body><h1>Inside</h1><p>{prose(500)}</p></body></html>",
        },
    )
