# ABOUTME: Unit tests for the Markup Sanitizer.
# ABOUTME: Checks DOM cleanup by re-parsing the output, plus the pattern fallback path.

from unittest.mock import patch

from bs4 import BeautifulSoup
from lxml import etree

from folian.core.sanitizer import (
    MarkupParseError,
    is_denied_class,
    is_denied_id,
    relink_image,
    sanitize,
    sanitize_dom,
    sanitize_patterns,
)


def parse(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


class TestDenylists:
    """Tests for the publisher naming patterns."""

    def test_denied_classes(self) -> None:
        """Calibre, sgc-, kobo-, and adobe- classes are publisher cruft."""
        for token in ("calibre", "calibre12", "Calibre_Heading", "sgc-3", "kobo-span", "adobe-x"):
            assert is_denied_class(token), token

    def test_semantic_classes_kept(self) -> None:
        """Ordinary class names survive."""
        for token in ("note", "epigraph", "smallcaps", "my-sgc-1"):
            assert not is_denied_class(token), token

    def test_denied_ids(self) -> None:
        """Calibre and toc anchors are stripped; plain ids are not."""
        assert is_denied_id("calibre_link-4")
        assert is_denied_id("TOC_2")
        assert is_denied_id("sgc-12")
        assert not is_denied_id("footnote-3")


class TestRelinkImage:
    """Tests for image reference rewriting."""

    def test_relative_paths_flattened(self) -> None:
        """Any relative image path points into ../images/."""
        assert relink_image("../Images/pic%201.png") == "../images/pic%201.png"
        assert relink_image("img/deep/a.jpg") == "../images/a.jpg"

    def test_external_and_inline_untouched(self) -> None:
        """Data URIs and absolute URLs are left alone."""
        assert relink_image("data:image/png;base64,AAA") == "data:image/png;base64,AAA"
        assert relink_image("https://example.com/a.png") == "https://example.com/a.png"


class TestSanitizeDom:
    """Tests for the DOM path."""

    def test_strips_style_everywhere(self) -> None:
        """No element keeps an inline style."""
        result = sanitize_dom('<p style="color:red">a <em style="x">b</em></p>')
        assert parse(result).find(style=True) is None
        assert "<em>b</em>" in result

    def test_class_tokens_filtered_individually(self) -> None:
        """Only denylisted tokens are removed; the attribute goes if nothing remains."""
        soup = parse(sanitize_dom('<p class="calibre1 note">a</p><p class="sgc-2 calibre3">b</p>'))
        first, second = soup.find_all("p")
        assert first["class"] == ["note"]
        assert not second.has_attr("class")

    def test_denied_ids_removed(self) -> None:
        """Publisher ids go, semantic ids stay."""
        soup = parse(sanitize_dom('<h2 id="calibre_toc_1">A</h2><p id="fn1">B</p>'))
        assert not soup.h2.has_attr("id")
        assert soup.p["id"] == "fn1"

    def test_empty_containers_removed(self) -> None:
        """Empty div and span elements disappear; ones with content stay."""
        soup = parse(sanitize_dom("<div></div><span> </span><div><p>kept</p></div><span>x</span>"))
        assert len(soup.find_all("div")) == 1
        assert len(soup.find_all("span")) == 1

    def test_empty_container_with_child_element_kept(self) -> None:
        """A container holding an image has no text but is not empty."""
        soup = parse(sanitize_dom('<div><img src="a.png"/></div>'))
        assert soup.div is not None

    def test_single_pass_leaves_outer_shell(self) -> None:
        """A container that only becomes empty after cleanup survives this pass."""
        soup = parse(sanitize_dom('<div class="outer"><span></span></div>'))
        assert soup.find("span") is None
        assert soup.find("div", class_="outer") is not None

    def test_inline_formatting_preserved(self) -> None:
        """Semantic structure and inline formatting pass through."""
        result = sanitize_dom("<h2>T</h2><p><strong>bold</strong> and <i>it</i></p><blockquote>q</blockquote>")
        soup = parse(result)
        assert soup.h2.text == "T"
        assert soup.strong.text == "bold"
        assert soup.blockquote.text == "q"

    def test_images_relinked(self) -> None:
        """img src and svg image hrefs point at ../images/."""
        soup = parse(sanitize_dom('<p><img src="../Images/a.png"/></p>'))
        assert soup.img["src"] == "../images/a.png"

    def test_svg_attribute_case_restored(self) -> None:
        """Inline SVG keeps its camelCase attributes and elements after parsing."""
        result = sanitize_dom(
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10" preserveAspectRatio="none">'
            '<linearGradient id="g"/><rect width="10" height="10"/></svg>'
        )
        assert 'viewBox="0 0 10 10"' in result
        assert 'preserveAspectRatio="none"' in result
        assert "<linearGradient" in result
        assert "viewbox" not in result

    def test_full_document_returns_body_inner(self) -> None:
        """Given a whole document, only the body's children come back."""
        result = sanitize_dom("<html><head><title>x</title></head><body><p>only</p></body></html>")
        assert result == "<p>only</p>"


class TestSanitizePatterns:
    """Tests for the text-substitution fallback."""

    def test_same_denylists(self) -> None:
        """Style, denylisted classes, and ids are removed by substitution."""
        result = sanitize_patterns(
            '<body><p style="x" class="calibre2 note" id="calibre_1">a</p><div></div></body>'
        )
        assert result == '<p class="note">a</p>'

    def test_class_removed_when_empty(self) -> None:
        """A class attribute with only denylisted tokens is dropped entirely."""
        assert sanitize_patterns('<p class="sgc-1">a</p>') == "<p>a</p>"

    def test_images_relinked(self) -> None:
        """Image references are flattened like the DOM path."""
        assert sanitize_patterns('<img src="x/y.png"/>') == '<img src="../images/y.png"/>'


class TestSanitize:
    """Tests for the dispatcher."""

    def test_uses_dom_path(self) -> None:
        """Well-formed input goes through the DOM path."""
        with patch("folian.core.sanitizer.sanitize_patterns") as fallback:
            sanitize("<p>fine</p>")
        fallback.assert_not_called()

    def test_falls_back_on_parse_failure(self) -> None:
        """A DOM failure transparently switches to pattern cleanup."""
        with patch("folian.core.sanitizer.sanitize_dom", side_effect=MarkupParseError("boom")):
            result = sanitize('<p class="calibre5" style="x">text</p>')
        assert result == "<p>text</p>"

    def test_xml_invalid_characters_removed(self) -> None:
        """Control characters from character references never reach the output."""
        result = sanitize("<p>&#12;x</p>")
        assert "\x0c" not in result
        assert "x" in result
        etree.fromstring(result)

    def test_fallback_output_is_also_cleaned(self) -> None:
        """The pattern path gets the same character filtering."""
        with patch("folian.core.sanitizer.sanitize_dom", side_effect=MarkupParseError("boom")):
            assert sanitize("<p>a\x0cb</p>") == "<p>ab</p>"
