# ABOUTME: Character-level cleanup for text headed into generated XML and XHTML.
# ABOUTME: Removes code points that XML 1.0 forbids, such as form feeds and NUL bytes.

import re

# The Char production of XML 1.0.
XML_CHAR_RANGES = (
    (0x9, 0xA),
    (0xD, 0xD),
    (0x20, 0xD7FF),
    (0xE000, 0xFFFD),
    (0x10000, 0x10FFFF),
)

_INVALID_XML_CHARS_RE = re.compile(
    "[^" + "".join(f"{chr(low)}-{chr(high)}" for low, high in XML_CHAR_RANGES) + "]"
)


def xml_safe(text: str) -> str:
    """Drop characters that cannot appear in an XML 1.0 document.

    lxml refuses such strings outright, and a hand-assembled XHTML file that
    contains them is not well-formed.
    """
    return _INVALID_XML_CHARS_RE.sub("", text)
