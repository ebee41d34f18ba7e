# ABOUTME: Book model package: data types and manifest classification.
# ABOUTME: Exports the Book aggregate and the types that hang off it.

from folian.book.types import (
    Book,
    Chapter,
    GuideReference,
    ManifestItem,
    Metadata,
    RawDocument,
    SpineItem,
)

__all__ = [
    "Book",
    "Chapter",
    "GuideReference",
    "ManifestItem",
    "Metadata",
    "RawDocument",
    "SpineItem",
]
