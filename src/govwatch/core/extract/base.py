"""
Extraction base classes and data structures.

Defines the interface for all extraction strategies and the lxml
helpers they share.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from ..normalize.parsing import normalize_whitespace


class ExtractionMismatch(Exception):
    """A row or block does not satisfy the heuristics of a strategy.

    Raised inside strategies and swallowed by them: partial results are
    expected on these portals.
    """

    def __init__(self, reason: str, text: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.text = text


@dataclass
class ListingItem:
    """A single item from a news or notice listing page."""

    titulo: str
    resumen: str = ""
    fecha_text: str = ""  # Raw string, parsed later
    url: str | None = None
    kind: str = "NOTICIA"

    # Raw data for debugging
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractionResult:
    """Result of an extraction operation."""

    items: list[Any] = field(default_factory=list)

    # Which strategy produced the items and how much it is trusted
    strategy: str | None = None
    confidence: float = 0.0

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Check if extraction was successful."""
        return len(self.items) > 0 and self.confidence > 0

    @property
    def count(self) -> int:
        return len(self.items)


class ExtractionStrategy(ABC):
    """One way of reading items out of a parsed page."""

    #: Trust placed in items found by this strategy (0.0 - 1.0)
    confidence: float = 0.5

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier."""
        pass

    @abstractmethod
    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[Any]:
        """Extract items from a parsed document.

        Args:
            doc: Parsed HTML document
            base_url: URL used to resolve relative links

        Returns:
            Items found, empty when the strategy does not apply
        """
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} confidence={self.confidence}>"


# =============================================================================
# lxml helpers
# =============================================================================


def parse_document(html: str) -> HtmlElement | None:
    """Parse an HTML string, returning None for empty or unparseable input."""
    if not html or not html.strip():
        return None
    try:
        return lxml_html.fromstring(html)
    except (etree.ParserError, ValueError):
        return None


def element_text(element: HtmlElement) -> str:
    """Whitespace-collapsed text content of an element."""
    return normalize_whitespace(element.text_content())


def first_text(element: HtmlElement, selector: str) -> str:
    """Text of the first descendant matching ``selector`` in document order."""
    matches = element.cssselect(selector)
    return element_text(matches[0]) if matches else ""


def joined_text(element: HtmlElement, selector: str) -> str:
    """Text of every descendant matching ``selector``, joined with spaces."""
    return normalize_whitespace(" ".join(m.text_content() for m in element.cssselect(selector)))


def first_attr(element: HtmlElement, selector: str, attr: str) -> str | None:
    for match in element.cssselect(selector):
        value = match.get(attr)
        if value:
            return value.strip()
    return None


def resolve_link(href: str | None, base_url: str | None) -> str | None:
    """Make a link absolute, including protocol-relative ``//host/path`` links."""
    if not href:
        return None
    href = href.strip()
    if href.startswith(("javascript:", "#", "mailto:")):
        return None
    if href.startswith("//"):
        return f"https:{href}"
    if base_url:
        return urljoin(base_url if base_url.endswith("/") else base_url + "/", href)
    return href
