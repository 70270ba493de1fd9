"""
Selector cascade extraction for news and notice listings.

Portal listings are themed differently from page to page, so each
strategy carries a list of alternative CSS selectors for the item block
and for each field inside it.
"""

from __future__ import annotations

import logging

from lxml.html import HtmlElement

from ..normalize.parsing import truncate
from .base import (
    ExtractionMismatch,
    ExtractionStrategy,
    ListingItem,
    element_text,
    first_attr,
    first_text,
    joined_text,
    resolve_link,
)

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 10
BLOCK_SUMMARY_LIMIT = 300


class SelectorCascadeStrategy(ExtractionStrategy):
    """Read listing items from blocks matched by a CSS selector list.

    Features:
    - First-match title and summary selectors
    - All-match date selector (dates are often split across spans)
    - Block-text fallback when the markup has no summary element
    - Relative and protocol-relative link resolution
    """

    def __init__(
        self,
        name: str,
        item_selector: str,
        *,
        title_selector: str | None = None,
        summary_selector: str | None = None,
        date_selector: str | None = None,
        link_selector: str = "a",
        kind: str = "NOTICIA",
        confidence: float = 0.8,
        min_title_length: int = MIN_TITLE_LENGTH,
        title_from_block: bool = False,
        summary_from_block: bool = False,
    ):
        """Initialize strategy.

        Args:
            name: Strategy identifier used in logs
            item_selector: CSS selector list for item blocks
            title_selector: Selector for the title (first match)
            summary_selector: Selector for the summary (first match)
            date_selector: Selector for the date text (all matches)
            link_selector: Selector for the element carrying ``href``
            kind: Item kind stamped on every result
            confidence: Trust placed in this strategy
            min_title_length: Titles this short or shorter are rejected
            title_from_block: Use the block text when the title selector misses
            summary_from_block: Summary is the block text minus the title
        """
        self._name = name
        self.item_selector = item_selector
        self.title_selector = title_selector
        self.summary_selector = summary_selector
        self.date_selector = date_selector
        self.link_selector = link_selector
        self.kind = kind
        self.confidence = confidence
        self.min_title_length = min_title_length
        self.title_from_block = title_from_block
        self.summary_from_block = summary_from_block

    @property
    def name(self) -> str:
        return self._name

    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[ListingItem]:
        items: list[ListingItem] = []
        seen: set[tuple[str, str | None]] = set()

        for block in doc.cssselect(self.item_selector):
            try:
                item = self._read_block(block, base_url)
            except ExtractionMismatch as e:
                logger.debug("%s: skipped block (%s)", self.name, e.reason)
                continue

            # Nested blocks (article inside .views-row) repeat the same item
            marker = (item.titulo, item.url)
            if marker in seen:
                continue
            seen.add(marker)
            items.append(item)

        return items

    def _read_block(self, block: HtmlElement, base_url: str | None) -> ListingItem:
        block_text = element_text(block)

        titulo = first_text(block, self.title_selector) if self.title_selector else ""
        if not titulo and (self.title_from_block or not self.title_selector):
            titulo = block_text

        if len(titulo) <= self.min_title_length:
            raise ExtractionMismatch("title too short", titulo)

        resumen = ""
        if self.summary_selector:
            resumen = first_text(block, self.summary_selector)
        elif self.summary_from_block:
            resumen = truncate(block_text.replace(titulo, "", 1).strip(), BLOCK_SUMMARY_LIMIT)

        fecha_text = joined_text(block, self.date_selector) if self.date_selector else ""
        href = first_attr(block, self.link_selector, "href") if self.link_selector else None

        return ListingItem(
            titulo=titulo,
            resumen=resumen or titulo,
            fecha_text=fecha_text,
            url=resolve_link(href, base_url),
            kind=self.kind,
            raw_data={"strategy": self.name},
        )
