"""
Extraction pipeline for stacking multiple extraction strategies.

Strategies are tried in priority order; the first one that yields items
with enough confidence wins.
"""

from __future__ import annotations

import logging
from typing import Sequence

from lxml.html import HtmlElement

from .base import ExtractionResult, ExtractionStrategy, parse_document

logger = logging.getLogger(__name__)


class ExtractionPipeline:
    """Pipeline of named extraction strategies with fallback logic."""

    def __init__(
        self,
        strategies: Sequence[ExtractionStrategy],
        name: str = "pipeline",
        confidence_threshold: float = 0.0,
    ) -> None:
        """Initialize the extraction pipeline.

        Args:
            strategies: Strategies in priority order
            name: Label used in log lines
            confidence_threshold: Minimum strategy confidence to accept a result
        """
        if not strategies:
            raise ValueError("ExtractionPipeline needs at least one strategy")
        self.strategies = list(strategies)
        self.name = name
        self.confidence_threshold = confidence_threshold

    def extract(self, html: str | HtmlElement, base_url: str | None = None) -> ExtractionResult:
        """Try strategies in order until one succeeds.

        Args:
            html: HTML content or an already parsed document
            base_url: URL used to resolve relative links

        Returns:
            ExtractionResult from the first successful strategy
        """
        doc = parse_document(html) if isinstance(html, str) else html
        if doc is None:
            return ExtractionResult(strategy=None, errors=["Empty or unparseable document"])

        warnings: list[str] = []

        for strategy in self.strategies:
            if strategy.confidence < self.confidence_threshold:
                continue

            items = strategy.extract(doc, base_url)
            if items:
                logger.debug(
                    "%s: strategy %s matched %d items (confidence %.2f)",
                    self.name,
                    strategy.name,
                    len(items),
                    strategy.confidence,
                )
                return ExtractionResult(
                    items=items,
                    strategy=strategy.name,
                    confidence=strategy.confidence,
                    warnings=warnings,
                )
            warnings.append(f"{strategy.name}: no items")

        logger.debug("%s: no strategy matched", self.name)
        return ExtractionResult(
            strategy="pipeline_failed",
            warnings=warnings,
            errors=["All extraction strategies failed"],
        )

    def extract_all(self, html: str | HtmlElement, base_url: str | None = None) -> ExtractionResult:
        """Run every strategy and concatenate their items.

        Used where a page holds several independent listings rather than
        alternative renderings of the same one.
        """
        doc = parse_document(html) if isinstance(html, str) else html
        if doc is None:
            return ExtractionResult(strategy=None, errors=["Empty or unparseable document"])

        result = ExtractionResult(strategy=self.name)
        matched: list[str] = []
        for strategy in self.strategies:
            items = strategy.extract(doc, base_url)
            if items:
                matched.append(strategy.name)
                result.items.extend(items)
                result.confidence = max(result.confidence, strategy.confidence)

        logger.debug("%s: strategies %s yielded %d items", self.name, matched, result.count)
        return result
