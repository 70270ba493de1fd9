"""
Schedule (cronograma) table extraction.

Detail pages of a tender render the schedule as an unlabeled ICEfaces
table next to layout tables holding addresses and notes. Two strategies
locate it:
- ``HeaderMatchStrategy``: a table whose first row names the stage,
  start and end columns
- ``DateColumnStrategy``: the table with the most rows whose second or
  third cell starts with a date

Rows of the chosen table then go through ``StageRowFilter``.
"""

from __future__ import annotations

import logging
import re

from lxml.html import HtmlElement
from thefuzz import fuzz

from ..config.heuristics import STAGE_BULLET_PREFIXES, STAGE_HEADER_LABELS, HeuristicsConfig
from ..normalize.parsing import extract_cell_date, looks_like_date, normalize_whitespace
from ..normalize.records import StageEntry
from .base import ExtractionMismatch, ExtractionStrategy
from .pipeline import ExtractionPipeline

logger = logging.getLogger(__name__)

# "(LIMA/LIMA)" style location suffix of an address line
ADDRESS_RE = re.compile(r"\([A-ZÁÉÍÓÚÑ\s/]+\)")

MIN_DATE_ROWS = 3


def cell_text(cell: HtmlElement) -> str:
    """Text of a schedule cell without nested noise.

    ICEfaces wraps values in a span; otherwise the first text node is the
    value and later children are tooltips or hidden inputs.
    """
    span = cell.find(".//span")
    if span is not None:
        return normalize_whitespace(span.text_content())
    if cell.text and cell.text.strip():
        return normalize_whitespace(cell.text)
    return normalize_whitespace(cell.text_content())


def row_cells(row: HtmlElement) -> list[HtmlElement]:
    return row.xpath("./td")


# =============================================================================
# Row filtering
# =============================================================================


class StageRowFilter:
    """Validate schedule rows against the stage vocabulary and blocklists."""

    def __init__(self, heuristics: HeuristicsConfig | None = None):
        self.heuristics = heuristics or HeuristicsConfig()

    def parse_row(self, row: HtmlElement) -> StageEntry:
        """Turn a table row into a stage.

        Raises:
            ExtractionMismatch: If the row is not a valid schedule stage
        """
        cells = row_cells(row)
        if len(cells) < 3:
            raise ExtractionMismatch("fewer than 3 cells")

        name, start_cell, end_cell = (cell_text(c) for c in cells[:3])
        if not (looks_like_date(start_cell) or looks_like_date(end_cell)):
            raise ExtractionMismatch("no date column", name)

        return self.validate(name, extract_cell_date(start_cell), extract_cell_date(end_cell))

    def validate(self, name: str, start: str, end: str) -> StageEntry:
        """Apply the stage rules to already split cell values."""
        lowered = name.lower().strip()

        if not lowered or lowered == "etapa" or "fecha inicio" in lowered or "fecha fin" in lowered:
            raise ExtractionMismatch("header or empty", name)

        if any(phrase in lowered for phrase in self.heuristics.invalid_stage_phrases):
            raise ExtractionMismatch("address or note phrase", name)

        if ADDRESS_RE.search(name) and "/" in name:
            raise ExtractionMismatch("address pattern", name)

        if name.startswith(STAGE_BULLET_PREFIXES):
            raise ExtractionMismatch("bullet note", name)

        if len(name) > self.heuristics.max_stage_name_length:
            raise ExtractionMismatch("too long", name)

        if not start and not end:
            raise ExtractionMismatch("no dates", name)

        if not any(valid in lowered for valid in self.heuristics.valid_stage_names):
            raise ExtractionMismatch("unknown stage", name)

        return StageEntry(
            name=name[: self.heuristics.stage_name_truncate],
            start_raw=start,
            end_raw=end,
        )

    def collect(self, table: HtmlElement) -> list[StageEntry]:
        """Valid, de-duplicated stages of a table in row order."""
        stages: list[StageEntry] = []
        seen: set[tuple[str, str, str]] = set()

        for row in table.xpath(".//tr"):
            try:
                stage = self.parse_row(row)
            except ExtractionMismatch as e:
                logger.debug("Rejected schedule row %r: %s", e.text, e.reason)
                continue

            key = (stage.name.lower(), stage.start_raw, stage.end_raw)
            if key in seen:
                continue
            seen.add(key)
            stages.append(stage)

        return stages


# =============================================================================
# Table location strategies
# =============================================================================


class HeaderMatchStrategy(ExtractionStrategy):
    """Find the schedule table by its header labels."""

    confidence = 0.9

    def __init__(self, row_filter: StageRowFilter | None = None):
        self.row_filter = row_filter or StageRowFilter()
        self.fuzzy_threshold = self.row_filter.heuristics.header_fuzzy_threshold

    @property
    def name(self) -> str:
        return "header_match"

    def _label_matches(self, text: str, role: str) -> bool:
        exact, *partials = STAGE_HEADER_LABELS[role]
        if role == "stage":
            if text == exact:
                return True
        elif exact in text or any(text == p for p in partials):
            return True
        return fuzz.ratio(text, exact) >= self.fuzzy_threshold

    def is_schedule_header(self, table: HtmlElement) -> bool:
        first_row = table.xpath(".//tr")
        if not first_row:
            return False

        labels = [
            normalize_whitespace(cell.text_content()).lower()
            for cell in first_row[0].xpath("./th|./td")
        ]
        return all(
            any(self._label_matches(label, role) for label in labels)
            for role in ("stage", "start", "end")
        )

    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[StageEntry]:
        for table in doc.iter("table"):
            if self.is_schedule_header(table):
                return self.row_filter.collect(table)
        return []


class DateColumnStrategy(ExtractionStrategy):
    """Pick the table with the most date-looking rows."""

    confidence = 0.6

    def __init__(self, row_filter: StageRowFilter | None = None, min_rows: int = MIN_DATE_ROWS):
        self.row_filter = row_filter or StageRowFilter()
        self.min_rows = min_rows

    @property
    def name(self) -> str:
        return "date_columns"

    @staticmethod
    def count_date_rows(table: HtmlElement) -> int:
        count = 0
        for row in table.xpath(".//tr"):
            cells = row_cells(row)
            if len(cells) >= 3 and (
                looks_like_date(cell_text(cells[1])) or looks_like_date(cell_text(cells[2]))
            ):
                count += 1
        return count

    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[StageEntry]:
        best: HtmlElement | None = None
        best_count = 0

        for table in doc.iter("table"):
            count = self.count_date_rows(table)
            if count > best_count:
                best, best_count = table, count

        if best is None or best_count < self.min_rows:
            return []
        return self.row_filter.collect(best)


def build_stage_pipeline(heuristics: HeuristicsConfig | None = None) -> ExtractionPipeline:
    """Schedule extraction: header match first, date columns as fallback."""
    row_filter = StageRowFilter(heuristics)
    return ExtractionPipeline(
        [HeaderMatchStrategy(row_filter), DateColumnStrategy(row_filter)],
        name="cronograma",
    )


def extract_stages(html: str, heuristics: HeuristicsConfig | None = None) -> list[StageEntry]:
    """Extract the schedule stages of a tender detail page."""
    return build_stage_pipeline(heuristics).extract(html).items
