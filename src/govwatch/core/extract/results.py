"""
Results grid parsing for the authenticated tender search.

The grid has no header semantics worth trusting: columns move between
releases and cells mix labels, hidden inputs and script. Fields are
picked by shape instead of position, with positions only as fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from lxml.html import HtmlElement

from ..config.heuristics import SCRIPT_NOISE_TOKENS, HeuristicsConfig
from ..normalize.parsing import normalize_whitespace
from ..normalize.records import TenderRecord
from .base import ExtractionMismatch, parse_document

logger = logging.getLogger(__name__)

RESULTS_TABLE_SELECTOR = '[id="frmConsultarBandejaProveedor:dtBusqueda"], table.iceDatTbl'
RESULTS_ROW_SELECTOR = "tr.iceDatTblRow1, tr.iceDatTblRow2, tbody tr"
ROW_ACTION_SELECTOR = 'a, input[type="image"], input[type="button"], button'
ROW_ACTION_FALLBACK_SELECTOR = 'input[id*="idFicha"]'
ROW_INDEX_RE = re.compile(r":dtBusqueda:(\d+):")

# Column limits of the tender table
NOMENCLATURE_LIMIT = 200
ENTITY_LIMIT = 300
OBJECT_LIMIT = 1000
SELECTION_TYPE_LIMIT = 200


@dataclass
class ResultRow:
    """A grid row: the tender it describes and the control opening its detail."""

    record: TenderRecord
    action_id: str | None = None

    @property
    def index(self) -> int | None:
        return self.record.row_index


class ResultsGridParser:
    """Parse tender candidates out of the search results grid."""

    def __init__(self, heuristics: HeuristicsConfig | None = None):
        self.heuristics = heuristics or HeuristicsConfig()
        self._nomenclature_re = re.compile(self.heuristics.nomenclature_pattern)

    def find_table(self, doc: HtmlElement) -> HtmlElement | None:
        tables = doc.cssselect(RESULTS_TABLE_SELECTOR)
        return tables[0] if tables else None

    def parse(self, html: str) -> list[ResultRow]:
        """Parse every usable row of the results grid.

        Args:
            html: Full page HTML after the search

        Returns:
            Rows with a nomenclature, in grid order
        """
        doc = parse_document(html)
        if doc is None:
            return []

        table = self.find_table(doc)
        if table is None:
            logger.debug("Results table not present in page")
            return []

        rows: list[ResultRow] = []
        for position, row in enumerate(table.cssselect(RESULTS_ROW_SELECTOR)):
            try:
                rows.append(self.parse_row(row, position))
            except ExtractionMismatch as e:
                logger.debug("Skipped results row %d: %s", position, e.reason)
        return rows

    # -------------------------------------------------------------------------
    # Row level
    # -------------------------------------------------------------------------

    def cell_texts(self, row: HtmlElement) -> list[str]:
        """Usable cell texts: non-empty, bounded, free of inline script."""
        texts = []
        for cell in row.xpath("./td"):
            text = normalize_whitespace(cell.text_content())
            if not text or len(text) >= self.heuristics.max_cell_length:
                continue
            if any(token in text for token in SCRIPT_NOISE_TOKENS):
                continue
            texts.append(text)
        return texts

    def parse_row(self, row: HtmlElement, position: int = 0) -> ResultRow:
        """Read one grid row.

        Raises:
            ExtractionMismatch: If the row is not a tender row
        """
        if len(row.xpath("./td")) < 3:
            raise ExtractionMismatch("fewer than 3 cells")

        texts = self.cell_texts(row)
        if len(texts) < 3:
            raise ExtractionMismatch("fewer than 3 usable cells")

        nomenclatura = self._pick_nomenclature(texts)
        if not nomenclatura:
            raise ExtractionMismatch("no nomenclature")

        entidad = self._pick_entity(texts)
        objeto = self._pick_object(texts, exclude={nomenclatura, entidad})
        tipo = self._pick_selection_type(texts)

        record = TenderRecord(
            nomenclatura=nomenclatura[:NOMENCLATURE_LIMIT],
            objeto=objeto[:OBJECT_LIMIT],
            entidad=entidad[:ENTITY_LIMIT],
            tipo_seleccion=tipo[:SELECTION_TYPE_LIMIT],
            row_index=self.row_index(row, position),
        )
        return ResultRow(record=record, action_id=self.action_id(row))

    def _pick_nomenclature(self, texts: list[str]) -> str:
        for text in texts:
            if self._nomenclature_re.match(text):
                return text
        return texts[1] if len(texts) > 1 else ""

    def _pick_entity(self, texts: list[str]) -> str:
        keywords = self.heuristics.institution_keywords
        candidates = [
            t for t in texts
            if len(t) > self.heuristics.min_entity_length and any(k in t for k in keywords)
        ]
        if candidates:
            return max(candidates, key=len)
        return texts[2] if len(texts) > 2 else ""

    def _pick_object(self, texts: list[str], exclude: set[str]) -> str:
        candidates = [
            t for t in texts
            if len(t) > self.heuristics.min_object_length
            and t not in exclude
            and "ADJUDICACI" not in t
        ]
        if candidates:
            return max(candidates, key=len)
        return texts[4] if len(texts) > 4 else ""

    def _pick_selection_type(self, texts: list[str]) -> str:
        for text in texts:
            if any(k in text for k in self.heuristics.selection_type_keywords):
                return text
        return ""

    @staticmethod
    def row_index(row: HtmlElement, position: int) -> int:
        """Grid index from element ids (``...:dtBusqueda:3:...``), else position."""
        for element in row.xpath(".//*[contains(@id, 'dtBusqueda:')]"):
            match = ROW_INDEX_RE.search(element.get("id", ""))
            if match:
                return int(match.group(1))
        return position

    @staticmethod
    def action_id(row: HtmlElement) -> str | None:
        """Id of the control that opens the tender detail."""
        for element in row.cssselect(ROW_ACTION_SELECTOR):
            element_id = element.get("id") or ""
            title = (element.get("title") or "").lower()
            text = element.text_content().lower()
            if "accion" in title or "accion" in text or "accion" in element_id.lower():
                if element_id:
                    return element_id

        for element in row.cssselect(ROW_ACTION_FALLBACK_SELECTOR):
            if element.get("id"):
                return element.get("id")
        return None
