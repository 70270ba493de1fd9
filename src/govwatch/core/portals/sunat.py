"""
SUNAT portal job.

Collects public news, regulations and communiqués from the tax agency
portal. Only public pages are read; nothing taxpayer-specific is
accessed.
"""

from __future__ import annotations

import re

from lxml.html import HtmlElement

from ..backends.http_backend import FallbackFetcher
from ..config.models import AlertType, SourceName
from ..extract.base import ExtractionStrategy, ListingItem, element_text, first_attr, resolve_link
from ..extract.listing import SelectorCascadeStrategy
from ..extract.pipeline import ExtractionPipeline
from ..normalize.records import dedupe_by_title
from ..sessions.bus import SessionLogger
from .base import TITLE_DEDUPE_PREFIX, SourceOutput, StaticSourceJob

SUNAT_BASE_URL = "https://www.sunat.gob.pe"
SUNAT_LEGISLACION_URL = f"{SUNAT_BASE_URL}/legislacion/"
SUNAT_PRENSA_URL = f"{SUNAT_BASE_URL}/institucional/prensa/"

# Item kinds used before mapping to alert types
KIND_NOTICIA = "NOTICIA"
KIND_COMUNICADO = "COMUNICADO"
KIND_RESOLUCION = "RESOLUCION"

REGULATION_WORDS_RE = re.compile(r"resoluci[oó]n|decreto|norma|ley", re.IGNORECASE)
REGULATION_TITLE_RE = re.compile(
    r"(Resoluci[oó]n.*?\d+[-/]\d+|Decreto.*?\d+[-/]\d+|Norma.*?\d+[-/]\d+)",
    re.IGNORECASE,
)
INLINE_DATE_RE = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{4}")

MIN_REGULATION_TEXT = 20
REGULATION_TITLE_FALLBACK = 100


class RegulationRowStrategy(ExtractionStrategy):
    """Regulation rows of the legislation page, recognized by their wording."""

    confidence = 0.6
    item_selector = "table tr, .norma-item, .resolucion, li"

    @property
    def name(self) -> str:
        return "sunat_regulation_rows"

    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[ListingItem]:
        items = []
        for row in doc.cssselect(self.item_selector):
            text = element_text(row)
            if len(text) <= MIN_REGULATION_TEXT or not REGULATION_WORDS_RE.search(text):
                continue

            match = REGULATION_TITLE_RE.search(text)
            date_match = INLINE_DATE_RE.search(text)
            items.append(
                ListingItem(
                    titulo=match.group(1) if match else text[:REGULATION_TITLE_FALLBACK],
                    resumen=text,
                    fecha_text=date_match.group(0) if date_match else "",
                    url=resolve_link(first_attr(row, "a", "href"), base_url),
                    kind=KIND_RESOLUCION,
                )
            )
        return items


def build_news_pipeline() -> ExtractionPipeline:
    """Home page news: article blocks plus the "latest news" lists."""
    return ExtractionPipeline(
        [
            SelectorCascadeStrategy(
                "sunat_news_blocks",
                'article, .noticia, .news-item, .content-item, div[class*="noticia"]',
                title_selector="h1, h2, h3, h4, .titulo, .title, a",
                summary_selector="p, .contenido, .body, .resumen",
                date_selector='.fecha, .date, time, span[class*="date"]',
                kind=KIND_NOTICIA,
                confidence=0.8,
            ),
            SelectorCascadeStrategy(
                "sunat_news_list",
                ".ultimas-noticias li, .novedades li, .lista-noticias li",
                title_selector="a",
                kind=KIND_NOTICIA,
                confidence=0.6,
                title_from_block=True,
            ),
        ],
        name="sunat_noticias",
    )


def build_regulations_pipeline() -> ExtractionPipeline:
    return ExtractionPipeline([RegulationRowStrategy()], name="sunat_normas")


def build_notices_pipeline() -> ExtractionPipeline:
    return ExtractionPipeline(
        [
            SelectorCascadeStrategy(
                "sunat_notice_blocks",
                '.comunicado, .aviso, .alerta, div[class*="comunicado"], div[class*="aviso"]',
                title_selector="h1, h2, h3, h4, .titulo, strong",
                summary_selector="p, .contenido",
                kind=KIND_COMUNICADO,
                confidence=0.7,
            ),
        ],
        name="sunat_comunicados",
    )


def alert_type_for(kind: str) -> AlertType:
    """Regulations become tax alerts; everything else is news."""
    return AlertType.TRIBUTARIO if kind == KIND_RESOLUCION else AlertType.NOTICIA


class SunatSource(StaticSourceJob):
    """News, regulations and communiqués from the SUNAT portal."""

    source = SourceName.SUNAT
    base_url = SUNAT_BASE_URL

    async def collect_with(self, fetcher: FallbackFetcher, log: SessionLogger) -> SourceOutput:
        noticias: list[ListingItem] = []
        comunicados: list[ListingItem] = []

        log.info("Obteniendo noticias de SUNAT...")
        home = await self.try_fetch(fetcher, SUNAT_BASE_URL, log)
        if home is not None:
            noticias = self.run_pipeline(
                build_news_pipeline(), home, SUNAT_BASE_URL, log, collect_all=True
            )
            comunicados = self.run_pipeline(build_notices_pipeline(), home, SUNAT_BASE_URL, log)

        log.info("Obteniendo normas de SUNAT...")
        normas = await self.read_listing(
            fetcher, SUNAT_LEGISLACION_URL, build_regulations_pipeline(), log
        )

        log.info("Obteniendo comunicados de prensa de SUNAT...")
        comunicados += await self.read_listing(
            fetcher, SUNAT_PRENSA_URL, build_notices_pipeline(), log
        )

        unique = dedupe_by_title(
            [*noticias, *normas, *comunicados],
            key=lambda item: item.titulo,
            prefix=TITLE_DEDUPE_PREFIX,
        )
        alerts = [self.to_alert(item, alert_type_for(item.kind)) for item in unique]

        log.info(
            f"SUNAT: {len(noticias)} noticias, {len(normas)} normas, "
            f"{len(comunicados)} comunicados ({len(alerts)} únicos)"
        )
        return SourceOutput(
            alerts=alerts,
            metadata={
                "noticias": len(noticias),
                "normas": len(normas),
                "comunicados": len(comunicados),
            },
        )
