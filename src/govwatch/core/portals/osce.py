"""
OSCE portal job.

Reads the public news and communiqué listings of the procurement
supervisor. Neither page needs a login.
"""

from __future__ import annotations

from ..backends.http_backend import FallbackFetcher
from ..config.models import AlertType, SourceName
from ..extract.listing import SelectorCascadeStrategy
from ..extract.pipeline import ExtractionPipeline
from ..normalize.records import dedupe_by_title
from ..sessions.bus import SessionLogger
from .base import TITLE_DEDUPE_PREFIX, SourceOutput, StaticSourceJob

OSCE_BASE_URL = "https://portal.osce.gob.pe"
OSCE_NOTICIAS_URL = f"{OSCE_BASE_URL}/osce/content/noticias"
OSCE_COMUNICADOS_URL = f"{OSCE_BASE_URL}/osce/content/comunicados"


def build_noticias_pipeline() -> ExtractionPipeline:
    return ExtractionPipeline(
        [
            SelectorCascadeStrategy(
                "osce_news_blocks",
                ".noticia-item, .news-item, article, .views-row",
                title_selector="h2, h3, .titulo, .title, a",
                summary_selector="p, .resumen, .summary, .body",
                date_selector=".fecha, .date, time, .field-date",
                link_selector="a[href]",
                kind=AlertType.NOTICIA.value,
                confidence=0.8,
            ),
            SelectorCascadeStrategy(
                "osce_news_divs",
                'div[class*="noticia"], div[class*="news"]',
                title_selector="a, h2, h3, h4",
                link_selector="a[href]",
                kind=AlertType.NOTICIA.value,
                confidence=0.5,
                summary_from_block=True,
            ),
        ],
        name="osce_noticias",
    )


def build_comunicados_pipeline() -> ExtractionPipeline:
    return ExtractionPipeline(
        [
            SelectorCascadeStrategy(
                "osce_notice_blocks",
                ".comunicado-item, .views-row, article, .node",
                title_selector="h2, h3, .titulo, .title, a",
                summary_selector="p, .resumen, .body",
                date_selector=".fecha, .date, time",
                link_selector="a[href]",
                kind=AlertType.COMUNICADO.value,
                confidence=0.8,
            ),
        ],
        name="osce_comunicados",
    )


class OsceSource(StaticSourceJob):
    """News (NOTICIA) and communiqués (COMUNICADO) from the OSCE portal."""

    source = SourceName.OSCE
    base_url = OSCE_BASE_URL

    async def collect_with(self, fetcher: FallbackFetcher, log: SessionLogger) -> SourceOutput:
        log.info("Obteniendo noticias de OSCE...")
        noticias = await self.read_listing(fetcher, OSCE_NOTICIAS_URL, build_noticias_pipeline(), log)

        log.info("Obteniendo comunicados de OSCE...")
        comunicados = await self.read_listing(
            fetcher, OSCE_COMUNICADOS_URL, build_comunicados_pipeline(), log
        )

        alerts = [self.to_alert(item, AlertType.NOTICIA) for item in noticias]
        alerts += [self.to_alert(item, AlertType.COMUNICADO) for item in comunicados]
        alerts = dedupe_by_title(alerts, key=lambda alert: alert.titulo, prefix=TITLE_DEDUPE_PREFIX)

        log.info(
            f"OSCE: {len(noticias)} noticias, {len(comunicados)} comunicados ({len(alerts)} únicos)"
        )
        return SourceOutput(
            alerts=alerts,
            metadata={"noticias": len(noticias), "comunicados": len(comunicados)},
        )
