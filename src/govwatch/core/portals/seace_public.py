"""
Public SEACE search listing.

Used for the SEACE source when the authenticated account is not enabled.
The public search page renders a PrimeFaces datatable of open calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

from lxml.html import HtmlElement

from ..backends.http_backend import FallbackFetcher
from ..config.heuristics import PERU_REGIONS
from ..config.models import AlertType, SourceName
from ..extract.base import ExtractionStrategy, element_text, first_text
from ..extract.pipeline import ExtractionPipeline
from ..normalize.parsing import parse_date_or_now, parse_money
from ..normalize.records import NormalizedAlert, extract_region, format_soles
from ..sessions.bus import SessionLogger
from .base import SourceOutput, StaticSourceJob

SEACE_PUBLIC_BASE_URL = "https://prodapp2.seace.gob.pe"
SEACE_PUBLIC_SEARCH_URL = (
    f"{SEACE_PUBLIC_BASE_URL}/seacebus-uiwd-pub/buscadorPublico/buscadorPublico.xhtml"
)
SEACE_PUBLIC_DETAIL_URL = (
    f"{SEACE_PUBLIC_BASE_URL}/seacebus-uiwd-pub/fichaSeleccion/fichaSeleccion.xhtml"
    "?nroConvocatoria={nomenclatura}"
)


@dataclass
class PublicTender:
    """An open call read from the public listing."""

    nomenclatura: str
    objeto: str
    entidad: str
    monto: float
    fecha_text: str = ""
    region: str | None = None
    url: str | None = None


def _amount(text: str) -> float:
    parsed = parse_money(text)
    return float(parsed.amount) if parsed.amount is not None else 0.0


class PublicGridStrategy(ExtractionStrategy):
    """Rows of the PrimeFaces results datatable."""

    confidence = 0.8

    def __init__(self, regions: list[str] | None = None):
        self.regions = regions or PERU_REGIONS

    @property
    def name(self) -> str:
        return "seace_public_grid"

    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[PublicTender]:
        tenders = []
        for row in doc.cssselect("table.ui-datatable tbody tr"):
            cells = [element_text(td) for td in row.xpath("./td")]
            if len(cells) < 5:
                continue

            nomenclatura, objeto, entidad, monto_text, fecha_text = cells[:5]
            if not nomenclatura or not objeto:
                continue

            tenders.append(
                PublicTender(
                    nomenclatura=nomenclatura,
                    objeto=objeto,
                    entidad=entidad,
                    monto=_amount(monto_text),
                    fecha_text=fecha_text,
                    region=extract_region(entidad, self.regions),
                    url=SEACE_PUBLIC_DETAIL_URL.format(nomenclatura=quote(nomenclatura, safe="")),
                )
            )
        return tenders


class PublicCardStrategy(ExtractionStrategy):
    """Card layout served by some releases of the search page."""

    confidence = 0.5

    def __init__(self, regions: list[str] | None = None):
        self.regions = regions or PERU_REGIONS

    @property
    def name(self) -> str:
        return "seace_public_cards"

    def extract(self, doc: HtmlElement, base_url: str | None = None) -> list[PublicTender]:
        tenders = []
        for card in doc.cssselect(".resultado-item, .convocatoria-item"):
            titulo = first_text(card, ".titulo, h3, h4")
            if not titulo:
                continue
            entidad = first_text(card, ".entidad")
            tenders.append(
                PublicTender(
                    nomenclatura=titulo[:50],
                    objeto=titulo,
                    entidad=entidad or "No especificada",
                    monto=_amount(first_text(card, ".monto, .valor")),
                    region=extract_region(entidad, self.regions),
                )
            )
        return tenders


def build_public_pipeline(regions: list[str] | None = None) -> ExtractionPipeline:
    return ExtractionPipeline(
        [PublicGridStrategy(regions), PublicCardStrategy(regions)],
        name="seace_public",
    )


def public_tender_alert(tender: PublicTender, now: datetime | None = None) -> NormalizedAlert:
    return NormalizedAlert(
        titulo=tender.nomenclatura,
        contenido=(
            f"{tender.objeto}\n\nEntidad: {tender.entidad}\n"
            f"Valor Referencial: S/ {format_soles(tender.monto)}"
        ),
        fuente=SourceName.SEACE.label,
        fecha_publicacion=parse_date_or_now(tender.fecha_text, now),
        tipo=AlertType.LICITACION.value,
        url_origen=tender.url,
        region=tender.region,
        entidad=tender.entidad,
        monto=tender.monto,
    )


class SeacePublicSource(StaticSourceJob):
    """Open calls from the public SEACE search (no login)."""

    source = SourceName.SEACE
    base_url = SEACE_PUBLIC_BASE_URL

    def __init__(self, *args, regions: list[str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.regions = regions

    async def collect_with(self, fetcher: FallbackFetcher, log: SessionLogger) -> SourceOutput:
        log.info("Consultando buscador público de SEACE...")
        # The listing is the whole source: a transport failure fails the run
        html = await self.fetch_page(fetcher, SEACE_PUBLIC_SEARCH_URL)

        result = build_public_pipeline(self.regions).extract(html, self.base_url)
        alerts = [public_tender_alert(t) for t in result.items]

        log.info(f"SEACE público: {len(alerts)} convocatorias ({result.strategy})")
        return SourceOutput(alerts=alerts, metadata={"mode": "public", "strategy": result.strategy})
