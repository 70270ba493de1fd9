"""Tests for the static portal extractors and source jobs."""

from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from govwatch.core.backends.base import ServerError
from govwatch.core.backends.http_backend import FallbackFetcher, LegacySslHttpBackend, ModernHttpBackend
from govwatch.core.config.models import FetchConfig
from govwatch.core.extract.base import parse_document
from govwatch.core.extract.listing import SelectorCascadeStrategy
from govwatch.core.extract.pipeline import ExtractionPipeline
from govwatch.core.portals.osce import OsceSource, build_noticias_pipeline
from govwatch.core.portals.seace_public import SeacePublicSource, build_public_pipeline, public_tender_alert
from govwatch.core.portals.sunat import SunatSource, alert_type_for, build_regulations_pipeline

OSCE_NEWS = """
<html><body>
  <div class="views-row">
    <article>
      <h2><a href="/osce/noticia/1">OSCE capacita a proveedores del Estado</a></h2>
      <p>Más de 500 proveedores participaron en la jornada.</p>
      <span class="fecha">15/03/2024</span>
    </article>
  </div>
  <div class="views-row">
    <article><h2><a href="//www.gob.pe/osce/2">Nueva directiva de contrataciones</a></h2></article>
  </div>
  <article><h2>Breve</h2></article>
</body></html>
"""

OSCE_NOTICES = """
<html><body>
  <div class="node">
    <h3><a href="/osce/comunicado/9">Comunicado sobre el mantenimiento del SEACE</a></h3>
    <p>El sistema no estará disponible el domingo.</p>
  </div>
</body></html>
"""

SUNAT_HOME = """
<html><body>
  <article class="noticia">
    <h3>SUNAT amplía plazo de declaración anual</h3>
    <p>Los contribuyentes podrán presentar su declaración hasta mayo.</p>
    <span class="fecha">01/04/2024</span>
    <a href="/noticias/1">ver</a>
  </article>
  <div class="ultimas-noticias">
    <ul><li><a href="/noticias/2">Nuevo cronograma de obligaciones mensuales</a></li></ul>
  </div>
</body></html>
"""

SUNAT_LEGISLATION = """
<html><body>
  <table>
    <tr><th>Norma</th></tr>
    <tr>
      <td><a href="/legislacion/2024/123.pdf">Resolución de Superintendencia N° 000123-2024/SUNAT</a></td>
      <td>Publicado 10/03/2024</td>
    </tr>
    <tr><td>Enlaces de interés y otros documentos</td></tr>
  </table>
</body></html>
"""

SUNAT_PRESS = """
<html><body>
  <div class="comunicado">
    <h4>Comunicado: atención en centros de servicio</h4>
    <p>Horario especial por feriado largo.</p>
  </div>
</body></html>
"""

SEACE_GRID = """
<html><body>
  <table class="ui-datatable">
    <tbody>
      <tr>
        <td>LP-SM-1-2024-GRC</td>
        <td>Construcción de puente vehicular</td>
        <td>GOBIERNO REGIONAL DE CUSCO</td>
        <td>S/ 1,250,000.00</td>
        <td>15/03/2024</td>
      </tr>
      <tr><td>incompleta</td><td></td></tr>
    </tbody>
  </table>
</body></html>
"""

SEACE_CARDS = """
<html><body>
  <div class="resultado-item">
    <h3>Adquisición de uniformes institucionales</h3>
    <span class="entidad">MUNICIPALIDAD PROVINCIAL DE PIURA</span>
    <span class="monto">S/ 80,000</span>
  </div>
</body></html>
"""


def mock_fetcher(pages: dict[str, tuple[int, str]]) -> FallbackFetcher:
    def handler(request: httpx.Request) -> httpx.Response:
        status, body = pages.get(request.url.path, (404, "<html></html>"))
        return httpx.Response(status, text=body)

    config = FetchConfig(server_error_retries=1)
    transport = httpx.MockTransport(handler)
    return FallbackFetcher(
        config,
        modern=ModernHttpBackend(config, transport=transport),
        legacy=LegacySslHttpBackend(config, transport=transport),
    )


class TestSelectorCascade:
    def test_osce_news_blocks(self):
        result = build_noticias_pipeline().extract(OSCE_NEWS, "https://portal.osce.gob.pe")

        assert result.strategy == "osce_news_blocks"
        assert [i.titulo for i in result.items] == [
            "OSCE capacita a proveedores del Estado",
            "Nueva directiva de contrataciones",
        ]
        first, second = result.items
        assert first.resumen == "Más de 500 proveedores participaron en la jornada."
        assert first.fecha_text == "15/03/2024"
        assert first.url == "https://portal.osce.gob.pe/osce/noticia/1"
        assert second.url == "https://www.gob.pe/osce/2"
        assert second.resumen == second.titulo

    def test_falls_back_to_loose_divs(self):
        html = """
        <html><body><div class="bloque-noticia-destacada">
          <a href="/n/5">Pronunciamiento sobre bases estandarizadas</a>
          Texto adicional del bloque
        </div></body></html>
        """
        result = build_noticias_pipeline().extract(html, "https://portal.osce.gob.pe")

        assert result.strategy == "osce_news_divs"
        item = result.items[0]
        assert item.titulo == "Pronunciamiento sobre bases estandarizadas"
        assert item.resumen == "Texto adicional del bloque"

    def test_empty_page_reports_failure(self):
        assert not build_noticias_pipeline().extract("").ok
        assert build_noticias_pipeline().extract("<html><body></body></html>").strategy == "pipeline_failed"

    def test_pipeline_needs_a_strategy(self):
        with pytest.raises(ValueError):
            ExtractionPipeline([])

    def test_title_from_block_when_selector_misses(self):
        strategy = SelectorCascadeStrategy("list", "li", title_selector="a", title_from_block=True)
        doc = parse_document("<html><body><ul><li>Aviso sin enlace publicado hoy</li></ul></body></html>")
        items = strategy.extract(doc)
        assert items[0].titulo == "Aviso sin enlace publicado hoy"


class TestSunatExtraction:
    def test_regulation_rows(self):
        result = build_regulations_pipeline().extract(SUNAT_LEGISLATION, "https://www.sunat.gob.pe")

        assert result.count == 1
        item = result.items[0]
        assert item.titulo == "Resolución de Superintendencia N° 000123-2024"
        assert item.fecha_text == "10/03/2024"
        assert item.url == "https://www.sunat.gob.pe/legislacion/2024/123.pdf"
        assert alert_type_for(item.kind).value == "TRIBUTARIO"

    async def test_collects_all_pages(self, log):
        fetcher = mock_fetcher({
            "/": (200, SUNAT_HOME),
            "/legislacion/": (200, SUNAT_LEGISLATION),
            "/institucional/prensa/": (200, SUNAT_PRESS),
        })
        job = SunatSource(fetcher.config, fetcher=fetcher)

        output = await job.collect(log)
        await fetcher.close()

        by_title = {a.titulo: a for a in output.alerts}
        assert set(by_title) == {
            "SUNAT amplía plazo de declaración anual",
            "Nuevo cronograma de obligaciones mensuales",
            "Resolución de Superintendencia N° 000123-2024",
            "Comunicado: atención en centros de servicio",
        }
        assert by_title["Resolución de Superintendencia N° 000123-2024"].tipo == "TRIBUTARIO"
        assert by_title["Comunicado: atención en centros de servicio"].tipo == "NOTICIA"
        assert by_title["SUNAT amplía plazo de declaración anual"].fecha_publicacion == datetime(2024, 4, 1)
        assert all(a.fuente == "SUNAT" for a in output.alerts)


class TestOsceSource:
    async def test_news_and_notices(self, log):
        fetcher = mock_fetcher({
            "/osce/content/noticias": (200, OSCE_NEWS),
            "/osce/content/comunicados": (200, OSCE_NOTICES),
        })
        output = await OsceSource(fetcher.config, fetcher=fetcher).collect(log)
        await fetcher.close()

        assert output.metadata == {"noticias": 2, "comunicados": 1}
        tipos = {a.titulo: a.tipo for a in output.alerts}
        assert tipos["Comunicado sobre el mantenimiento del SEACE"] == "COMUNICADO"
        assert tipos["OSCE capacita a proveedores del Estado"] == "NOTICIA"

    async def test_repeated_title_across_pages_is_kept_once(self, log):
        news = """
        <html><body><article>
          <h2><a href="/osce/noticia/7">Comunicado  sobre el mantenimiento   del SEACE</a></h2>
          <p>Aviso reproducido en noticias.</p>
        </article></body></html>
        """
        fetcher = mock_fetcher({
            "/osce/content/noticias": (200, news),
            "/osce/content/comunicados": (200, OSCE_NOTICES),
        })
        output = await OsceSource(fetcher.config, fetcher=fetcher).collect(log)
        await fetcher.close()

        assert output.metadata == {"noticias": 1, "comunicados": 1}
        assert output.count == 1
        assert output.alerts[0].tipo == "NOTICIA"

    async def test_failing_page_is_skipped(self, log):
        fetcher = mock_fetcher({
            "/osce/content/noticias": (200, OSCE_NEWS),
            "/osce/content/comunicados": (503, "mantenimiento"),
        })
        output = await OsceSource(fetcher.config, fetcher=fetcher).collect(log)
        await fetcher.close()

        assert output.metadata == {"noticias": 2, "comunicados": 0}
        assert any("No se pudo obtener" in m for m in log.messages("warning"))


class TestSeacePublic:
    def test_grid_rows(self):
        result = build_public_pipeline().extract(SEACE_GRID)

        assert result.strategy == "seace_public_grid"
        tender = result.items[0]
        assert tender.nomenclatura == "LP-SM-1-2024-GRC"
        assert tender.monto == 1250000.0
        assert tender.region == "CUSCO"
        assert tender.url.endswith("nroConvocatoria=LP-SM-1-2024-GRC")

        alert = public_tender_alert(tender)
        assert alert.tipo == "LICITACION"
        assert alert.fecha_publicacion == datetime(2024, 3, 15)
        assert "Valor Referencial: S/ 1,250,000.00" in alert.contenido

    def test_card_fallback(self):
        result = build_public_pipeline().extract(SEACE_CARDS)

        assert result.strategy == "seace_public_cards"
        tender = result.items[0]
        assert tender.objeto == "Adquisición de uniformes institucionales"
        assert tender.monto == 80000.0
        assert tender.region == "PIURA"

    async def test_transport_failure_fails_the_job(self, log):
        fetcher = mock_fetcher({})
        fetcher.legacy = LegacySslHttpBackend(
            fetcher.config,
            transport=httpx.MockTransport(lambda request: httpx.Response(502)),
        )
        job = SeacePublicSource(fetcher.config, fetcher=fetcher)

        with pytest.raises(ServerError) as excinfo:
            await job.collect(log)
        await fetcher.close()

        assert "502" in str(excinfo.value)
