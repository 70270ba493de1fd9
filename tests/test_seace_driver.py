"""Tests for the authenticated SEACE flow against a scripted browser."""

from __future__ import annotations

import pytest

from govwatch.core.backends.playwright_backend import ActionResult, AutomationError, AutomationReason
from govwatch.core.config.models import AuthenticatedSourceSettings, BrowserConfig
from govwatch.core.config.store import AuthenticatedSettingsStore, ConfigurationError
from govwatch.core.orchestrator import Orchestrator, RunOptions
from govwatch.core.portals.base import SourceOutput
from govwatch.core.portals.seace import (
    CLICK_BACK_JS,
    OPEN_SCHEDULE_TAB_JS,
    SELECT_YEAR_JS,
    TERMS_ACCEPT_FALLBACK_SELECTOR,
    TERMS_ACCEPT_SELECTOR,
    TERMS_CHECKBOX_SELECTOR,
    DriverState,
    SeaceDriver,
    SeaceSource,
)
from govwatch.persistence.repo import TenderRepository

RESULTS_HTML = """
<html><body>
<table id="frmConsultarBandejaProveedor:dtBusqueda" class="iceDatTbl"><tbody>
  <tr class="iceDatTblRow1">
    <td>1</td>
    <td>AS-SM-5-2024-SUNAT/8B</td>
    <td>SUPERINTENDENCIA NACIONAL DE ADUANAS Y DE ADMINISTRACION TRIBUTARIA - SUNAT</td>
    <td>ADJUDICACION SIMPLIFICADA</td>
    <td>SERVICIO DE MANTENIMIENTO PREVENTIVO DE EQUIPOS DE AIRE ACONDICIONADO</td>
    <td><a id="frmConsultarBandejaProveedor:dtBusqueda:0:lnkAccion" title="Acciones">Ver</a></td>
  </tr>
  <tr class="iceDatTblRow2">
    <td>2</td>
    <td>LP-SM-2-2024-SUNAT/8B</td>
    <td>SUPERINTENDENCIA NACIONAL DE ADUANAS Y DE ADMINISTRACION TRIBUTARIA - SUNAT</td>
    <td>LICITACION PUBLICA</td>
    <td>ADQUISICION DE LAPTOPS PARA LAS INTENDENCIAS REGIONALES</td>
    <td><a id="frmConsultarBandejaProveedor:dtBusqueda:1:lnkAccion" title="Acciones">Ver</a></td>
  </tr>
</tbody></table>
</body></html>
"""

DETAIL_HTML = """
<html><body>
<table>
  <tr><th>Etapa</th><th>Fecha Inicio</th><th>Fecha Fin</th></tr>
  <tr><td>Convocatoria</td><td>01/03/2024</td><td>01/03/2024</td></tr>
  <tr><td>Av. Los Próceres 123 (LIMA/LIMA)</td><td>02/03/2024</td><td></td></tr>
  <tr><td>Presentación de propuestas</td><td>21/03/2024 00:01</td><td>21/03/2024 23:59</td></tr>
</table>
</body></html>
"""

ROW_ACTION_PREFIX = '[id="frmConsultarBandejaProveedor:dtBusqueda:'


class FakeBrowser:
    """Scripted stand-in for ``BrowserSession``."""

    def __init__(
        self,
        *,
        terms: bool = True,
        checkbox_sticks: bool = True,
        body: str = "Bienvenido",
        menu: bool = True,
        accept_button: bool = True,
    ):
        self.terms = terms
        self.checkbox_sticks = checkbox_sticks
        self.body = body
        self.menu = menu
        self.accept_button = accept_button
        self.accept_lookups = 0
        self.checked = False
        self.view = "login"
        self.closed = False
        self.filled: list[str] = []
        self.clicks: list[str] = []

    @property
    def url(self) -> str:
        return f"https://prod1.seace.gob.pe/{self.view}"

    async def goto(self, url, wait_until="load", timeout_ms=None):
        self.view = "login"

    async def wait_for_selector(self, selector, state="visible", timeout_ms=None):
        return True

    async def wait_for_navigation(self, timeout_ms=None):
        return True

    async def exists(self, selector):
        if selector == TERMS_CHECKBOX_SELECTOR:
            return self.terms
        if selector in (TERMS_ACCEPT_SELECTOR, TERMS_ACCEPT_FALLBACK_SELECTOR):
            self.accept_lookups += 1
            return self.terms and self.accept_button
        return True

    async def is_checked(self, selector):
        return self.checked

    async def body_text(self, limit=300):
        return self.body[:limit]

    async def content(self):
        return DETAIL_HTML if self.view == "detail" else RESULTS_HTML

    async def evaluate(self, script, arg=None):
        if script == SELECT_YEAR_JS:
            return {"found": True, "selectId": arg[0], "value": arg[1]}
        if script == OPEN_SCHEDULE_TAB_JS:
            return True
        if script == CLICK_BACK_JS:
            self.view = "results"
            return True
        return None

    async def click(self, selector, timeout_ms=None):
        self.clicks.append(selector)
        if selector == TERMS_CHECKBOX_SELECTOR and self.checkbox_sticks:
            self.checked = True
        if selector.startswith(ROW_ACTION_PREFIX):
            self.view = "detail"
        return ActionResult(success=True, action="click", selector=selector)

    async def fill_by_position(self, selector, values):
        self.filled = list(values)
        return ActionResult(success=True, action="fill", selector=selector)

    async def click_by_text(self, selector, text):
        return self.menu

    async def go_back(self, timeout_ms=None):
        self.view = "results"
        return True

    async def pause(self, ms):
        pass

    async def close(self):
        self.closed = True


SETTINGS = AuthenticatedSourceSettings(usuario="jperez", clave="secreto", anio="2024", enabled=True)


class TestSeaceDriver:
    async def test_full_flow_reads_schedules(self, log):
        browser = FakeBrowser()
        driver = SeaceDriver(browser, log, max_candidates=10, retry_delay_scale=0)

        records = await driver.run(SETTINGS)

        assert driver.state == DriverState.DONE
        assert browser.filled == ["jperez", "secreto"]
        assert [r.nomenclatura for r in records] == ["AS-SM-5-2024-SUNAT/8B", "LP-SM-2-2024-SUNAT/8B"]
        assert [s.name for s in records[0].stages] == ["Convocatoria", "Presentación de propuestas"]
        assert not browser.closed

    async def test_candidates_are_capped(self, log):
        driver = SeaceDriver(FakeBrowser(), log, max_candidates=1, retry_delay_scale=0)

        records = await driver.run(SETTINGS)

        assert len(records) == 1

    async def test_invalid_credentials(self, log):
        browser = FakeBrowser(terms=False, body="Usuario o clave inválidos")
        driver = SeaceDriver(browser, log, retry_delay_scale=0)

        with pytest.raises(AutomationError) as excinfo:
            await driver.run(SETTINGS)

        assert excinfo.value.reason == AutomationReason.INVALID_CREDENTIALS
        assert excinfo.value.state == DriverState.CREDENTIALS_SUBMITTED.value
        assert driver.state == DriverState.FAILED

    async def test_checkbox_that_never_sticks(self, log):
        browser = FakeBrowser(checkbox_sticks=False)
        driver = SeaceDriver(browser, log, retry_delay_scale=0)

        with pytest.raises(AutomationError) as excinfo:
            await driver.run(SETTINGS)

        assert excinfo.value.reason == AutomationReason.TERMS_CHECKBOX
        assert browser.clicks.count(TERMS_CHECKBOX_SELECTOR) == 5

    async def test_accept_button_that_never_appears(self, log):
        browser = FakeBrowser(accept_button=False)
        driver = SeaceDriver(browser, log, retry_delay_scale=0)

        with pytest.raises(AutomationError) as excinfo:
            await driver.run(SETTINGS)

        assert excinfo.value.reason == AutomationReason.TERMS_ACCEPT_BUTTON
        assert excinfo.value.state == DriverState.TERMS_PENDING.value
        assert driver.state == DriverState.FAILED
        # Both button selectors are looked up on each of the 5 attempts
        assert browser.accept_lookups == 10
        assert TERMS_ACCEPT_SELECTOR not in browser.clicks

    async def test_missing_menu_fails_navigation(self, log):
        browser = FakeBrowser(menu=False)
        browser.exists = _exists_without_menu(browser)
        driver = SeaceDriver(browser, log, retry_delay_scale=0)

        with pytest.raises(AutomationError) as excinfo:
            await driver.run(SETTINGS)

        assert excinfo.value.reason == AutomationReason.SEARCH_FORM_MISSING
        assert excinfo.value.state == DriverState.NAVIGATING_TO_SEARCH.value


def _exists_without_menu(browser: FakeBrowser):
    original = browser.exists

    async def exists(selector):
        if "consultarBandejaProcedimientosSeleccion" in selector:
            return False
        return await original(selector)

    return exists


class StubPublicSource:
    def __init__(self):
        self.calls = 0

    async def collect(self, log):
        self.calls += 1
        return SourceOutput(metadata={"mode": "public"})


def seace_job(sessions, browser: FakeBrowser, public=None) -> SeaceSource:
    return SeaceSource(
        sessions,
        BrowserConfig(step_delay_scale=0),
        browser_factory=lambda: browser,
        public_source=public or StubPublicSource(),
    )


class TestSeaceSource:
    async def test_disabled_uses_public_listing(self, sessions, log):
        public = StubPublicSource()
        browser = FakeBrowser()

        output = await seace_job(sessions, browser, public).collect(log)

        assert public.calls == 1
        assert output.metadata == {"mode": "public"}
        assert browser.clicks == []

    async def test_enabled_without_credentials_is_a_config_error(self, sessions, log):
        AuthenticatedSettingsStore(sessions).update(enabled=True, usuario="jperez")

        with pytest.raises(ConfigurationError):
            await seace_job(sessions, FakeBrowser()).collect(log)

    async def test_authenticated_run_persists_tenders(self, sessions, log):
        AuthenticatedSettingsStore(sessions).update(usuario="jperez", clave="secreto", enabled=True)
        browser = FakeBrowser()

        output = await seace_job(sessions, browser).collect(log)

        assert browser.closed
        assert output.count == 2
        assert output.metadata["new_tenders"] == 2
        assert all(a.tipo == "LICITACION" for a in output.alerts)
        with sessions() as session:
            tender = TenderRepository(session).get_by_nomenclatura("AS-SM-5-2024-SUNAT/8B")
            assert tender.sigla_entidad == "SUNAT"
            assert [s.nombre for s in tender.stages] == ["Convocatoria", "Presentación de propuestas"]

        output = await seace_job(sessions, FakeBrowser()).collect(log)
        assert output.metadata["updated_tenders"] == 2

    async def test_invalid_credentials_closes_browser_and_records_error(self, sessions, bus):
        AuthenticatedSettingsStore(sessions).update(usuario="jperez", clave="mala", enabled=True)
        browser = FakeBrowser(terms=False, body="Usuario o clave inválidos")
        orchestrator = Orchestrator(sessions, bus, jobs={"seace": seace_job(sessions, browser)})

        result = await orchestrator.run(RunOptions(force=True, run_purge=False, sources=["seace"]))

        assert browser.closed
        assert not result.success
        assert result.errors == ["SEACE: Credenciales inválidas [INVALID_CREDENTIALS]"]
        assert "INVALID_CREDENTIALS" in orchestrator.store.get("seace").last_error
        assert orchestrator.store.get("seace").last_success is None
