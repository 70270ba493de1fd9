"""
Authenticated SEACE job.

Logs into the SEACE provider portal with a browser, accepts the terms
page, opens "Mis procedimientos de selección", searches the configured
year and walks the first results to read their schedules.

The flow is a linear state machine:

    LOGGED_OUT -> CREDENTIALS_SUBMITTED -> TERMS_PENDING -> TERMS_ACCEPTED
    -> NAVIGATING_TO_SEARCH -> SEARCH_FORM_READY -> RESULTS_LISTED
    -> (DETAIL_OPEN -> RESULTS_LISTED)* -> DONE

Any step that cannot complete moves to FAILED and raises AutomationError.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ...persistence.db import SessionScope
from ...persistence.repo import TenderRepository
from ..backends.playwright_backend import (
    ActionResult,
    AutomationError,
    AutomationReason,
    BrowserError,
    BrowserSession,
)
from ..config.heuristics import HeuristicsConfig
from ..config.models import AuthenticatedSourceSettings, BrowserConfig, SourceName
from ..config.store import AuthenticatedSettingsStore, ConfigurationError
from ..extract.results import RESULTS_TABLE_SELECTOR, ResultRow, ResultsGridParser
from ..extract.stages import build_stage_pipeline
from ..fetch.retries import retry_until
from ..normalize.records import StageEntry, TenderRecord, build_tender_alert
from ..sessions.bus import SessionLogger
from .base import SourceJob, SourceOutput
from .seace_public import SeacePublicSource


class DriverState(str, Enum):
    """Where the authenticated flow currently is."""

    LOGGED_OUT = "LOGGED_OUT"
    CREDENTIALS_SUBMITTED = "CREDENTIALS_SUBMITTED"
    TERMS_PENDING = "TERMS_PENDING"
    TERMS_ACCEPTED = "TERMS_ACCEPTED"
    NAVIGATING_TO_SEARCH = "NAVIGATING_TO_SEARCH"
    SEARCH_FORM_READY = "SEARCH_FORM_READY"
    RESULTS_LISTED = "RESULTS_LISTED"
    DETAIL_OPEN = "DETAIL_OPEN"
    DONE = "DONE"
    FAILED = "FAILED"


# =============================================================================
# Page selectors and scripts
# =============================================================================

SEACE_LOGIN_URL = "https://prod1.seace.gob.pe/portal/"

LOGIN_INPUT_SELECTOR = 'input[type="text"]'
CREDENTIAL_INPUTS_SELECTOR = 'input[type="text"], input[type="password"]'
LOGIN_BUTTON_SELECTOR = 'input[value="Acceder"]'

TERMS_CHECKBOX_SELECTOR = '[id="terminosCondiciones:idcheckBox"]'
TERMS_ACCEPT_SELECTOR = '[id="terminosCondiciones:idButtonAceptar"]'
TERMS_ACCEPT_FALLBACK_SELECTOR = 'input.desocultar[value="Acepto"]:not([disabled])'

MENU_TEXT = "mis procedimientos"
MENU_FALLBACK_SELECTOR = 'a[onclick*="consultarBandejaProcedimientosSeleccion"]'
SEARCH_FORM_SELECTOR = 'select, input[value="Buscar"]'

YEAR_SELECT_ID = "frmConsultarBandejaProveedor:j_id248"
SEARCH_BUTTON_SELECTOR = '[id="frmConsultarBandejaProveedor:idBuscar"]'
SEARCH_BUTTON_FALLBACK_SELECTOR = 'input[value="Buscar"]'

INVALID_CREDENTIALS_MARKER = "inválid"

# Sets the year dropdown and fires the events ICEfaces listens to
SELECT_YEAR_JS = """([selectId, year]) => {
    let sel = document.getElementById(selectId);
    if (!sel) {
        for (const s of document.querySelectorAll('select.iceSelOneMnu')) {
            if (Array.from(s.options).some(o => /^20\\d{2}$/.test(o.value))) {
                sel = s;
                break;
            }
        }
    }
    if (!sel) {
        return {found: false, error: 'No se encontró select de año'};
    }
    if (!Array.from(sel.options).some(o => o.value === year)) {
        return {found: false, error: `Año ${year} no encontrado en opciones`};
    }
    sel.value = year;
    sel.dispatchEvent(new Event('change', {bubbles: true}));
    sel.dispatchEvent(new Event('blur', {bubbles: true}));
    if (typeof window.setFocus === 'function') {
        window.setFocus('');
    }
    return {found: true, selectId: sel.id, value: year};
}"""

# Clicks the "Cronograma" tab of a tender detail when the page has tabs
OPEN_SCHEDULE_TAB_JS = """() => {
    for (const el of document.querySelectorAll('a, span, div, button, td')) {
        const text = (el.textContent || '').toLowerCase().trim();
        if (!text.includes('cronograma')) continue;
        const tag = el.tagName.toLowerCase();
        if (tag === 'a' || tag === 'button' || el.getAttribute('onclick') || el.classList.contains('icePnlTb')) {
            el.click();
            return true;
        }
    }
    return false;
}"""

# Clicks the "Regresar" control of a tender detail
CLICK_BACK_JS = """() => {
    for (const btn of document.querySelectorAll('input[value="Regresar"], a, button')) {
        const text = (btn.textContent || '').toLowerCase().trim();
        const value = (btn.value || '').toLowerCase();
        if (text.includes('regresar') || value.includes('regresar')) {
            btn.click();
            return true;
        }
    }
    return false;
}"""


class BrowserPage(Protocol):
    """The page operations the driver relies on (``BrowserSession`` implements them)."""

    @property
    def url(self) -> str: ...

    async def goto(self, url: str, wait_until: str = ..., timeout_ms: int | None = ...) -> None: ...

    async def wait_for_selector(
        self, selector: str, state: str = ..., timeout_ms: int | None = ...
    ) -> bool: ...

    async def wait_for_navigation(self, timeout_ms: int | None = ...) -> bool: ...

    async def exists(self, selector: str) -> bool: ...

    async def is_checked(self, selector: str) -> bool: ...

    async def body_text(self, limit: int = ...) -> str: ...

    async def content(self) -> str: ...

    async def evaluate(self, script: str, arg: Any = ...) -> Any: ...

    async def click(self, selector: str, timeout_ms: int | None = ...) -> ActionResult: ...

    async def fill_by_position(self, selector: str, values: list[str]) -> ActionResult: ...

    async def click_by_text(self, selector: str, text: str) -> bool: ...

    async def go_back(self, timeout_ms: int | None = ...) -> bool: ...

    async def pause(self, ms: int) -> None: ...

    async def close(self) -> None: ...


# =============================================================================
# Driver
# =============================================================================


class SeaceDriver:
    """Runs the authenticated SEACE flow on one browser page.

    The driver never closes the browser; its owner does.
    """

    def __init__(
        self,
        browser: BrowserPage,
        log: SessionLogger,
        *,
        login_url: str = SEACE_LOGIN_URL,
        max_candidates: int = 10,
        heuristics: HeuristicsConfig | None = None,
        retry_delay_scale: float = 1.0,
    ):
        """Initialize the driver.

        Args:
            browser: Page wrapper to drive
            log: Session logger for progress lines
            login_url: Portal entry page
            max_candidates: Result rows opened per run
            heuristics: Vocabularies for grid and schedule parsing
            retry_delay_scale: Multiplier for the pauses between retries
        """
        self.browser = browser
        self.log = log
        self.login_url = login_url
        self.max_candidates = max_candidates
        self.retry_delay_scale = retry_delay_scale
        self.grid_parser = ResultsGridParser(heuristics)
        self.stage_pipeline = build_stage_pipeline(heuristics)
        self.state = DriverState.LOGGED_OUT

    def _transition(self, state: DriverState, message: str) -> None:
        self.state = state
        self.log.info(message, {"state": state.value})

    def _fail(self, reason: AutomationReason, message: str) -> AutomationError:
        failed_in = self.state.value
        self.state = DriverState.FAILED
        self.log.error(message, {"state": failed_in, "reason": reason.value})
        return AutomationError(reason, message, url=self.browser.url, state=failed_in)

    async def run(self, settings: AuthenticatedSourceSettings) -> list[TenderRecord]:
        """Execute the whole flow.

        Returns:
            Tender records of the processed result rows

        Raises:
            AutomationError: If login, terms, navigation or search fails
            BrowserError: If the portal cannot be reached
        """
        await self.login(settings)
        await self.accept_terms()
        await self.open_search()
        rows = await self.search(settings.anio)
        records = await self.read_details(rows)
        self._transition(DriverState.DONE, f"Total procedimientos extraídos: {len(records)}")
        return records

    # -------------------------------------------------------------------------
    # Login and terms
    # -------------------------------------------------------------------------

    async def login(self, settings: AuthenticatedSourceSettings) -> None:
        self.log.info("Navegando a login...", {"state": self.state.value})
        await self.browser.goto(self.login_url, wait_until="networkidle", timeout_ms=30000)

        if not await self.browser.wait_for_selector(LOGIN_INPUT_SELECTOR, timeout_ms=10000):
            raise self._fail(AutomationReason.LOGIN_FORM_MISSING, "No se encontró el formulario de login")

        self.log.info("Ingresando credenciales...")
        filled = await self.browser.fill_by_position(
            CREDENTIAL_INPUTS_SELECTOR, [settings.usuario, settings.clave]
        )
        if not filled.success:
            raise self._fail(AutomationReason.LOGIN_FORM_MISSING, "No se encontraron campos de usuario/clave")

        clicked = await self.browser.click(LOGIN_BUTTON_SELECTOR)
        if not clicked.success:
            raise self._fail(AutomationReason.LOGIN_FORM_MISSING, "No se encontró botón Acceder")

        self._transition(DriverState.CREDENTIALS_SUBMITTED, "Credenciales enviadas, esperando página de términos...")
        await self.browser.pause(4000)

        if not await self.browser.exists(TERMS_CHECKBOX_SELECTOR):
            page_text = await self.browser.body_text(300)
            self.log.debug("Contenido página tras login", {"text": page_text})
            if INVALID_CREDENTIALS_MARKER in page_text.lower():
                raise self._fail(AutomationReason.INVALID_CREDENTIALS, "Credenciales inválidas")

    async def accept_terms(self) -> None:
        self._transition(DriverState.TERMS_PENDING, "Aceptando términos...")

        async def checkbox_marked(attempt: int) -> bool:
            self.log.info(f"Intento {attempt}/5 para marcar checkbox...")
            if not await self.browser.exists(TERMS_CHECKBOX_SELECTOR):
                self.log.info("No se encontró checkbox de términos, esperando...")
                return False
            if await self.browser.is_checked(TERMS_CHECKBOX_SELECTOR):
                return True
            await self.browser.click(TERMS_CHECKBOX_SELECTOR)
            await self.browser.pause(1000)
            return await self.browser.is_checked(TERMS_CHECKBOX_SELECTOR)

        marked = await retry_until(
            checkbox_marked,
            max_attempts=5,
            delay=1.0 * self.retry_delay_scale,
            retry_on=(BrowserError,),
        )
        if not marked:
            raise self._fail(
                AutomationReason.TERMS_CHECKBOX,
                "No se pudo marcar el checkbox de términos después de 5 intentos",
            )
        self.log.info("Checkbox marcado exitosamente")

        async def accept_clicked(attempt: int) -> bool:
            self.log.info(f"Intento {attempt}/5 para botón Acepto...")
            for selector in (TERMS_ACCEPT_SELECTOR, TERMS_ACCEPT_FALLBACK_SELECTOR):
                if await self.browser.exists(selector):
                    result = await self.browser.click(selector)
                    if result.success:
                        return True
            return False

        accepted = await retry_until(
            accept_clicked,
            max_attempts=5,
            delay=1.5 * self.retry_delay_scale,
            retry_on=(BrowserError,),
        )
        if not accepted:
            raise self._fail(
                AutomationReason.TERMS_ACCEPT_BUTTON,
                "No se encontró botón Acepto visible después de reintentos",
            )

        if not await self.browser.wait_for_navigation(timeout_ms=30000):
            self.log.info("Timeout en navegación, continuando...")
        self._transition(DriverState.TERMS_ACCEPTED, "Login exitoso")

    # -------------------------------------------------------------------------
    # Navigation and search
    # -------------------------------------------------------------------------

    async def open_search(self) -> None:
        self._transition(DriverState.NAVIGATING_TO_SEARCH, 'Buscando menú "Mis procedimientos de selección"...')
        await self.browser.pause(2000)

        if await self.browser.click_by_text("a", MENU_TEXT):
            self.log.info("Clic en menú Mis procedimientos")
        elif await self.browser.exists(MENU_FALLBACK_SELECTOR):
            self.log.info("Menú no encontrado por texto, usando enlace por onclick")
            await self.browser.click(MENU_FALLBACK_SELECTOR)
        else:
            raise self._fail(AutomationReason.SEARCH_FORM_MISSING, "No se pudo encontrar el menú")

        await self.browser.pause(4000)
        if not await self.browser.wait_for_selector(SEARCH_FORM_SELECTOR, timeout_ms=20000):
            raise self._fail(
                AutomationReason.SEARCH_FORM_MISSING,
                "No cargó el formulario de Mis procedimientos",
            )
        self._transition(DriverState.SEARCH_FORM_READY, f"Página de Mis procedimientos cargada ({self.browser.url})")

    async def search(self, year: str) -> list[ResultRow]:
        self.log.info(f"Seleccionando año de convocatoria: {year}")
        selected = await self.browser.evaluate(SELECT_YEAR_JS, [YEAR_SELECT_ID, year]) or {}
        if selected.get("found"):
            self.log.info(f"Año seleccionado en {selected.get('selectId')} = {selected.get('value')}")
        else:
            self.log.warning(f"ADVERTENCIA: {selected.get('error', 'select de año no disponible')}")

        await self.browser.pause(2000)

        for selector in (SEARCH_BUTTON_SELECTOR, SEARCH_BUTTON_FALLBACK_SELECTOR):
            if await self.browser.exists(selector):
                result = await self.browser.click(selector)
                if result.success:
                    self.log.info(f"Botón Buscar clickeado ({selector})")
                    break
        else:
            self.log.error("No se encontró botón Buscar")

        await self.browser.pause(5000)
        if not await self.browser.wait_for_selector(RESULTS_TABLE_SELECTOR, timeout_ms=15000):
            raise self._fail(AutomationReason.RESULTS_TABLE_MISSING, "Timeout esperando tabla de resultados")

        rows = self.grid_parser.parse(await self.browser.content())
        self._transition(DriverState.RESULTS_LISTED, f"Resultados extraídos: {len(rows)}")
        return rows

    # -------------------------------------------------------------------------
    # Detail loop
    # -------------------------------------------------------------------------

    async def read_details(self, rows: list[ResultRow]) -> list[TenderRecord]:
        candidates = rows[: self.max_candidates]
        records: list[TenderRecord] = []

        for i, row in enumerate(candidates, start=1):
            record = row.record
            self.log.info(f"Procesando procedimiento {i}/{len(candidates)}: {record.nomenclatura}")
            try:
                record.stages = await self.read_detail(row)
            except BrowserError as e:
                # Keep the grid data; the schedule is optional
                self.log.error(f"Error procesando procedimiento {i}: {e}")
                record.stages = []
            self.state = DriverState.RESULTS_LISTED
            records.append(record)

        return records

    async def read_detail(self, row: ResultRow) -> list[StageEntry]:
        """Open a row's detail, read its schedule and return to the grid."""
        if not row.action_id:
            self.log.info("No se encontró botón de acciones para esta fila")
            return []

        clicked = await self.browser.click(f'[id="{row.action_id}"]')
        if not clicked.success:
            self.log.warning(f"No se pudo hacer clic en: {row.action_id}")
            return []

        self._transition(DriverState.DETAIL_OPEN, f"Clic en acción: {row.action_id}")
        await self.browser.pause(4000)

        if await self.browser.evaluate(OPEN_SCHEDULE_TAB_JS):
            self.log.info("Clic en pestaña Cronograma")
            await self.browser.pause(2000)

        result = self.stage_pipeline.extract(await self.browser.content())
        self.log.info(
            f"Cronograma encontrado: {result.count} etapas",
            {"strategy": result.strategy, "confidence": result.confidence},
        )

        await self.return_to_results()
        return result.items

    async def return_to_results(self) -> None:
        if await self.browser.evaluate(CLICK_BACK_JS):
            self.log.info("Regresando a la lista...")
        else:
            self.log.info("No se encontró botón Regresar, usando navegación atrás")
            await self.browser.go_back()
        await self.browser.pause(3000)


# =============================================================================
# Source job
# =============================================================================


class SeaceSource(SourceJob):
    """SEACE tenders: authenticated flow when enabled, public listing otherwise."""

    source = SourceName.SEACE

    def __init__(
        self,
        sessions: SessionScope,
        browser_config: BrowserConfig | None = None,
        *,
        max_candidates: int = 10,
        heuristics: HeuristicsConfig | None = None,
        browser_factory: Callable[[], BrowserPage] | None = None,
        public_source: SeacePublicSource | None = None,
    ):
        """Initialize the job.

        Args:
            sessions: Session scope for settings and tender persistence
            browser_config: Browser settings (login URL, timeouts, delays)
            max_candidates: Result rows opened per run
            heuristics: Extraction vocabularies
            browser_factory: Builds the browser for one run
            public_source: Job used when the authenticated mode is off
        """
        self._sessions = sessions
        self.browser_config = browser_config or BrowserConfig()
        self.max_candidates = max_candidates
        self.heuristics = heuristics
        self.browser_factory = browser_factory or (lambda: BrowserSession(self.browser_config))
        self.public_source = public_source or SeacePublicSource(
            regions=heuristics.regions if heuristics else None
        )
        self.settings_store = AuthenticatedSettingsStore(sessions)

    async def collect(self, log: SessionLogger) -> SourceOutput:
        settings = self.settings_store.get()

        if not settings.enabled:
            log.info("Modo autenticado deshabilitado, usando buscador público")
            return await self.public_source.collect(log)

        if not settings.has_credentials:
            raise ConfigurationError("Credenciales de SEACE no configuradas", source=self.name)

        log.info(
            f"Configuración cargada - Usuario: {settings.usuario}, "
            f"Entidad: {settings.sigla_entidad}, Año: {settings.anio}"
        )

        browser = self.browser_factory()
        driver = SeaceDriver(
            browser,
            log,
            login_url=self.browser_config.login_url,
            max_candidates=self.max_candidates,
            heuristics=self.heuristics,
            retry_delay_scale=self.browser_config.step_delay_scale,
        )
        try:
            records = await driver.run(settings)
        finally:
            log.info("Cerrando navegador...")
            await browser.close()

        saved, updated = self.persist(records, settings, log)
        alerts = [build_tender_alert(record) for record in records]

        return SourceOutput(
            alerts=alerts,
            metadata={
                "mode": "authenticated",
                "new_tenders": saved,
                "updated_tenders": updated,
            },
        )

    def persist(
        self,
        records: list[TenderRecord],
        settings: AuthenticatedSourceSettings,
        log: SessionLogger,
    ) -> tuple[int, int]:
        """Upsert each record in its own transaction.

        Returns:
            Tuple of (created, updated) counts
        """
        saved = updated = 0
        for record in records:
            if not record.nomenclatura:
                continue
            try:
                with self._sessions() as session:
                    _, created = TenderRepository(session).upsert_with_stages(
                        record,
                        sigla_entidad=settings.sigla_entidad,
                        default_entidad=settings.entidad,
                    )
            except SQLAlchemyError as e:
                log.error(f"Error guardando {record.nomenclatura}: {e}")
                continue
            if created:
                saved += 1
            else:
                updated += 1

        log.info(f"Guardados: {saved} nuevos, {updated} actualizados")
        return saved, updated
