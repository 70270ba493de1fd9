"""
Pydantic configuration models for GovWatch.

These models provide type-safe configuration with validation for:
- Application settings (database, logging, fetch, browser, scheduler)
- Per-source scraping settings persisted in the settings table
- Authenticated-source credentials
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .heuristics import HeuristicsConfig


# =============================================================================
# Enums
# =============================================================================


class SourceName(str, Enum):
    """Government portals GovWatch collects alerts from."""

    SEACE = "seace"
    OSCE = "osce"
    SUNAT = "sunat"

    @property
    def label(self) -> str:
        """Upper-case label used as alert ``fuente`` and in log lines."""
        return self.value.upper()


class Frequency(str, Enum):
    """How often a source may run."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class AlertType(str, Enum):
    """Alert ``tipo`` values emitted by the sources."""

    LICITACION = "LICITACION"
    NOTICIA = "NOTICIA"
    COMUNICADO = "COMUNICADO"
    TRIBUTARIO = "TRIBUTARIO"


# Minimum hours between runs per frequency
FREQUENCY_HOURS: dict[str, int] = {
    Frequency.HOURLY.value: 1,
    Frequency.DAILY.value: 24,
    Frequency.WEEKLY.value: 168,
}
DEFAULT_FREQUENCY_HOURS = 24


# =============================================================================
# Source Configuration
# =============================================================================


class SourceConfig(BaseModel):
    """Scheduling and retention settings of one source.

    ``frequency`` is kept as a plain string: values written by older
    releases or by hand are tolerated and fall back to the daily threshold.
    """

    enabled: bool = False
    frequency: str = Frequency.DAILY.value
    retention_days: int = 30
    last_run: datetime | None = None
    last_success: datetime | None = None
    last_error: str | None = None

    @property
    def interval_hours(self) -> int:
        return FREQUENCY_HOURS.get(self.frequency, DEFAULT_FREQUENCY_HOURS)


class SourceConfigUpdate(BaseModel):
    """Partial update of a source configuration (only set fields are written)."""

    enabled: bool | None = None
    frequency: Frequency | None = None
    retention_days: int | None = Field(default=None, ge=1, le=365)
    last_run: datetime | None = None
    last_success: datetime | None = None
    last_error: str | None = None


DEFAULT_SEACE_ENTITY = (
    "SUPERINTENDENCIA NACIONAL DE ADUANAS Y DE ADMINISTRACION TRIBUTARIA - SUNAT"
)
DEFAULT_SEACE_ENTITY_ACRONYM = "SUNAT"


class AuthenticatedSourceSettings(BaseModel):
    """Login and search settings of the authenticated SEACE source."""

    usuario: str = ""
    clave: str = ""
    entidad: str = DEFAULT_SEACE_ENTITY
    sigla_entidad: str = DEFAULT_SEACE_ENTITY_ACRONYM
    anio: str = Field(default_factory=lambda: str(datetime.utcnow().year))
    enabled: bool = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.usuario and self.clave)

    def masked(self) -> "AuthenticatedSourceSettings":
        """Copy safe to display, with the password hidden."""
        return self.model_copy(update={"clave": "***" if self.clave else ""})


# =============================================================================
# Fetch Configuration
# =============================================================================


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FetchConfig(BaseModel):
    """HTTP retrieval settings shared by the static sources."""

    timeout_seconds: float = Field(default=8.0, gt=0, le=120)
    max_redirects: int = Field(default=5, ge=0, le=20)
    legacy_ssl_domains: list[str] = Field(
        default_factory=lambda: ["seace.gob.pe", "osce.gob.pe", "sunat.gob.pe", "gob.pe"],
        description="Hosts that only negotiate old TLS setups",
    )
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "es-PE,es;q=0.9,en;q=0.8"
    server_error_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Attempts for pages answering with 5xx",
    )


# =============================================================================
# Browser Configuration
# =============================================================================


class BrowserConfig(BaseModel):
    """Browser automation settings for the authenticated source."""

    headless: bool = True
    login_url: str = "https://prod1.seace.gob.pe/portal/"
    navigation_timeout_ms: int = Field(default=30000, ge=5000, le=120000)
    action_timeout_ms: int = Field(default=10000, ge=1000, le=60000)
    viewport_width: int = Field(default=1366, ge=320, le=3840)
    viewport_height: int = Field(default=768, ge=240, le=2160)
    screenshots_on_error: bool = False
    screenshots_path: Path = Path("snapshots")
    step_delay_scale: float = Field(
        default=1.0,
        ge=0.0,
        le=5.0,
        description="Multiplier applied to fixed waits between steps",
    )


# =============================================================================
# Orchestrator / Scheduler Configuration
# =============================================================================


class OrchestratorConfig(BaseModel):
    """Run coordination settings."""

    max_candidates: int = Field(
        default=10,
        ge=1,
        le=200,
        description="Tender records opened per authenticated run",
    )
    run_purge: bool = Field(
        default=True,
        description="Purge expired read alerts after scheduled runs",
    )
    session_ttl_seconds: float = Field(default=300.0, ge=0)
    recent_logs_limit: int = Field(default=1000, ge=10)


class SchedulerConfig(BaseModel):
    """Global scheduler settings."""

    enabled: bool = True
    check_interval_minutes: int = Field(
        default=15,
        ge=1,
        le=1440,
        description="How often sources are checked against their frequency",
    )
    data_store_url: str = "sqlite+aiosqlite:///data/schedules.db"
    lock_ttl_minutes: int = Field(default=60, ge=1, le=1440)


# =============================================================================
# Database / Logging / API Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/govwatch.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = False
    pool_size: int = Field(default=5, ge=1, le=50)


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    file: Path | None = Path("logs/govwatch.log")
    json_format: bool = True
    rich_console: bool = True

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


class ApiConfig(BaseModel):
    """Admin HTTP API settings."""

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Path("data")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    heuristics: HeuristicsConfig = Field(default_factory=HeuristicsConfig)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
