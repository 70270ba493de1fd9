"""
Persistent per-source configuration.

Source settings live in the key/value ``settings`` table under
``scraper_{source}_{field}`` keys; the authenticated SEACE account lives
under ``seace_{field}``. Every key is upserted in its own short
transaction so concurrent source jobs never contend on a shared session.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Mapping, Protocol

from ...persistence.db import SessionScope
from ...persistence.repo import SettingsRepository
from .models import (
    AuthenticatedSourceSettings,
    SourceConfig,
    SourceConfigUpdate,
    SourceName,
)

logger = logging.getLogger(__name__)

SETTINGS_CATEGORY = "ALERTS"

# Placeholder the admin form sends back instead of the stored password
PASSWORD_MASK = "••••••••"
_MASK_RE = re.compile(r"^•+$")


class ConfigurationError(Exception):
    """A source cannot run with its current configuration."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)


class RunOutcome(Protocol):
    """What ``record_run`` needs from a finished job."""

    source: str
    success: bool
    error: str | None


def _source_key(source: SourceName | str) -> str:
    if isinstance(source, SourceName):
        return source.value
    return str(source).lower()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring malformed timestamp setting: %r", value)
        return None


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


# =============================================================================
# Scheduling decision
# =============================================================================


def should_run(config: SourceConfig, force: bool = False, now: datetime | None = None) -> bool:
    """Decide whether a source is due.

    Args:
        config: Current source configuration
        force: Run regardless of ``enabled`` and elapsed time
        now: Reference time (default: utcnow)

    Returns:
        True if the source should run now
    """
    if force:
        return True
    if not config.enabled:
        return False
    if config.last_run is None:
        return True

    now = now or datetime.utcnow()
    return now - config.last_run >= timedelta(hours=config.interval_hours)


# =============================================================================
# Config Store
# =============================================================================


class ConfigStore:
    """Read/write access to per-source settings."""

    FIELDS = ("enabled", "frequency", "retention_days", "last_run", "last_success", "last_error")

    def __init__(self, sessions: SessionScope):
        self._sessions = sessions

    @staticmethod
    def key(source: SourceName | str, field: str) -> str:
        return f"scraper_{_source_key(source)}_{field}"

    def get(self, source: SourceName | str) -> SourceConfig:
        """Load a source configuration, defaulting missing keys."""
        prefix = f"scraper_{_source_key(source)}_"
        with self._sessions() as session:
            raw = SettingsRepository(session).get_many(prefix)

        values = {k[len(prefix):]: v for k, v in raw.items()}
        return SourceConfig(
            enabled=values.get("enabled") == "true",
            frequency=values.get("frequency") or "daily",
            retention_days=_parse_int(values.get("retention_days"), 30),
            last_run=_parse_timestamp(values.get("last_run")),
            last_success=_parse_timestamp(values.get("last_success")),
            last_error=values.get("last_error") or None,
        )

    def all(self) -> dict[str, SourceConfig]:
        """Configuration of every known source."""
        return {source.value: self.get(source) for source in SourceName}

    def update(self, source: SourceName | str, partial: SourceConfigUpdate | Mapping[str, Any]) -> None:
        """Write only the fields present in ``partial``.

        Raises:
            pydantic.ValidationError: If a mapping fails validation
        """
        if not isinstance(partial, SourceConfigUpdate):
            partial = SourceConfigUpdate.model_validate(dict(partial))

        name = _source_key(source)
        for field, value in partial.model_dump(exclude_unset=True).items():
            if value is None and field != "last_error":
                continue
            self._write(self.key(name, field), self._serialize(value), f"{field} ({name})")

    def record_run(self, result: RunOutcome, now: datetime | None = None) -> None:
        """Store the outcome of a run."""
        now = now or datetime.utcnow()
        if result.success:
            update = SourceConfigUpdate(last_run=now, last_success=now, last_error="")
        else:
            update = SourceConfigUpdate(last_run=now, last_error=result.error or "")
        self.update(result.source, update)

    def should_run(self, config: SourceConfig, force: bool = False, now: datetime | None = None) -> bool:
        return should_run(config, force=force, now=now)

    def _write(self, key: str, value: str, description: str) -> None:
        with self._sessions() as session:
            SettingsRepository(session).set(
                key,
                value,
                category=SETTINGS_CATEGORY,
                description=description,
            )

    @staticmethod
    def _serialize(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, datetime):
            return value.isoformat()
        if hasattr(value, "value"):
            return str(value.value)
        return "" if value is None else str(value)


# =============================================================================
# Authenticated source settings
# =============================================================================


def is_masked_password(value: str | None) -> bool:
    """True for empty values and for the bullet mask shown in forms."""
    return not value or value == PASSWORD_MASK or bool(_MASK_RE.match(value))


class AuthenticatedSettingsStore:
    """Credentials and search parameters of the authenticated SEACE source."""

    PREFIX = "seace_"
    FIELDS = ("usuario", "clave", "entidad", "sigla_entidad", "anio", "enabled")

    def __init__(self, sessions: SessionScope):
        self._sessions = sessions

    def get(self) -> AuthenticatedSourceSettings:
        with self._sessions() as session:
            raw = SettingsRepository(session).get_many(self.PREFIX)

        values = {k[len(self.PREFIX):]: v for k, v in raw.items()}
        data: dict[str, Any] = {
            field: values[field] for field in self.FIELDS
            if field != "enabled" and values.get(field)
        }
        data["enabled"] = values.get("enabled") == "true"
        return AuthenticatedSourceSettings(**data)

    def update(self, **values: Any) -> list[str]:
        """Write the given fields.

        A ``clave`` that is empty or only mask bullets is ignored so that
        re-saving the admin form never wipes the stored password.

        Returns:
            Keys that were written
        """
        written: list[str] = []
        for field, value in values.items():
            if field not in self.FIELDS or value is None:
                continue
            if field == "clave" and is_masked_password(str(value)):
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            key = f"{self.PREFIX}{field}"
            with self._sessions() as session:
                SettingsRepository(session).set(
                    key,
                    str(value),
                    category=SETTINGS_CATEGORY,
                    description=f"Configuración SEACE: {field}",
                )
            written.append(key)
        return written

    def is_ready(self) -> bool:
        """Enabled and with both credentials present."""
        settings = self.get()
        return settings.enabled and settings.has_credentials
