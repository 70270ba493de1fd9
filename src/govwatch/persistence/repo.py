"""
Repository pattern for database operations.

Provides clean abstractions over the settings, tender, alert and lock
tables, including the tender upsert that replaces schedule stages and
the retention purge of read alerts.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Sequence

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config.heuristics import find_key_date_field
from .models import (
    AlertHistory,
    AlertSubscription,
    RunLock,
    Setting,
    Tender,
    TenderStage,
)

if TYPE_CHECKING:
    from ..core.normalize.records import NormalizedAlert, TenderRecord


class PurgeError(Exception):
    """Deleting expired alerts failed."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)


# =============================================================================
# Settings Repository
# =============================================================================


class SettingsRepository:
    """Repository for key/value settings."""

    def __init__(self, session: Session):
        self.session = session

    def get_setting(self, key: str) -> Setting | None:
        stmt = select(Setting).where(Setting.key == key)
        return self.session.execute(stmt).scalar_one_or_none()

    def get(self, key: str) -> str | None:
        """Return the raw value of a key, or None when unset."""
        setting = self.get_setting(key)
        return setting.value if setting else None

    def get_many(self, prefix: str) -> dict[str, str]:
        """Return every key starting with ``prefix``."""
        stmt = select(Setting).where(Setting.key.startswith(prefix))
        return {s.key: s.value for s in self.session.execute(stmt).scalars().all()}

    def set(
        self,
        key: str,
        value: str,
        category: str = "SCRAPING",
        description: str | None = None,
    ) -> tuple[Setting, bool]:
        """Create or update a setting.

        Returns:
            Tuple of (setting, created) where created is True if new
        """
        existing = self.get_setting(key)

        if existing:
            existing.value = value
            if description is not None:
                existing.description = description
            self.session.flush()
            return existing, False

        setting = Setting(key=key, value=value, category=category, description=description)
        self.session.add(setting)
        self.session.flush()
        return setting, True


# =============================================================================
# Tender Repository
# =============================================================================


class TenderRepository:
    """Repository for tenders and their schedule stages.

    Tenders are keyed by nomenclature. Saving a tender always replaces its
    stage list: the old rows are deleted and the new ones inserted in page
    order.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_by_nomenclatura(self, nomenclatura: str) -> Tender | None:
        stmt = select(Tender).where(Tender.nomenclatura == nomenclatura)
        return self.session.execute(stmt).scalar_one_or_none()

    def list_recent(self, limit: int = 50) -> Sequence[Tender]:
        stmt = select(Tender).order_by(Tender.created_at.desc()).limit(limit)
        return self.session.execute(stmt).scalars().all()

    def count(self) -> int:
        return self.session.execute(select(func.count(Tender.id))).scalar() or 0

    def upsert_with_stages(
        self,
        record: TenderRecord,
        sigla_entidad: str | None = None,
        default_entidad: str | None = None,
    ) -> tuple[Tender, bool]:
        """Create or update a tender and replace its stages.

        Key dates are derived from stage names; the end date of the stage
        is used (its start date when the end is missing) and a later stage
        overrides an earlier one feeding the same field.

        Args:
            record: Tender read from the results grid
            sigla_entidad: Entity acronym configured for the search
            default_entidad: Entity name stored when the grid row had none

        Returns:
            Tuple of (tender, created) where created is True if new
        """
        tender = self.get_by_nomenclatura(record.nomenclatura)
        created = tender is None

        if tender is None:
            tender = Tender(nomenclatura=record.nomenclatura)
            self.session.add(tender)

        tender.objeto = record.objeto
        tender.entidad = record.entidad or default_entidad or ""
        tender.tipo_seleccion = record.tipo_seleccion or None
        tender.url_origen = record.url
        if sigla_entidad:
            tender.sigla_entidad = sigla_entidad

        key_dates: dict[str, datetime] = {}
        for stage in record.stages:
            field_name = find_key_date_field(stage.name)
            value = stage.end_date or stage.start_date
            if field_name and value is not None:
                key_dates[field_name] = value
        for field_name, value in key_dates.items():
            setattr(tender, field_name, value)

        # Delete first so positions can be reused
        tender.stages.clear()
        self.session.flush()

        for position, stage in enumerate(record.stages):
            tender.stages.append(
                TenderStage(
                    position=position,
                    nombre=stage.name[:100],
                    fecha_inicio=stage.start_date,
                    fecha_fin=stage.end_date,
                )
            )
        self.session.flush()

        return tender, created


# =============================================================================
# Subscription Repository
# =============================================================================


class SubscriptionRepository:
    """Repository for alert subscriptions."""

    def __init__(self, session: Session):
        self.session = session

    def list_active(self) -> Sequence[AlertSubscription]:
        stmt = (
            select(AlertSubscription)
            .where(AlertSubscription.is_active.is_(True))
            .order_by(AlertSubscription.id)
        )
        return self.session.execute(stmt).scalars().all()

    def create(
        self,
        nombre: str,
        *,
        tipo: str | None = None,
        palabras_clave: list[str] | None = None,
        regiones: list[str] | None = None,
        entidades: list[str] | None = None,
        monto_minimo: float | None = None,
        monto_maximo: float | None = None,
        is_active: bool = True,
    ) -> AlertSubscription:
        """Create a new subscription."""
        subscription = AlertSubscription(
            nombre=nombre,
            tipo=tipo,
            palabras_clave=palabras_clave or [],
            regiones=[r.strip().upper() for r in regiones or []],
            entidades=entidades or [],
            monto_minimo=monto_minimo,
            monto_maximo=monto_maximo,
            is_active=is_active,
        )
        self.session.add(subscription)
        self.session.flush()
        return subscription


# =============================================================================
# Alert Repository
# =============================================================================


class AlertRepository:
    """Repository for delivered alerts (alert history)."""

    def __init__(self, session: Session):
        self.session = session

    def exists(
        self,
        subscription_id: int | None,
        titulo: str,
        fuente: str,
        fecha_publicacion: datetime,
    ) -> bool:
        """Check whether this alert was already delivered to the subscription."""
        stmt = select(AlertHistory.id).where(
            and_(
                AlertHistory.subscription_id == subscription_id,
                AlertHistory.titulo == titulo,
                AlertHistory.fuente == fuente,
                AlertHistory.fecha_publicacion == fecha_publicacion,
            )
        ).limit(1)
        return self.session.execute(stmt).first() is not None

    def create(self, alert: NormalizedAlert, subscription_id: int | None = None) -> AlertHistory:
        """Store an alert for a subscription."""
        row = AlertHistory(
            subscription_id=subscription_id,
            titulo=alert.titulo[:500],
            contenido=alert.contenido,
            fuente=alert.fuente,
            tipo=alert.tipo,
            url_origen=alert.url_origen,
            fecha_publicacion=alert.fecha_publicacion,
            region=alert.region,
            entidad=alert.entidad,
            monto=alert.monto,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def purge_read_older_than(self, fuente: str, cutoff: datetime) -> int:
        """Delete read alerts of a source created before ``cutoff``.

        Unread alerts are never deleted regardless of age.

        Raises:
            PurgeError: If the delete statement fails
        """
        stmt = delete(AlertHistory).where(
            and_(
                AlertHistory.fuente == fuente,
                AlertHistory.created_at < cutoff,
                AlertHistory.is_read.is_(True),
            )
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PurgeError(f"Cannot purge {fuente} alerts: {e}", source=fuente) from e
        return result.rowcount or 0

    def count_by_source(self, since: datetime | None = None) -> dict[str, int]:
        """Count alerts per source, optionally only those created since a time."""
        stmt = select(AlertHistory.fuente, func.count(AlertHistory.id)).group_by(AlertHistory.fuente)
        if since is not None:
            stmt = stmt.where(AlertHistory.created_at >= since)
        return {fuente: count for fuente, count in self.session.execute(stmt).all()}

    def list_recent(self, fuente: str | None = None, limit: int = 50) -> Sequence[AlertHistory]:
        stmt = select(AlertHistory).order_by(AlertHistory.created_at.desc()).limit(limit)
        if fuente:
            stmt = stmt.where(AlertHistory.fuente == fuente)
        return self.session.execute(stmt).scalars().all()


# =============================================================================
# Lock Repository
# =============================================================================


class LockRepository:
    """Repository for scheduler run locks."""

    def __init__(self, session: Session):
        self.session = session

    def acquire(
        self,
        lock_name: str,
        holder_id: str,
        ttl_seconds: int = 3600,
    ) -> bool:
        """Attempt to acquire a lock.

        Returns:
            True if lock acquired, False if already held
        """
        now = datetime.utcnow()
        expires_at = now + timedelta(seconds=ttl_seconds)

        stmt = select(RunLock).where(
            and_(
                RunLock.lock_name == lock_name,
                RunLock.expires_at > now,
            )
        )
        if self.session.execute(stmt).scalar_one_or_none():
            return False

        # Clean up expired locks
        self.session.execute(
            delete(RunLock).where(
                and_(RunLock.lock_name == lock_name, RunLock.expires_at <= now)
            )
        )

        lock = RunLock(
            lock_name=lock_name,
            holder_id=holder_id,
            acquired_at=now,
            expires_at=expires_at,
        )
        self.session.add(lock)

        try:
            self.session.flush()
            return True
        except IntegrityError:
            self.session.rollback()
            return False

    def release(self, lock_name: str, holder_id: str) -> bool:
        """Release a lock.

        Returns:
            True if lock was released, False if not held by this holder
        """
        result = self.session.execute(
            delete(RunLock).where(
                and_(RunLock.lock_name == lock_name, RunLock.holder_id == holder_id)
            )
        )
        return (result.rowcount or 0) > 0

    def is_locked(self, lock_name: str) -> bool:
        """Check if a lock is currently held."""
        stmt = select(RunLock).where(
            and_(
                RunLock.lock_name == lock_name,
                RunLock.expires_at > datetime.utcnow(),
            )
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def cleanup_expired(self) -> int:
        """Delete every expired lock."""
        result = self.session.execute(
            delete(RunLock).where(RunLock.expires_at <= datetime.utcnow())
        )
        return result.rowcount or 0
