"""
SQLAlchemy ORM models for GovWatch.

Defines the database schema including:
- Settings: key/value store backing the per-source configuration
- Tenders: SEACE procedures keyed by nomenclature, with their schedule stages
- AlertSubscriptions: filters deciding who receives which alerts
- AlertHistory: distributed alerts (subject to retention purge)
- RunLocks: scheduler overlap protection
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[str]: JSON,
    }


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=None,
        onupdate=datetime.utcnow,
        nullable=True,
    )


# =============================================================================
# Settings Model
# =============================================================================


class Setting(Base, TimestampMixin):
    """A single configuration value (``scraper_osce_enabled`` and friends)."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(150), unique=True, nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="SCRAPING")
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Setting(key='{self.key}')>"


# =============================================================================
# Tender Models
# =============================================================================


class Tender(Base, TimestampMixin):
    """Procurement procedure extracted from the authenticated SEACE inbox."""

    __tablename__ = "tenders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nomenclatura: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)

    objeto: Mapped[str] = mapped_column(Text, nullable=False, default="")
    entidad: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    sigla_entidad: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tipo_seleccion: Mapped[str | None] = mapped_column(String(200), nullable=True)
    fuente: Mapped[str] = mapped_column(String(20), nullable=False, default="SEACE")

    # Key dates derived from the schedule
    fecha_convocatoria: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    fecha_presentacion: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    fecha_buena_pro: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    url_origen: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    stages: Mapped[list["TenderStage"]] = relationship(
        "TenderStage",
        back_populates="tender",
        cascade="all, delete-orphan",
        order_by="TenderStage.position",
    )

    def __repr__(self) -> str:
        return f"<Tender(id={self.id}, nomenclatura='{self.nomenclatura}')>"


class TenderStage(Base):
    """One row of a tender schedule (cronograma)."""

    __tablename__ = "tender_stages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tender_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tenders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    nombre: Mapped[str] = mapped_column(String(100), nullable=False)
    fecha_inicio: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    fecha_fin: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    tender: Mapped["Tender"] = relationship("Tender", back_populates="stages")

    __table_args__ = (
        UniqueConstraint("tender_id", "position", name="uq_tender_stage_position"),
    )

    def __repr__(self) -> str:
        return f"<TenderStage(tender_id={self.tender_id}, nombre='{self.nombre}')>"


# =============================================================================
# Alert Models
# =============================================================================


class AlertSubscription(Base, TimestampMixin):
    """Filter set describing which alerts a recipient wants."""

    __tablename__ = "alert_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)
    tipo: Mapped[str | None] = mapped_column(String(30), nullable=True)

    palabras_clave: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    regiones: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    entidades: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    monto_minimo: Mapped[float | None] = mapped_column(Float, nullable=True)
    monto_maximo: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    history: Mapped[list["AlertHistory"]] = relationship(
        "AlertHistory",
        back_populates="subscription",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<AlertSubscription(id={self.id}, nombre='{self.nombre}')>"


class AlertHistory(Base, TimestampMixin):
    """An alert delivered to a subscription."""

    __tablename__ = "alert_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("alert_subscriptions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    titulo: Mapped[str] = mapped_column(String(500), nullable=False)
    contenido: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fuente: Mapped[str] = mapped_column(String(20), nullable=False)
    tipo: Mapped[str | None] = mapped_column(String(30), nullable=True)
    url_origen: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    fecha_publicacion: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entidad: Mapped[str | None] = mapped_column(String(300), nullable=True)
    monto: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    subscription: Mapped["AlertSubscription | None"] = relationship(
        "AlertSubscription",
        back_populates="history",
    )

    __table_args__ = (
        Index("ix_alert_history_fuente_created", "fuente", "created_at"),
        Index("ix_alert_history_dedupe", "subscription_id", "titulo", "fuente", "fecha_publicacion"),
    )

    def __repr__(self) -> str:
        return f"<AlertHistory(id={self.id}, fuente='{self.fuente}', titulo='{self.titulo[:30]}')>"


# =============================================================================
# Lock Model (for overlap protection)
# =============================================================================


class RunLock(Base):
    """Lock preventing overlapping scheduled runs."""

    __tablename__ = "run_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    holder_id: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<RunLock(name='{self.lock_name}', holder='{self.holder_id}')>"
