"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from __future__ import annotations

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create initial database schema."""

    # Settings table
    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key", sa.String(length=150), nullable=False),
        sa.Column("value", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=50), nullable=False, server_default="SCRAPING"),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_settings_key", "settings", ["key"], unique=True)

    # Tenders table
    op.create_table(
        "tenders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("nomenclatura", sa.String(length=200), nullable=False),
        sa.Column("objeto", sa.Text(), nullable=False, server_default=""),
        sa.Column("entidad", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("sigla_entidad", sa.String(length=50), nullable=True),
        sa.Column("tipo_seleccion", sa.String(length=200), nullable=True),
        sa.Column("fuente", sa.String(length=20), nullable=False, server_default="SEACE"),
        sa.Column("fecha_convocatoria", sa.DateTime(), nullable=True),
        sa.Column("fecha_presentacion", sa.DateTime(), nullable=True),
        sa.Column("fecha_buena_pro", sa.DateTime(), nullable=True),
        sa.Column("url_origen", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenders_nomenclatura", "tenders", ["nomenclatura"], unique=True)

    # Tender stages table
    op.create_table(
        "tender_stages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tender_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("nombre", sa.String(length=100), nullable=False),
        sa.Column("fecha_inicio", sa.DateTime(), nullable=True),
        sa.Column("fecha_fin", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["tender_id"], ["tenders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tender_id", "position", name="uq_tender_stage_position"),
    )
    op.create_index("ix_tender_stages_tender_id", "tender_stages", ["tender_id"])

    # Alert subscriptions table
    op.create_table(
        "alert_subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("nombre", sa.String(length=200), nullable=False),
        sa.Column("tipo", sa.String(length=30), nullable=True),
        sa.Column("palabras_clave", sa.JSON(), nullable=False),
        sa.Column("regiones", sa.JSON(), nullable=False),
        sa.Column("entidades", sa.JSON(), nullable=False),
        sa.Column("monto_minimo", sa.Float(), nullable=True),
        sa.Column("monto_maximo", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # Alert history table
    op.create_table(
        "alert_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("subscription_id", sa.Integer(), nullable=True),
        sa.Column("titulo", sa.String(length=500), nullable=False),
        sa.Column("contenido", sa.Text(), nullable=False, server_default=""),
        sa.Column("fuente", sa.String(length=20), nullable=False),
        sa.Column("tipo", sa.String(length=30), nullable=True),
        sa.Column("url_origen", sa.String(length=1000), nullable=True),
        sa.Column("fecha_publicacion", sa.DateTime(), nullable=False),
        sa.Column("region", sa.String(length=100), nullable=True),
        sa.Column("entidad", sa.String(length=300), nullable=True),
        sa.Column("monto", sa.Float(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["subscription_id"], ["alert_subscriptions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alert_history_subscription_id", "alert_history", ["subscription_id"])
    op.create_index("ix_alert_history_fuente_created", "alert_history", ["fuente", "created_at"])
    op.create_index(
        "ix_alert_history_dedupe",
        "alert_history",
        ["subscription_id", "titulo", "fuente", "fecha_publicacion"],
    )

    # Run locks table
    op.create_table(
        "run_locks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lock_name", sa.String(length=100), nullable=False),
        sa.Column("acquired_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("holder_id", sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lock_name"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("run_locks")
    op.drop_index("ix_alert_history_dedupe", table_name="alert_history")
    op.drop_index("ix_alert_history_fuente_created", table_name="alert_history")
    op.drop_index("ix_alert_history_subscription_id", table_name="alert_history")
    op.drop_table("alert_history")
    op.drop_table("alert_subscriptions")
    op.drop_index("ix_tender_stages_tender_id", table_name="tender_stages")
    op.drop_table("tender_stages")
    op.drop_index("ix_tenders_nomenclatura", table_name="tenders")
    op.drop_table("tenders")
    op.drop_index("ix_settings_key", table_name="settings")
    op.drop_table("settings")
