"""Esquema SQL del bridge (SQLAlchemy Core).

- projects: configuración por proyecto (la escribe la API de colaboradores)
- readings: histórico de niveles
- devices: tokens push, con alcance por proyecto o global (project_id NULL)
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

projects = Table(
    "projects",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(200), nullable=True),
    Column("broker", String(255), nullable=True),
    Column("port", Integer, nullable=True),
    Column("topic", String(512), nullable=True),
    Column("username", String(255), nullable=True),
    Column("password", String(255), nullable=True),
    Column("store_history", Boolean, nullable=False, default=False),
    Column("multiplier", Float, nullable=True),
    Column("value_offset", Float, nullable=True),
    Column("sensor_type", String(64), nullable=True),
    Column("tank_type", String(64), nullable=True),
    Column("deadband_meters", Float, nullable=True),
    Column("alerts_enabled", Boolean, nullable=False, default=False),
    Column("alert_low", Float, nullable=True),
    Column("alert_high", Float, nullable=True),
    Column("alert_cooldown_sec", Float, nullable=True),
    Column("notify_on_recover", Boolean, nullable=False, default=False),
    Column("alert_hysteresis_meters", Float, nullable=True),
    Column("last_alert_state", String(16), nullable=True),
    Column("last_alert_at", DateTime(timezone=True), nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)

readings = Table(
    "readings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", String(64), nullable=False),
    Column("level_meters", Float, nullable=False),
    Column("ts", DateTime(timezone=True), nullable=False),
    Index("ix_readings_project_ts", "project_id", "ts"),
)

devices = Table(
    "devices",
    metadata,
    Column("token", String(512), primary_key=True),
    Column("project_id", String(64), nullable=True, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)


def ensure_schema(engine: Engine) -> None:
    """Crea las tablas si no existen. Seguro de llamar varias veces."""
    metadata.create_all(engine)
    logger.info("[DB] Schema ensured (projects, readings, devices)")
