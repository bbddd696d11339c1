"""Almacén de configuración de proyectos (lectura + write-back de alertas)."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.engine import Engine

from ...core.domain import AlertConfig, AlertLevel, EntitySubscription, NumericTransform
from ...core.domain.subscription import DEFAULT_MQTT_PORT
from .schema import projects

logger = logging.getLogger(__name__)


def _number(value: Any, default: Optional[float] = None) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def subscription_from_row(row: Mapping[str, Any], default_cooldown: float = 1800.0) -> EntitySubscription:
    """Convierte una fila de `projects` en EntitySubscription.

    Valores ausentes o no numéricos caen a los defaults (multiplier 1,
    offset 0, cooldown global).
    """
    hysteresis = _number(row.get("alert_hysteresis_meters"))
    if hysteresis is not None and hysteresis < 0:
        hysteresis = None
    deadband = _number(row.get("deadband_meters"))
    if deadband is not None and deadband < 0:
        deadband = None

    port = _number(row.get("port"))
    return EntitySubscription(
        entity_id=str(row["id"]),
        topic=(row.get("topic") or "").strip(),
        broker=(row.get("broker") or None),
        port=int(port) if port else DEFAULT_MQTT_PORT,
        username=row.get("username") or None,
        password=row.get("password") or None,
        transform=NumericTransform(
            multiplier=_number(row.get("multiplier"), 1.0),
            offset=_number(row.get("value_offset"), 0.0),
        ),
        store_history=row.get("store_history") is True or row.get("store_history") == 1,
        deadband=deadband,
        alerts=AlertConfig(
            enabled=row.get("alerts_enabled") is True or row.get("alerts_enabled") == 1,
            low=_number(row.get("alert_low")),
            high=_number(row.get("alert_high")),
            hysteresis=hysteresis,
            cooldown_seconds=_number(row.get("alert_cooldown_sec"), default_cooldown),
            notify_on_recovery=row.get("notify_on_recover") is True or row.get("notify_on_recover") == 1,
        ),
        name=row.get("name") or "",
        sensor_type=row.get("sensor_type"),
        tank_type=row.get("tank_type"),
    )


class SqlConfigStore:
    """Lee proyectos relevantes (historial O alertas) desde SQL."""

    def __init__(self, engine: Engine, default_cooldown: float = 1800.0):
        self._engine = engine
        self._default_cooldown = default_cooldown

    def list_relevant(self) -> list[EntitySubscription]:
        # Orden estable: "la primera credencial gana" por ConnectionKey
        stmt = (
            select(projects)
            .where(or_(projects.c.store_history.is_(True), projects.c.alerts_enabled.is_(True)))
            .order_by(projects.c.id)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()

        subscriptions = []
        for row in rows:
            try:
                subscriptions.append(subscription_from_row(row, self._default_cooldown))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("[DB] Skipping malformed project row id=%s: %s", row.get("id"), e)
        return subscriptions

    def record_alert_state(self, entity_id: str, level: AlertLevel, at: float) -> None:
        """Espejo del último estado de alerta para visibilidad del operador."""
        stmt = (
            update(projects)
            .where(projects.c.id == entity_id)
            .values(
                last_alert_state=level.value,
                last_alert_at=datetime.fromtimestamp(at, tz=timezone.utc),
            )
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)
