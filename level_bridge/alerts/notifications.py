"""Construcción de payloads push para alertas y actualizaciones de nivel."""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..core.domain import AlertDecision, AlertLevel, EntitySubscription

_ALERT_TITLES = {
    AlertLevel.LOW: "Low level alert",
    AlertLevel.HIGH: "High level alert",
    AlertLevel.NORMAL: "Level back to normal",
}


@dataclass(frozen=True)
class PushPayload:
    """Notificación lista para el transporte push.

    `data` solo lleva strings (restricción de FCM). `dedup_id` se usa como
    collapse key para que el dispositivo descarte duplicados.
    """

    title: str
    body: str
    dedup_id: str
    data: dict[str, str] = field(default_factory=dict)


def make_dedup_id(entity_id: str, kind: str, ts: float) -> str:
    """MD5(entity:kind:ts)[:16], mismo formato que las claves de dedup."""
    raw = f"{entity_id}:{kind}:{ts:.3f}"
    return hashlib.md5(raw.encode()).hexdigest()[:16]


def _as_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def build_alert_payload(subscription: EntitySubscription, decision: AlertDecision) -> PushPayload:
    at = _as_datetime(decision.evaluated_at)
    name = subscription.display_name
    hyst = decision.hysteresis

    body = f"Level: {decision.value:.3f} m @ {at.strftime('%H:%M:%S')}"
    if hyst > 0:
        body += f" (hyst={hyst:g}m)"

    dedup_id = make_dedup_id(subscription.entity_id, decision.level.value, decision.evaluated_at)
    return PushPayload(
        title=f"{_ALERT_TITLES[decision.level]} ({name})",
        body=body,
        dedup_id=dedup_id,
        data={
            "projectId": str(subscription.entity_id),
            "projectName": name,
            "levelMeters": repr(float(decision.value)),
            "ts": at.isoformat(),
            "alertState": decision.level.value,
            "previousState": decision.previous.value,
            "hysteresisMeters": f"{hyst:g}",
            "notificationId": dedup_id,
        },
    )


def build_update_payload(subscription: EntitySubscription, value: float, ts: float) -> PushPayload:
    at = _as_datetime(ts)
    name = subscription.display_name
    dedup_id = make_dedup_id(subscription.entity_id, "update", ts)
    return PushPayload(
        title=f"Level update ({name})",
        body=f"New level: {value:.3f} m @ {at.strftime('%H:%M:%S')}",
        dedup_id=dedup_id,
        data={
            "projectId": str(subscription.entity_id),
            "projectName": name,
            "levelMeters": repr(float(value)),
            "ts": at.isoformat(),
            "notificationId": dedup_id,
        },
    )


class UpdateThrottle:
    """Limita las notificaciones de actualización por proyecto.

    interval_seconds = 0 → sin límite.
    """

    def __init__(self, interval_seconds: float = 0.0):
        self._interval = max(0.0, interval_seconds)
        self._last_push: dict[str, float] = {}
        self._lock = threading.Lock()

    def try_acquire(self, entity_id: str, now: float) -> bool:
        with self._lock:
            last: Optional[float] = self._last_push.get(entity_id)
            if self._interval and last is not None and (now - last) <= self._interval:
                return False
            self._last_push[entity_id] = now
            return True

    def forget(self, entity_id: str) -> None:
        with self._lock:
            self._last_push.pop(entity_id, None)
