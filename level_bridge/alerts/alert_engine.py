"""Motor de alertas por umbral con histéresis y cooldown.

Máquina de estados por proyecto: normal → low/high → normal.

Reglas:
1. Estado previo LOW: se mantiene mientras v < low, o (h > 0 y v < low + h).
2. Estado previo HIGH: se mantiene mientras v > high, o (h > 0 y v > high - h).
3. Si no quedó enganchado: low si v < low, high si v > high, si no normal.

Gating:
- normal → low/high ("crossed") se registra y notifica solo si pasó el
  cooldown desde la última transición registrada.
- low/high → normal ("recovered") siempre se registra; notifica solo si
  notify_on_recovery y pasó el cooldown.
- low ↔ high sin pasar por normal no es una transición notificable.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from ..core.domain import (
    AlertDecision,
    AlertLevel,
    AlertState,
    EntitySubscription,
    Transition,
)

logger = logging.getLogger(__name__)


class AlertEngine:
    """Evalúa lecturas aceptadas y mantiene el AlertState por proyecto."""

    def __init__(
        self,
        default_hysteresis: float = 0.0,
        clock: Callable[[], float] = time.time,
    ):
        self._default_hysteresis = max(0.0, default_hysteresis)
        self._clock = clock
        self._states: dict[str, AlertState] = {}
        self._lock = threading.Lock()

    def effective_hysteresis(self, subscription: EntitySubscription) -> float:
        h = subscription.alerts.hysteresis
        if h is None or h < 0:
            return self._default_hysteresis
        return h

    @staticmethod
    def classify(
        value: float,
        previous: AlertLevel,
        low: Optional[float],
        high: Optional[float],
        hysteresis: float,
    ) -> AlertLevel:
        """Nivel resultante para `value` dado el nivel previo."""
        if previous is AlertLevel.LOW and low is not None:
            if value < low or (hysteresis > 0 and value < low + hysteresis):
                return AlertLevel.LOW
        elif previous is AlertLevel.HIGH and high is not None:
            if value > high or (hysteresis > 0 and value > high - hysteresis):
                return AlertLevel.HIGH

        if low is not None and value < low:
            return AlertLevel.LOW
        if high is not None and value > high:
            return AlertLevel.HIGH
        return AlertLevel.NORMAL

    def evaluate(
        self,
        subscription: EntitySubscription,
        value: float,
        now: Optional[float] = None,
    ) -> AlertDecision:
        cfg = subscription.alerts
        entity_id = subscription.entity_id
        now = self._clock() if now is None else now
        hysteresis = self.effective_hysteresis(subscription)

        with self._lock:
            state = self._states.get(entity_id, AlertState())
            previous = state.level
            level = self.classify(value, previous, cfg.low, cfg.high, hysteresis)

            cooldown = max(0.0, float(cfg.cooldown_seconds or 0))
            cooled_down = state.changed_at is None or (now - state.changed_at) >= cooldown

            if previous is AlertLevel.NORMAL and level.is_alert:
                transition = Transition.CROSSED
            elif previous.is_alert and level is AlertLevel.NORMAL:
                transition = Transition.RECOVERED
            elif previous is not level:
                transition = Transition.OTHER
            else:
                transition = Transition.NONE

            crossed_ok = transition is Transition.CROSSED and cooled_down
            recovered = transition is Transition.RECOVERED
            recorded = crossed_ok or recovered
            notify = crossed_ok or (recovered and cfg.notify_on_recovery and cooled_down)

            if recorded:
                self._states[entity_id] = AlertState(level=level, changed_at=now)

        if recorded:
            logger.info(
                "[ALERT] project=%s %s -> %s value=%.4f hyst=%s notify=%s",
                entity_id,
                previous.value,
                level.value,
                value,
                hysteresis,
                notify,
            )
        elif transition is Transition.CROSSED:
            logger.debug(
                "[ALERT] project=%s crossing to %s within cooldown (%.0fs) - ignored",
                entity_id,
                level.value,
                cooldown,
            )

        return AlertDecision(
            entity_id=entity_id,
            value=value,
            previous=previous,
            level=level,
            transition=transition,
            cooled_down=cooled_down,
            recorded=recorded,
            notify=notify,
            hysteresis=hysteresis,
            evaluated_at=now,
        )

    def state_of(self, entity_id: str) -> AlertState:
        with self._lock:
            return self._states.get(entity_id, AlertState())

    def forget(self, entity_id: str) -> None:
        with self._lock:
            self._states.pop(entity_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
