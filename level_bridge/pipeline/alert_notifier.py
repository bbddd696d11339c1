"""Efectos secundarios de una transición de alerta registrada."""

from __future__ import annotations

import logging
from typing import Optional

from ..alerts.notifications import build_alert_payload
from ..core.domain import AlertDecision, EntitySubscription
from ..metrics.bridge_metrics import BRIDGE_ALERT_TRANSITIONS
from ..push.dispatcher import DispatchResult, NotificationDispatcher
from ..sync.synchronizer import ConfigStore

logger = logging.getLogger(__name__)


class AlertNotifier:
    """Refleja el estado en el almacén de configuración y notifica.

    Cada paso se aísla: un fallo al escribir el estado no impide la
    notificación, y viceversa.
    """

    def __init__(self, config_store: ConfigStore, dispatcher: NotificationDispatcher):
        self._store = config_store
        self._dispatcher = dispatcher

    def handle(self, subscription: EntitySubscription, decision: AlertDecision) -> Optional[DispatchResult]:
        if not decision.recorded:
            return None

        BRIDGE_ALERT_TRANSITIONS.labels(level=decision.level.value).inc()
        try:
            self._store.record_alert_state(decision.entity_id, decision.level, decision.evaluated_at)
        except Exception as e:
            logger.error(
                "[ALERT] Could not persist alert state project=%s state=%s: %s",
                decision.entity_id,
                decision.level.value,
                e,
            )

        if not decision.notify:
            return None

        payload = build_alert_payload(subscription, decision)
        return self._dispatcher.notify_entity(decision.entity_id, payload, kind="alert")
