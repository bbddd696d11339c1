"""Procesamiento de una lectura para un proyecto.

Flujo por WorkItem:
1. extract() → None: descartar y contar
2. Filtro deadband (solo con store_history)
3. Motor de alertas (solo con alerts.enabled); transición registrada
   → write-back de estado + notificación, y fuerza el guardado
4. Persistir y mover la línea base del filtro
5. Push de actualización opcional (NOTIFY_UPDATES, con throttle)

Cada paso captura y loguea sus fallos: un store caído no impide la alerta.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..alerts.alert_engine import AlertEngine
from ..alerts.notifications import UpdateThrottle, build_update_payload
from ..core.domain import AlertDecision, EntitySubscription
from ..filtering.reading_filter import ReadingFilter, extract
from ..metrics.bridge_metrics import BRIDGE_READINGS, BRIDGE_READINGS_UNPARSABLE
from ..push.dispatcher import NotificationDispatcher
from ..sync.registry import EntityRegistry
from .alert_notifier import AlertNotifier
from .workers import WorkItem

logger = logging.getLogger(__name__)


class ReadingStore(Protocol):
    def insert(self, entity_id: str, value: float, at: float) -> None: ...


class ReadingProcessor:
    def __init__(
        self,
        registry: EntityRegistry,
        reading_filter: ReadingFilter,
        alert_engine: AlertEngine,
        reading_store: ReadingStore,
        notifier: AlertNotifier,
        dispatcher: NotificationDispatcher,
        update_throttle: Optional[UpdateThrottle] = None,
    ):
        self._registry = registry
        self._filter = reading_filter
        self._alerts = alert_engine
        self._store = reading_store
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._update_throttle = update_throttle

    def process(self, item: WorkItem) -> Optional[float]:
        """Procesa un item; retorna el valor extraído (o None si se descartó)."""
        subscription = self._registry.get(item.entity_id)
        if subscription is None:
            # Proyecto eliminado entre el enqueue y el proceso
            logger.debug("[PIPELINE] project=%s no longer subscribed - dropped", item.entity_id)
            return None

        value = extract(item.payload, subscription.transform)
        if value is None:
            BRIDGE_READINGS_UNPARSABLE.inc()
            logger.debug("[PIPELINE] project=%s unparsable payload - dropped", item.entity_id)
            return None

        store = False
        if subscription.store_history:
            store = self._filter.should_store(item.entity_id, value, subscription.deadband)

        decision: Optional[AlertDecision] = None
        if subscription.alerts.enabled:
            decision = self._alerts.evaluate(subscription, value, now=item.received_at)
            if decision.force_store and subscription.store_history and not store:
                logger.debug("[PIPELINE] project=%s forced store on %s", item.entity_id, decision.level.value)
                store = True

        if store:
            self._persist(subscription, value, item.received_at)
        elif subscription.store_history:
            BRIDGE_READINGS.labels(status="suppressed").inc()
        else:
            BRIDGE_READINGS.labels(status="skipped").inc()

        if decision is not None and decision.recorded:
            try:
                self._notifier.handle(subscription, decision)
            except Exception as e:
                logger.error("[PIPELINE] Alert handling failed project=%s: %s", item.entity_id, e)

        if self._update_throttle is not None:
            self._maybe_push_update(subscription, value, item.received_at)

        return value

    def _persist(self, subscription: EntitySubscription, value: float, at: float) -> bool:
        try:
            self._store.insert(subscription.entity_id, value, at)
        except Exception as e:
            BRIDGE_READINGS.labels(status="failed").inc()
            logger.error("[DB] Insert failed project=%s value=%.4f: %s", subscription.entity_id, value, e)
            return False
        self._filter.mark_stored(subscription.entity_id, value, at)
        BRIDGE_READINGS.labels(status="stored").inc()
        logger.debug("[DB] Stored project=%s value=%.4f", subscription.entity_id, value)
        return True

    def _maybe_push_update(self, subscription: EntitySubscription, value: float, at: float) -> None:
        if not self._dispatcher.enabled:
            return
        if not self._update_throttle.try_acquire(subscription.entity_id, at):
            return
        try:
            payload = build_update_payload(subscription, value, at)
            self._dispatcher.notify_entity(subscription.entity_id, payload, kind="update")
        except Exception as e:
            logger.error("[PUSH] Update push failed project=%s: %s", subscription.entity_id, e)

    def forget(self, entity_id: str) -> None:
        self._filter.forget(entity_id)
        self._alerts.forget(entity_id)
        if self._update_throttle is not None:
            self._update_throttle.forget(entity_id)
