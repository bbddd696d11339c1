"""Ruteo de mensajes MQTT hacia los workers por proyecto."""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..metrics.bridge_metrics import BRIDGE_MESSAGES_RECEIVED, BRIDGE_MESSAGES_UNROUTED
from ..mqtt.connection import BrokerConnection
from .workers import EntityWorkerPool, WorkItem

logger = logging.getLogger(__name__)


class MessageRouter:
    """Callback `on_message` de todas las conexiones.

    Solo consulta el índice (snapshot consistente) y encola un item por
    proyecto suscrito; el trabajo bloqueante corre en los workers.
    """

    def __init__(self, workers: EntityWorkerPool, clock: Callable[[], float] = time.time):
        self._workers = workers
        self._clock = clock

    def handle_message(self, connection: BrokerConnection, topic: str, payload: bytes) -> int:
        BRIDGE_MESSAGES_RECEIVED.inc()
        entity_ids = connection.index.lookup(topic)
        if not entity_ids:
            BRIDGE_MESSAGES_UNROUTED.inc()
            logger.debug("[ROUTER] No projects for topic=%s on %s", topic, connection.key)
            return 0

        received_at = self._clock()
        queued = 0
        for entity_id in sorted(entity_ids):
            if self._workers.submit(WorkItem(entity_id=entity_id, payload=bytes(payload), received_at=received_at)):
                queued += 1
        return queued

    __call__ = handle_message
