"""Sincronizador de suscripciones.

refresh():
1. Lee proyectos relevantes (historial O alertas) del almacén
2. Calcula ConnectionKeys y membresía topic → proyectos
3. Converge el pool de conexiones
4. Por conexión: desuscribe topics obsoletos, reemplaza el índice,
   suscribe topics nuevos (idempotente)
5. Reemplaza el mapa de proyectos y olvida el estado de los eliminados
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from ..core.domain import (
    AlertLevel,
    BrokerOverride,
    ConnectionKey,
    EntitySubscription,
    resolve_connection,
)
from ..metrics.bridge_metrics import BRIDGE_SUBSCRIBED_ENTITIES, BRIDGE_SYNC_RUNS
from ..mqtt.connection_pool import ConnectionPool, PoolClosedError
from .registry import EntityRegistry

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    def list_relevant(self) -> list[EntitySubscription]: ...

    def record_alert_state(self, entity_id: str, level: AlertLevel, at: float) -> None: ...


@dataclass
class SyncResult:
    ok: bool
    entities: int = 0
    connections: int = 0
    created: int = 0
    closed: int = 0
    failed: list[str] = field(default_factory=list)
    subscribed: int = 0
    unsubscribed: int = 0
    skipped: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "entities": self.entities,
            "connections": self.connections,
            "created": self.created,
            "closed": self.closed,
            "failed": list(self.failed),
            "subscribed": self.subscribed,
            "unsubscribed": self.unsubscribed,
            "skipped": list(self.skipped),
            "removed": list(self.removed),
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
        }


class SubscriptionSynchronizer:
    """Reconcilia suscripciones deseadas contra las vivas.

    Las llamadas concurrentes se serializan con un lock; cada pasada es
    idempotente, así que una segunda pasada encolada no cambia nada.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        pool: ConnectionPool,
        registry: EntityRegistry,
        override: Optional[BrokerOverride] = None,
        on_removed: Optional[Callable[[str], None]] = None,
    ):
        self._store = config_store
        self._pool = pool
        self._registry = registry
        self._override = override or BrokerOverride()
        self._on_removed = on_removed
        self._lock = threading.Lock()
        self._last_result: Optional[SyncResult] = None

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    def refresh(self) -> SyncResult:
        with self._lock:
            started = time.perf_counter()
            try:
                result = self._refresh_locked()
            except PoolClosedError:
                # Bridge detenido: no se reabren conexiones
                logger.info("[SYNC] Connection pool closed - refresh skipped")
                BRIDGE_SYNC_RUNS.labels(status="skipped").inc()
                result = SyncResult(ok=False, error="connection pool closed")
            except Exception as e:
                # Estado anterior intacto: se reintenta en la próxima pasada
                logger.exception("[SYNC] Refresh failed: %s", e)
                BRIDGE_SYNC_RUNS.labels(status="failed").inc()
                result = SyncResult(ok=False, error=str(e))
            else:
                BRIDGE_SYNC_RUNS.labels(status="ok").inc()
            result.duration_ms = (time.perf_counter() - started) * 1000
            self._last_result = result
            return result

    def _refresh_locked(self) -> SyncResult:
        subscriptions = self._store.list_relevant()

        topics_by_key: dict[ConnectionKey, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
        credentials: dict[ConnectionKey, Optional[str]] = {}
        entities: dict[str, EntitySubscription] = {}
        skipped: list[str] = []

        for sub in subscriptions:
            if not sub.is_relevant:
                continue
            if not sub.topic:
                logger.warning("[SYNC] Project %s has no topic - skipped", sub.entity_id)
                skipped.append(sub.entity_id)
                continue
            resolved = resolve_connection(sub, self._override)
            if resolved is None:
                logger.warning("[SYNC] Project %s has no resolvable broker - skipped", sub.entity_id)
                skipped.append(sub.entity_id)
                continue

            key, password = resolved
            if key in credentials and credentials[key] != password:
                logger.warning(
                    "[SYNC] Project %s uses a different password for %s - keeping the first one",
                    sub.entity_id,
                    key,
                )
            credentials.setdefault(key, password)
            topics_by_key[key][sub.topic].add(sub.entity_id)
            entities[sub.entity_id] = sub

        converge = self._pool.converge(topics_by_key.keys(), lambda k: credentials.get(k))

        subscribed = 0
        unsubscribed = 0
        for key, conn in self._pool.connections().items():
            desired_topics = topics_by_key.get(key, {})
            for topic in conn.topics - set(desired_topics):
                conn.unsubscribe(topic)
                unsubscribed += 1
            conn.index.replace(desired_topics)
            for topic in desired_topics:
                if topic not in conn.topics:
                    subscribed += 1
                conn.subscribe(topic)

        removed = self._registry.replace(entities)
        for entity_id in removed:
            if self._on_removed is not None:
                self._on_removed(entity_id)

        BRIDGE_SUBSCRIBED_ENTITIES.set(len(entities))
        if not entities:
            logger.warning("[SYNC] No active projects (none with storeHistory/alertsEnabled and a broker)")

        result = SyncResult(
            ok=True,
            entities=len(entities),
            connections=len(self._pool),
            created=len(converge.created),
            closed=len(converge.closed),
            failed=sorted(str(k) for k in converge.failed),
            subscribed=subscribed,
            unsubscribed=unsubscribed,
            skipped=skipped,
            removed=sorted(removed),
        )
        if converge.changed or converge.failed or subscribed or unsubscribed or removed:
            logger.info("[SYNC] %s", result.to_dict())
        return result
