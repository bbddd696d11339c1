"""Bridge MQTT → histórico de niveles + alertas push.

Ensambla los componentes y maneja su ciclo de vida:

    ConfigStore ─► SubscriptionSynchronizer ─► ConnectionPool ─► BrokerConnection
                                                                      │ on_message
                                                                      ▼
    ReadingStore ◄─ ReadingProcessor ◄─ EntityWorkerPool ◄────── MessageRouter
                          │
                          └─► AlertEngine ─► AlertNotifier ─► NotificationDispatcher

Todo el estado mutable vive en una instancia de Bridge; stores, transporte
push y fábrica de conexiones se inyectan.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from common.config import Settings, get_settings

from .alerts.alert_engine import AlertEngine
from .alerts.notifications import UpdateThrottle
from .core.domain import BrokerOverride, ConnectionKey
from .filtering.reading_filter import ReadingFilter
from .monitoring.health import HealthChecker
from .monitoring.stats import BridgeStats
from .mqtt.connection import BrokerConnection, ClientFactory, create_mqtt_client
from .mqtt.connection_pool import ConnectionFactory, ConnectionPool
from .pipeline.alert_notifier import AlertNotifier
from .pipeline.processor import ReadingProcessor, ReadingStore
from .pipeline.router import MessageRouter
from .pipeline.workers import EntityWorkerPool
from .push.dispatcher import NotificationDispatcher, PushTransport, TargetStore
from .sync.registry import EntityRegistry
from .sync.synchronizer import ConfigStore, SubscriptionSynchronizer, SyncResult

logger = logging.getLogger(__name__)


class Bridge:
    def __init__(
        self,
        settings: Settings,
        config_store: ConfigStore,
        reading_store: ReadingStore,
        target_store: TargetStore,
        transport: PushTransport,
        connection_factory: Optional[ConnectionFactory] = None,
        client_factory: ClientFactory = create_mqtt_client,
        engine: Optional[Engine] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._client_factory = client_factory
        self._health = HealthChecker(engine)

        self.registry = EntityRegistry()
        self.reading_filter = ReadingFilter(settings.deadband_meters)
        self.alert_engine = AlertEngine(settings.alert_hysteresis_meters, clock=clock)
        self.dispatcher = NotificationDispatcher(transport, target_store)

        throttle = UpdateThrottle(settings.notify_updates_interval_sec) if settings.notify_updates else None
        self.processor = ReadingProcessor(
            registry=self.registry,
            reading_filter=self.reading_filter,
            alert_engine=self.alert_engine,
            reading_store=reading_store,
            notifier=AlertNotifier(config_store, self.dispatcher),
            dispatcher=self.dispatcher,
            update_throttle=throttle,
        )
        self.workers = EntityWorkerPool(
            self.processor.process,
            num_workers=settings.worker_count,
            max_queue_size=settings.worker_queue_size,
        )
        self.router = MessageRouter(self.workers, clock=clock)
        self.pool = ConnectionPool(connection_factory or self._create_connection)
        self.synchronizer = SubscriptionSynchronizer(
            config_store,
            self.pool,
            self.registry,
            override=BrokerOverride(
                url=settings.mqtt_url,
                username=settings.mqtt_username,
                password=settings.mqtt_password,
            ),
            on_removed=self.processor.forget,
        )

        self._stop_event = threading.Event()
        self._timer: Optional[threading.Thread] = None
        self._running = False
        self._refresh_count = 0
        self._last_refresh_at: Optional[datetime] = None
        self._started_at = datetime.now(timezone.utc)

    def _create_connection(self, key: ConnectionKey, password: Optional[str]) -> BrokerConnection:
        s = self._settings
        return BrokerConnection(
            key,
            password,
            on_message=self.router.handle_message,
            client_id_prefix=s.mqtt_client_id_prefix,
            keepalive=s.mqtt_keepalive_seconds,
            reconnect_min_seconds=s.mqtt_reconnect_min_seconds,
            reconnect_max_seconds=s.mqtt_reconnect_max_seconds,
            client_factory=self._client_factory,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, periodic: bool = True) -> SyncResult:
        """Arranca workers, hace una primera sincronización y el timer."""
        if self._running:
            return self.reload()

        logger.info(
            "[BRIDGE] Starting refresh=%ss workers=%d push=%s",
            self._settings.refresh_seconds,
            self._settings.worker_count,
            "on" if self.dispatcher.enabled else "off",
        )
        self.workers.start()
        self.pool.reopen()
        self._stop_event.clear()
        self._running = True
        result = self.refresh()

        if periodic:
            self._timer = threading.Thread(target=self._refresh_loop, daemon=True, name="bridge-refresh")
            self._timer.start()
        return result

    def _refresh_loop(self) -> None:
        while not self._stop_event.wait(self._settings.refresh_seconds):
            self.refresh()

    def refresh(self) -> SyncResult:
        if not self._running:
            return SyncResult(ok=False, error="bridge not running")
        result = self.synchronizer.refresh()
        self._refresh_count += 1
        self._last_refresh_at = datetime.now(timezone.utc)
        return result

    def reload(self) -> SyncResult:
        """Sincronización a demanda; segura mientras corre la periódica."""
        logger.info("[BRIDGE] Reload requested")
        return self.refresh()

    def stop(self) -> None:
        if not self._running:
            return
        logger.info("[BRIDGE] Stopping")
        self._running = False
        self._stop_event.set()
        if self._timer is not None:
            self._timer.join(timeout=5.0)
            self._timer = None
        # Primero cortar la entrada de mensajes, luego drenar lo encolado.
        # close_all() deja el pool cerrado: una resync en curso no reabre nada.
        self.pool.close_all()
        self.workers.stop(drain=True)
        logger.info("[BRIDGE] Stopped. %s", self.stats)

    @property
    def stats(self) -> BridgeStats:
        connections = self.pool.connections()
        last = self.synchronizer.last_result
        return BridgeStats(
            running=self._running,
            entities=len(self.registry),
            connections=len(connections),
            connected=sum(1 for c in connections.values() if c.is_connected),
            messages_received=sum(c.messages_received for c in connections.values()),
            refresh_count=self._refresh_count,
            last_refresh_at=self._last_refresh_at,
            last_sync=last.to_dict() if last else None,
            workers=self.workers.metrics,
            started_at=self._started_at,
        )

    def health_check(self) -> dict:
        connections = self.pool.connections()
        status = self._health.get_status(
            running=self._running,
            connections=len(connections),
            connected=sum(1 for c in connections.values() if c.is_connected),
        )
        return status.to_dict()


# Singleton
_bridge: Optional[Bridge] = None


def create_bridge(settings: Optional[Settings] = None) -> Bridge:
    """Construye el bridge con stores SQL y transporte FCM desde settings."""
    from common.db import get_engine

    from .infrastructure.persistence import (
        SqlConfigStore,
        SqlReadingStore,
        SqlTargetStore,
        ensure_schema,
    )
    from .push.fcm_transport import FcmTransport

    settings = settings or get_settings()
    engine = get_engine()
    ensure_schema(engine)

    return Bridge(
        settings,
        config_store=SqlConfigStore(engine, default_cooldown=settings.default_alert_cooldown_sec),
        reading_store=SqlReadingStore(engine),
        target_store=SqlTargetStore(engine),
        transport=FcmTransport.from_credentials_file(
            settings.fcm_credentials_file,
            timeout_seconds=settings.push_timeout_seconds,
        ),
        engine=engine,
    )


def get_bridge() -> Optional[Bridge]:
    """Obtiene el bridge singleton."""
    return _bridge


def start_bridge() -> Bridge:
    global _bridge

    if _bridge is None:
        _bridge = create_bridge()
    if not _bridge.is_running:
        _bridge.start()
    return _bridge


def stop_bridge() -> None:
    global _bridge

    if _bridge is not None:
        _bridge.stop()
        _bridge = None
