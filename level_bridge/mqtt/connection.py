"""Conexión MQTT a un broker (una por ConnectionKey).

Responsabilidades:
- Conexión asíncrona con reconexión automática (backoff acotado de paho)
- Sesión limpia: los topics se re-suscriben en cada (re)conexión
- Un único callback de mensaje que consulta el TopicIndex y delega
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from ..core.domain import ConnectionKey
from ..sync.topic_index import TopicIndex

logger = logging.getLogger(__name__)

MessageHandler = Callable[["BrokerConnection", str, bytes], None]
ClientFactory = Callable[[str, ConnectionKey], mqtt.Client]


def create_mqtt_client(client_id: str, key: ConnectionKey) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        clean_session=True,
        protocol=mqtt.MQTTv311,
        transport="websockets" if key.uses_websockets else "tcp",
    )


class BrokerConnection:
    """Wrapper de paho-mqtt para una ConnectionKey."""

    def __init__(
        self,
        key: ConnectionKey,
        password: Optional[str],
        on_message: MessageHandler,
        client_id_prefix: str = "level-bridge",
        keepalive: int = 60,
        reconnect_min_seconds: int = 3,
        reconnect_max_seconds: int = 60,
        client_factory: ClientFactory = create_mqtt_client,
    ):
        self.key = key
        self.password = password
        self.index = TopicIndex()
        self.client_id = f"{client_id_prefix}-{uuid.uuid4().hex[:8]}"

        self._handler = on_message
        self._keepalive = keepalive
        self._reconnect_min = reconnect_min_seconds
        self._reconnect_max = reconnect_max_seconds
        self._client_factory = client_factory

        self._client: Optional[mqtt.Client] = None
        self._topics: set[str] = set()
        self._lock = threading.Lock()
        self._connected = False
        self._closed = False

        # Stats
        self.connect_count = 0
        self.disconnect_count = 0
        self.error_count = 0
        self.messages_received = 0
        self.last_error: Optional[str] = None
        self.last_message_at: float = 0

    def start(self) -> bool:
        """Inicia la conexión sin bloquear. Nunca lanza excepciones."""
        try:
            client = self._client_factory(self.client_id, self.key)
            client.on_connect = self._on_connect
            client.on_disconnect = self._on_disconnect
            client.on_message = self._on_message

            if self.key.username:
                client.username_pw_set(self.key.username, self.password)
            if self.key.uses_tls:
                client.tls_set()
            client.reconnect_delay_set(min_delay=self._reconnect_min, max_delay=self._reconnect_max)

            self._client = client
            logger.info("[MQTT] Connecting to %s", self.key)
            client.connect_async(self.key.host, self.key.port, keepalive=self._keepalive)
            client.loop_start()
            return True
        except Exception as e:
            # paho reintenta por su cuenta una vez que el loop está corriendo;
            # si falló antes, el pool descarta la conexión y la recrea en el
            # próximo resync.
            self.error_count += 1
            self.last_error = str(e)
            logger.error("[MQTT] Start failed for %s: %s", self.key, e)
            return False

    def close(self) -> None:
        """Deja de entregar mensajes de inmediato y desconecta."""
        self._closed = True
        self.index.clear()
        with self._lock:
            self._topics.clear()
        client = self._client
        if client is None:
            return
        try:
            client.disconnect()
            client.loop_stop()
        except Exception as e:
            logger.warning("[MQTT] Disconnect error %s: %s", self.key, e)
        self._connected = False
        logger.info("[MQTT] Closed connection %s", self.key)

    def subscribe(self, topic: str) -> None:
        """Idempotente; si no hay conexión se suscribe al conectar."""
        with self._lock:
            if topic in self._topics:
                return
            self._topics.add(topic)
        if self._connected and self._client is not None:
            result, _mid = self._client.subscribe(topic, qos=0)
            if result != mqtt.MQTT_ERR_SUCCESS:
                logger.warning("[MQTT] Subscribe %s on %s returned rc=%s", topic, self.key, result)
            else:
                logger.info("[MQTT] Subscribed %s on %s", topic, self.key)

    def unsubscribe(self, topic: str) -> None:
        with self._lock:
            if topic not in self._topics:
                return
            self._topics.discard(topic)
        if self._connected and self._client is not None:
            self._client.unsubscribe(topic)
            logger.info("[MQTT] Unsubscribed %s on %s", topic, self.key)

    @property
    def topics(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._topics)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected = True
            self.connect_count += 1
            topics = sorted(self.topics)
            logger.info("[MQTT] Connected %s (resubscribing %d topics)", self.key, len(topics))
            for topic in topics:
                client.subscribe(topic, qos=0)
        else:
            self._connected = False
            self.error_count += 1
            self.last_error = str(reason_code)
            logger.error("[MQTT] Connection refused %s: %s", self.key, reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        if self._closed:
            return
        self.disconnect_count += 1
        logger.warning("[MQTT] Disconnected %s (rc=%s) - reconnecting", self.key, reason_code)

    def _on_message(self, client, userdata, msg):
        if self._closed:
            return
        self.messages_received += 1
        self.last_message_at = time.time()
        try:
            self._handler(self, msg.topic, msg.payload)
        except Exception as e:
            # Un mensaje malo no puede frenar el loop de red
            self.error_count += 1
            logger.exception("[MQTT] Message handler error topic=%s: %s", msg.topic, e)

    @property
    def stats(self) -> dict:
        return {
            "key": str(self.key),
            "connected": self._connected,
            "closed": self._closed,
            "topics": sorted(self.topics),
            "connect_count": self.connect_count,
            "disconnect_count": self.disconnect_count,
            "error_count": self.error_count,
            "messages_received": self.messages_received,
            "last_message_at": self.last_message_at,
            "last_error": self.last_error,
        }
