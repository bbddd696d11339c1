"""Pool de conexiones MQTT: exactamente una conexión por ConnectionKey."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from ..core.domain import ConnectionKey
from ..metrics.bridge_metrics import BRIDGE_ACTIVE_CONNECTIONS
from .connection import BrokerConnection

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[ConnectionKey, Optional[str]], BrokerConnection]
CredentialResolver = Callable[[ConnectionKey], Optional[str]]


class PoolClosedError(RuntimeError):
    """converge() sobre un pool ya cerrado por close_all()."""


@dataclass
class ConvergeResult:
    created: list[ConnectionKey] = field(default_factory=list)
    closed: list[ConnectionKey] = field(default_factory=list)
    kept: list[ConnectionKey] = field(default_factory=list)
    failed: list[ConnectionKey] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.closed)


class ConnectionPool:
    """Converge el conjunto de conexiones vivas al conjunto deseado.

    Conexiones cuya clave sigue deseada (y con la misma contraseña) no se
    tocan: sin desconexión/reconexión en brokers no afectados. Después de
    close_all() el pool rechaza converger hasta reopen().
    """

    def __init__(self, connection_factory: ConnectionFactory):
        self._factory = connection_factory
        self._connections: dict[ConnectionKey, BrokerConnection] = {}
        self._lock = threading.RLock()
        self._closed = False

    def converge(
        self,
        desired_keys: Iterable[ConnectionKey],
        credential_for: CredentialResolver,
    ) -> ConvergeResult:
        desired = set(desired_keys)
        result = ConvergeResult()

        with self._lock:
            if self._closed:
                raise PoolClosedError("connection pool is closed")

            for key in list(self._connections):
                conn = self._connections[key]
                if key not in desired:
                    self._close(key)
                    result.closed.append(key)
                elif conn.password != credential_for(key):
                    # Misma identidad, credencial nueva: hay que reconectar
                    logger.info("[POOL] Credentials changed for %s - recreating", key)
                    self._close(key)
                    result.closed.append(key)

            for key in sorted(desired, key=str):
                if key in self._connections:
                    result.kept.append(key)
                    continue
                try:
                    conn = self._factory(key, credential_for(key))
                except Exception as e:
                    logger.error("[POOL] Could not create connection %s: %s", key, e)
                    result.failed.append(key)
                    continue
                if not conn.start():
                    # Sin registrar: la próxima pasada vuelve a intentarlo
                    conn.close()
                    result.failed.append(key)
                    continue
                self._connections[key] = conn
                result.created.append(key)

            BRIDGE_ACTIVE_CONNECTIONS.set(len(self._connections))

        if result.changed or result.failed:
            logger.info(
                "[POOL] Converged created=%d closed=%d kept=%d failed=%d",
                len(result.created),
                len(result.closed),
                len(result.kept),
                len(result.failed),
            )
        return result

    def resolve(self, key: ConnectionKey) -> Optional[BrokerConnection]:
        with self._lock:
            return self._connections.get(key)

    def connections(self) -> dict[ConnectionKey, BrokerConnection]:
        with self._lock:
            return dict(self._connections)

    def close_all(self) -> None:
        with self._lock:
            self._closed = True
            for key in list(self._connections):
                self._close(key)
            BRIDGE_ACTIVE_CONNECTIONS.set(0)

    def reopen(self) -> None:
        with self._lock:
            self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _close(self, key: ConnectionKey) -> None:
        conn = self._connections.pop(key)
        try:
            conn.close()
        except Exception as e:
            logger.warning("[POOL] Error closing %s: %s", key, e)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    @property
    def stats(self) -> list[dict]:
        return [conn.stats for conn in self.connections().values()]
