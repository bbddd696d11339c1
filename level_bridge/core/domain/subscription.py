"""Suscripciones de proyecto y claves de conexión al broker.

EntitySubscription es la vista de solo lectura que el bridge tiene de un
proyecto del almacén de configuración. ConnectionKey identifica una conexión
MQTT viva: dos proyectos con el mismo broker y usuario comparten conexión.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlsplit


DEFAULT_MQTT_PORT = 1883

# Esquemas aceptados → esquema canónico
_SCHEME_ALIASES = {
    "tcp": "tcp",
    "mqtt": "tcp",
    "ssl": "ssl",
    "tls": "ssl",
    "mqtts": "ssl",
    "ws": "ws",
    "wss": "wss",
}


@dataclass(frozen=True)
class NumericTransform:
    """Calibración lineal aplicada al valor crudo: v * multiplier + offset."""

    multiplier: float = 1.0
    offset: float = 0.0

    def apply(self, raw: float) -> float:
        return raw * self.multiplier + self.offset


@dataclass(frozen=True)
class AlertConfig:
    """Configuración de alertas por umbral."""

    enabled: bool = False
    low: Optional[float] = None
    high: Optional[float] = None
    # None = usar la histéresis global del proceso
    hysteresis: Optional[float] = None
    cooldown_seconds: float = 1800.0
    notify_on_recovery: bool = False


@dataclass(frozen=True)
class EntitySubscription:
    """Proyecto monitoreado tal como lo consume el bridge."""

    entity_id: str
    topic: str
    broker: Optional[str] = None
    port: int = DEFAULT_MQTT_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    transform: NumericTransform = NumericTransform()
    store_history: bool = False
    # None = usar el deadband global del proceso
    deadband: Optional[float] = None
    alerts: AlertConfig = AlertConfig()
    name: str = ""
    sensor_type: Optional[str] = None
    tank_type: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = (self.name or "").strip()
        return name if name else self.entity_id

    @property
    def is_relevant(self) -> bool:
        return self.store_history or self.alerts.enabled


@dataclass(frozen=True)
class ConnectionKey:
    """Identidad de una conexión al broker: (scheme, host, port, username).

    La contraseña no forma parte de la identidad; se resuelve aparte.
    """

    scheme: str
    host: str
    port: int
    username: Optional[str] = None

    @classmethod
    def build(
        cls,
        host: str,
        port: Optional[int] = None,
        username: Optional[str] = None,
        scheme: str = "tcp",
    ) -> "ConnectionKey":
        canonical = _SCHEME_ALIASES.get((scheme or "tcp").strip().lower())
        if canonical is None:
            raise ValueError(f"unsupported broker scheme: {scheme!r}")
        host = (host or "").strip().lower()
        if not host:
            raise ValueError("broker host is empty")
        user = (username or "").strip() or None
        return cls(
            scheme=canonical,
            host=host,
            port=int(port) if port else DEFAULT_MQTT_PORT,
            username=user,
        )

    @classmethod
    def from_url(cls, url: str, username: Optional[str] = None) -> "ConnectionKey":
        """Parsea `mqtt://host:port`, `tcp://host`, `host:port` o `host`."""
        raw = (url or "").strip()
        if "://" not in raw:
            raw = f"tcp://{raw}"
        parts = urlsplit(raw)
        return cls.build(
            host=parts.hostname or "",
            port=parts.port,
            username=username or parts.username,
            scheme=parts.scheme,
        )

    @property
    def uses_tls(self) -> bool:
        return self.scheme in ("ssl", "wss")

    @property
    def uses_websockets(self) -> bool:
        return self.scheme in ("ws", "wss")

    def __str__(self) -> str:
        user = f"{self.username}@" if self.username else ""
        return f"{self.scheme}://{user}{self.host}:{self.port}"


@dataclass(frozen=True)
class BrokerOverride:
    """Broker global configurado por entorno (MQTT_URL/MQTT_USERNAME/MQTT_PASSWORD)."""

    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


def resolve_connection(
    subscription: EntitySubscription,
    override: Optional[BrokerOverride] = None,
) -> Optional[Tuple[ConnectionKey, Optional[str]]]:
    """Resuelve (ConnectionKey, password) para un proyecto.

    Los valores globales tienen prioridad sobre los del proyecto. Devuelve
    None si no hay broker resoluble: el proyecto se omite del conjunto deseado.
    """
    override = override or BrokerOverride()
    username = override.username or subscription.username
    password = override.password or subscription.password

    try:
        if override.url:
            key = ConnectionKey.from_url(override.url, username=username)
        elif subscription.broker:
            broker = subscription.broker.strip()
            if "://" in broker:
                parts = urlsplit(broker)
                key = ConnectionKey.build(
                    host=parts.hostname or "",
                    port=parts.port or subscription.port,
                    username=username or parts.username,
                    scheme=parts.scheme,
                )
            else:
                key = ConnectionKey.build(broker, subscription.port, username)
        else:
            return None
    except ValueError:
        return None

    return key, password
