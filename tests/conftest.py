"""Fixtures y fakes compartidos por los tests del bridge."""

from __future__ import annotations

import dataclasses
from typing import Optional, Sequence
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from common.config import Settings
from level_bridge.core.domain import AlertConfig, AlertLevel, DeliveryTarget, EntitySubscription
from level_bridge.infrastructure.persistence import ensure_schema
from level_bridge.push.fcm_transport import TOKEN_NOT_REGISTERED, TokenOutcome


# =============================================================================
# FAKES
# =============================================================================

class FakeConfigStore:
    def __init__(self, subscriptions: Optional[list[EntitySubscription]] = None):
        self.subscriptions = list(subscriptions or [])
        self.recorded: list[tuple[str, AlertLevel, float]] = []
        self.fail_list = False
        self.fail_record = False

    def list_relevant(self) -> list[EntitySubscription]:
        if self.fail_list:
            raise RuntimeError("config store down")
        return list(self.subscriptions)

    def record_alert_state(self, entity_id: str, level: AlertLevel, at: float) -> None:
        if self.fail_record:
            raise RuntimeError("write-back failed")
        self.recorded.append((entity_id, level, at))


class FakeReadingStore:
    def __init__(self):
        self.rows: list[tuple[str, float, float]] = []
        self.fail_for: set[str] = set()

    def insert(self, entity_id: str, value: float, at: float) -> None:
        if entity_id in self.fail_for:
            raise RuntimeError("insert timeout")
        self.rows.append((entity_id, value, at))

    def values_for(self, entity_id: str) -> list[float]:
        return [v for e, v, _ in self.rows if e == entity_id]


class FakeTargetStore:
    def __init__(self, targets: Optional[list[DeliveryTarget]] = None):
        self.targets = list(targets or [])
        self.deleted: list[str] = []
        self.fail_delete = False

    def targets_for(self, entity_id: str) -> list[DeliveryTarget]:
        return [t for t in self.targets if t.entity_id in (entity_id, None)]

    def delete_tokens(self, tokens: Sequence[str]) -> int:
        if self.fail_delete:
            raise RuntimeError("delete failed")
        before = len(self.targets)
        self.targets = [t for t in self.targets if t.token not in tokens]
        self.deleted.extend(tokens)
        return before - len(self.targets)


class FakeTransport:
    """Transporte push en memoria; `invalid` simula tokens dados de baja."""

    def __init__(self, enabled: bool = True, invalid: Optional[set[str]] = None):
        self._enabled = enabled
        self.invalid = set(invalid or ())
        self.calls: list[tuple[list[str], object]] = []
        self.error: Optional[Exception] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def multicast(self, tokens, payload) -> list[TokenOutcome]:
        self.calls.append((list(tokens), payload))
        if self.error is not None:
            raise self.error
        return [
            TokenOutcome(token=t, success=False, error=TOKEN_NOT_REGISTERED)
            if t in self.invalid
            else TokenOutcome(token=t, success=True)
            for t in tokens
        ]


def make_mqtt_client_mock() -> MagicMock:
    client = MagicMock(name="mqtt.Client")
    client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
    client.unsubscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 2)
    return client


# =============================================================================
# FIXTURES
# =============================================================================

_BASE_SETTINGS = Settings(
    database_url="sqlite://",
    db_pool_timeout_seconds=5.0,
    db_statement_timeout_seconds=5.0,
    mqtt_url=None,
    mqtt_username=None,
    mqtt_password=None,
    mqtt_client_id_prefix="test-bridge",
    mqtt_keepalive_seconds=60,
    mqtt_reconnect_min_seconds=3,
    mqtt_reconnect_max_seconds=60,
    refresh_seconds=60.0,
    deadband_meters=0.003,
    alert_hysteresis_meters=0.0,
    default_alert_cooldown_sec=1800.0,
    notify_updates=False,
    notify_updates_interval_sec=0.0,
    fcm_credentials_file="/secrets/service-account.json",
    push_timeout_seconds=5.0,
    worker_count=1,
    worker_queue_size=100,
    readings_ttl_days=0,
)


@pytest.fixture
def make_settings():
    """Fábrica de Settings; worker_count=0 procesa en línea."""

    def _make(**overrides) -> Settings:
        overrides.setdefault("worker_count", 0)
        return dataclasses.replace(_BASE_SETTINGS, **overrides)

    return _make


@pytest.fixture
def make_subscription():
    def _make(entity_id: str = "p1", topic: str = "tanks/p1/level", **kwargs) -> EntitySubscription:
        kwargs.setdefault("broker", "broker.local")
        alerts = kwargs.pop("alerts", None)
        if alerts is None:
            alerts = AlertConfig()
        elif isinstance(alerts, dict):
            alerts = AlertConfig(**alerts)
        return EntitySubscription(entity_id=entity_id, topic=topic, alerts=alerts, **kwargs)

    return _make


@pytest.fixture
def mqtt_client_factory():
    """Fábrica de clientes paho simulados; guarda cada cliente creado."""
    created: list[MagicMock] = []

    def _factory(client_id, key):
        client = make_mqtt_client_mock()
        created.append(client)
        return client

    _factory.created = created
    return _factory


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    ensure_schema(engine)
    yield engine
    engine.dispose()
