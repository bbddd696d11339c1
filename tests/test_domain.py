"""Tests de tipos de dominio: ConnectionKey y resolución de broker."""

import pytest

from level_bridge.core.domain import (
    BrokerOverride,
    ConnectionKey,
    EntitySubscription,
    NumericTransform,
    resolve_connection,
)


# =============================================================================
# CONNECTION KEY
# =============================================================================

class TestConnectionKey:

    def test_normalizes_host_and_scheme(self):
        a = ConnectionKey.build("Broker.Local ", 1883, "user", scheme="mqtt")
        b = ConnectionKey.build("broker.local", None, " user ", scheme="tcp")

        assert a == b
        assert hash(a) == hash(b)
        assert a.scheme == "tcp"
        assert a.port == 1883

    def test_empty_username_is_none(self):
        key = ConnectionKey.build("broker.local", 1883, "  ")
        assert key.username is None

    def test_rejects_empty_host(self):
        with pytest.raises(ValueError):
            ConnectionKey.build("   ", 1883)

    def test_rejects_unknown_scheme(self):
        with pytest.raises(ValueError):
            ConnectionKey.build("broker.local", 1883, scheme="http")

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("mqtt://broker.local:1884", ("tcp", "broker.local", 1884)),
            ("broker.local", ("tcp", "broker.local", 1883)),
            ("mqtts://secure.example.com:8883", ("ssl", "secure.example.com", 8883)),
            ("wss://ws.example.com:443", ("wss", "ws.example.com", 443)),
        ],
    )
    def test_from_url(self, url, expected):
        key = ConnectionKey.from_url(url)
        assert (key.scheme, key.host, key.port) == expected

    def test_tls_and_websocket_flags(self):
        assert ConnectionKey.build("h", scheme="ssl").uses_tls
        assert ConnectionKey.build("h", scheme="wss").uses_tls
        assert ConnectionKey.build("h", scheme="wss").uses_websockets
        assert not ConnectionKey.build("h").uses_tls

    def test_str_hides_password(self):
        key = ConnectionKey.build("broker.local", 1883, "alice")
        assert str(key) == "tcp://alice@broker.local:1883"


# =============================================================================
# RESOLVE CONNECTION
# =============================================================================

class TestResolveConnection:

    def test_per_entity_broker(self):
        sub = EntitySubscription(
            entity_id="p1", topic="t", broker="broker.local", port=1884, username="u", password="pw"
        )
        key, password = resolve_connection(sub)

        assert key == ConnectionKey.build("broker.local", 1884, "u")
        assert password == "pw"

    def test_broker_given_as_url(self):
        sub = EntitySubscription(entity_id="p1", topic="t", broker="mqtt://broker.local:1999")
        key, _ = resolve_connection(sub)
        assert key.port == 1999

    def test_no_broker_is_unresolvable(self):
        sub = EntitySubscription(entity_id="p1", topic="t", broker=None)
        assert resolve_connection(sub) is None

    def test_invalid_broker_is_unresolvable(self):
        sub = EntitySubscription(entity_id="p1", topic="t", broker="http://nope")
        assert resolve_connection(sub) is None

    def test_global_override_takes_precedence(self):
        sub = EntitySubscription(
            entity_id="p1", topic="t", broker="other.host", username="u1", password="p1"
        )
        override = BrokerOverride(url="mqtt://central:1883", username="svc", password="secret")

        key, password = resolve_connection(sub, override)

        assert key == ConnectionKey.build("central", 1883, "svc")
        assert password == "secret"

    def test_override_applies_without_entity_broker(self):
        sub = EntitySubscription(entity_id="p1", topic="t")
        key, _ = resolve_connection(sub, BrokerOverride(url="central"))
        assert key.host == "central"


# =============================================================================
# ENTITY SUBSCRIPTION
# =============================================================================

class TestEntitySubscription:

    def test_display_name_falls_back_to_id(self):
        assert EntitySubscription(entity_id="p1", topic="t").display_name == "p1"
        assert EntitySubscription(entity_id="p1", topic="t", name=" Tank A ").display_name == "Tank A"

    def test_transform(self):
        assert NumericTransform(multiplier=0.01, offset=0.5).apply(150) == pytest.approx(2.0)
