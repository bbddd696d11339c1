"""Tests de payloads push, dispatcher y transporte FCM."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from firebase_admin import exceptions, messaging

from level_bridge.alerts import (
    PushPayload,
    UpdateThrottle,
    build_alert_payload,
    build_update_payload,
    make_dedup_id,
)
from level_bridge.core.domain import (
    AlertConfig,
    AlertDecision,
    AlertLevel,
    DeliveryTarget,
    EntitySubscription,
    Transition,
)
from level_bridge.push import FcmTransport, NotificationDispatcher, TokenOutcome, unique_tokens
from level_bridge.push.fcm_transport import (
    MAX_TOKENS_PER_REQUEST,
    TOKEN_INVALID,
    TOKEN_NOT_REGISTERED,
    error_code,
)

from conftest import FakeTargetStore, FakeTransport


@pytest.fixture
def payload() -> PushPayload:
    return PushPayload(title="High level alert (Tank A)", body="Level: 4.200 m", dedup_id="abc123")


def _decision(level=AlertLevel.HIGH, previous=AlertLevel.NORMAL, hysteresis=0.0) -> AlertDecision:
    return AlertDecision(
        entity_id="p1",
        value=4.2,
        previous=previous,
        level=level,
        transition=Transition.CROSSED,
        cooled_down=True,
        recorded=True,
        notify=True,
        hysteresis=hysteresis,
        evaluated_at=1_700_000_000.0,
    )


# =============================================================================
# PAYLOADS
# =============================================================================

class TestPayloads:

    def test_alert_payload_fields(self):
        sub = EntitySubscription(entity_id="p1", topic="t", name="Tank A", alerts=AlertConfig(enabled=True))
        p = build_alert_payload(sub, _decision(hysteresis=0.05))

        assert p.title == "High level alert (Tank A)"
        assert p.body.startswith("Level: 4.200 m @ ")
        assert "(hyst=0.05m)" in p.body
        assert p.data["alertState"] == "high"
        assert p.data["previousState"] == "normal"
        assert p.data["projectId"] == "p1"
        assert float(p.data["levelMeters"]) == pytest.approx(4.2)
        assert p.data["notificationId"] == p.dedup_id
        assert all(isinstance(v, str) for v in p.data.values())

    def test_recovery_title_uses_id_without_name(self):
        sub = EntitySubscription(entity_id="p9", topic="t")
        p = build_alert_payload(sub, _decision(level=AlertLevel.NORMAL, previous=AlertLevel.LOW))
        assert p.title == "Level back to normal (p9)"
        assert "hyst" not in p.body

    def test_dedup_id_is_stable(self):
        assert make_dedup_id("p1", "high", 10.0) == make_dedup_id("p1", "high", 10.0)
        assert make_dedup_id("p1", "high", 10.0) != make_dedup_id("p1", "low", 10.0)
        assert len(make_dedup_id("p1", "high", 10.0)) == 16

    def test_update_payload(self):
        sub = EntitySubscription(entity_id="p1", topic="t", name="Tank A")
        p = build_update_payload(sub, 2.5, 1_700_000_000.0)
        assert p.title == "Level update (Tank A)"
        assert "2.500 m" in p.body


class TestUpdateThrottle:

    def test_interval(self):
        throttle = UpdateThrottle(interval_seconds=60)
        assert throttle.try_acquire("p1", 0.0) is True
        assert throttle.try_acquire("p1", 30.0) is False
        assert throttle.try_acquire("p2", 30.0) is True
        assert throttle.try_acquire("p1", 61.0) is True

    def test_zero_interval_never_throttles(self):
        throttle = UpdateThrottle(interval_seconds=0)
        assert all(throttle.try_acquire("p1", 0.0) for _ in range(3))

    def test_forget(self):
        throttle = UpdateThrottle(interval_seconds=60)
        throttle.try_acquire("p1", 0.0)
        throttle.forget("p1")
        assert throttle.try_acquire("p1", 1.0) is True


# =============================================================================
# DISPATCHER
# =============================================================================

class TestDispatcher:

    def test_unique_tokens_preserves_order(self):
        targets = [
            DeliveryTarget("a", None),
            DeliveryTarget("b", "p1"),
            DeliveryTarget("a", "p1"),
            "c",
            "",
        ]
        assert unique_tokens(targets) == ["a", "b", "c"]

    def test_token_in_global_and_entity_scope_sent_once(self, payload):
        transport = FakeTransport()
        store = FakeTargetStore([DeliveryTarget("T1", None), DeliveryTarget("T1", "p1"), DeliveryTarget("T2", "p1")])
        dispatcher = NotificationDispatcher(transport, store)

        result = dispatcher.notify_entity("p1", payload)

        assert result.ok and result.delivered == 2
        assert transport.calls[0][0] == ["T1", "T2"]

    def test_disabled_push_is_noop_failure(self, payload):
        transport = FakeTransport(enabled=False)
        dispatcher = NotificationDispatcher(transport, FakeTargetStore([DeliveryTarget("T1")]))

        result = dispatcher.send(["T1"], payload)

        assert result.ok is False
        assert result.error == "push disabled"
        assert transport.calls == []

    def test_no_targets(self, payload):
        dispatcher = NotificationDispatcher(FakeTransport(), FakeTargetStore())
        result = dispatcher.notify_entity("p1", payload)
        assert not result.ok and result.error == "no targets"

    def test_scenario_d_invalid_token_pruned(self, payload):
        transport = FakeTransport(invalid={"T"})
        store = FakeTargetStore([DeliveryTarget("T", "p1"), DeliveryTarget("OK", None)])
        dispatcher = NotificationDispatcher(transport, store)

        result = dispatcher.notify_entity("p1", payload)

        assert result.invalid_targets == ["T"]
        assert result.delivered == 1
        assert store.deleted == ["T"]
        assert [t.token for t in store.targets_for("p1")] == ["OK"]

        dispatcher.notify_entity("p1", payload)
        assert transport.calls[-1][0] == ["OK"]

    def test_transport_error_returns_failure(self, payload):
        transport = FakeTransport()
        transport.error = exceptions.DeadlineExceededError("push timeout")
        dispatcher = NotificationDispatcher(transport, FakeTargetStore([DeliveryTarget("T1")]))

        result = dispatcher.send(["T1"], payload)

        assert not result.ok
        assert "push timeout" in result.error

    def test_unexpected_transport_error_returns_failure(self, payload):
        # Respuesta con forma inesperada: el error no sale de send()
        transport = FakeTransport()
        transport.error = AttributeError("'list' object has no attribute 'get'")
        dispatcher = NotificationDispatcher(transport, FakeTargetStore([DeliveryTarget("T1")]))

        result = dispatcher.send(["T1"], payload)

        assert result.ok is False
        assert "no attribute" in result.error

    def test_malformed_outcomes_return_failure(self, payload):
        transport = MagicMock()
        transport.enabled = True
        transport.multicast.return_value = [{"token": "T1"}]
        dispatcher = NotificationDispatcher(transport, FakeTargetStore())

        result = dispatcher.send(["T1"], payload)

        assert result.ok is False

    def test_prune_failure_is_logged_not_raised(self, payload):
        store = FakeTargetStore([DeliveryTarget("T", None)])
        store.fail_delete = True
        dispatcher = NotificationDispatcher(FakeTransport(invalid={"T"}), store)

        result = dispatcher.send(["T"], payload)

        assert result.invalid_targets == ["T"]
        assert [t.token for t in store.targets] == ["T"]

    def test_target_lookup_failure(self, payload):
        store = MagicMock()
        store.targets_for.side_effect = RuntimeError("db down")
        dispatcher = NotificationDispatcher(FakeTransport(), store)

        result = dispatcher.notify_entity("p1", payload)

        assert not result.ok
        assert "db down" in result.error


# =============================================================================
# FCM TRANSPORT
# =============================================================================

def _ok():
    return SimpleNamespace(success=True, message_id="projects/p/messages/1", exception=None)


def _failed(exc):
    return SimpleNamespace(success=False, message_id=None, exception=exc)


class _SentMessages(list):
    """Mensajes enviados; `responder` arma las respuestas por token."""

    def responder(self, tokens):
        return [_ok() for _ in tokens]


@pytest.fixture
def sent(monkeypatch):
    calls = _SentMessages()

    def _send(message, app=None):
        calls.append((message, app))
        return SimpleNamespace(responses=calls.responder(message.tokens))

    monkeypatch.setattr(messaging, "send_each_for_multicast", _send)
    return calls


class TestFcmTransport:

    def test_disabled_without_app(self):
        assert FcmTransport(None).enabled is False
        assert FcmTransport(MagicMock(name="App")).enabled is True

    def test_missing_credentials_file_disables_push(self, tmp_path):
        assert FcmTransport.from_credentials_file(None).enabled is False
        assert FcmTransport.from_credentials_file(str(tmp_path / "missing.json")).enabled is False

    def test_invalid_credentials_file_disables_push(self, tmp_path):
        path = tmp_path / "service-account.json"
        path.write_text("{}")
        assert FcmTransport.from_credentials_file(str(path)).enabled is False

    def test_multicast_message_and_outcomes(self, payload, sent):
        app = MagicMock(name="App")
        sent.responder = lambda tokens: [
            _ok(),
            _failed(messaging.UnregisteredError("Requested entity was not found.")),
            _failed(exceptions.UnavailableError("try again later")),
        ]

        outcomes = FcmTransport(app).multicast(["a", "b", "c"], payload)

        message, used_app = sent[0]
        assert used_app is app
        assert message.tokens == ["a", "b", "c"]
        assert message.notification.title == payload.title
        assert message.android.collapse_key == "abc123"
        assert message.data == payload.data

        assert [o.success for o in outcomes] == [True, False, False]
        assert outcomes[1].error == TOKEN_NOT_REGISTERED
        assert outcomes[1].permanently_invalid
        assert not outcomes[2].permanently_invalid

    def test_missing_responses_are_failures(self, payload, sent):
        sent.responder = lambda tokens: []
        outcomes = FcmTransport(MagicMock()).multicast(["a"], payload)
        assert outcomes == [TokenOutcome(token="a", success=False, error="MissingResult")]

    def test_chunks_large_multicasts(self, payload, sent):
        tokens = [f"t{i}" for i in range(MAX_TOKENS_PER_REQUEST + 5)]

        outcomes = FcmTransport(MagicMock()).multicast(tokens, payload)

        assert len(sent) == 2
        assert len(sent[0][0].tokens) == MAX_TOKENS_PER_REQUEST
        assert len(outcomes) == len(tokens)
        assert all(o.success for o in outcomes)

    def test_batch_error_propagates(self, payload, monkeypatch):
        def _fail(message, app=None):
            raise exceptions.UnauthenticatedError("bad credentials")

        monkeypatch.setattr(messaging, "send_each_for_multicast", _fail)
        with pytest.raises(exceptions.FirebaseError):
            FcmTransport(MagicMock()).multicast(["a"], payload)

    def test_invalid_token_errors_are_permanent(self):
        assert error_code(messaging.UnregisteredError("gone")) == TOKEN_NOT_REGISTERED
        bad_token = exceptions.InvalidArgumentError("The registration token is not a valid FCM registration token")
        assert error_code(bad_token) == TOKEN_INVALID
        # INVALID_ARGUMENT por payload no implica token inválido
        bad_payload = exceptions.InvalidArgumentError("Invalid data payload key")
        assert error_code(bad_payload) not in (TOKEN_INVALID, TOKEN_NOT_REGISTERED)
