"""Métricas Prometheus del bridge."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

BRIDGE_MESSAGES_RECEIVED = Counter(
    "bridge_messages_received_total",
    "MQTT messages received by the bridge",
)
BRIDGE_MESSAGES_UNROUTED = Counter(
    "bridge_messages_unrouted_total",
    "MQTT messages whose topic has no subscribed project",
)
BRIDGE_READINGS_UNPARSABLE = Counter(
    "bridge_readings_unparsable_total",
    "Payloads without a numeric token (dropped)",
)
BRIDGE_READINGS = Counter(
    "bridge_readings_total",
    "Readings by outcome",
    ["status"],  # stored, suppressed, skipped, failed
)
BRIDGE_WORK_DROPPED = Counter(
    "bridge_work_dropped_total",
    "Work items dropped because the entity queue was full",
)
BRIDGE_ALERT_TRANSITIONS = Counter(
    "bridge_alert_transitions_total",
    "Recorded alert transitions",
    ["level"],
)
BRIDGE_NOTIFICATIONS = Counter(
    "bridge_notifications_total",
    "Push notifications by kind and outcome",
    ["kind", "status"],  # kind: alert/update; status: sent/failed/skipped
)
BRIDGE_TARGETS_PRUNED = Counter(
    "bridge_push_targets_pruned_total",
    "Delivery targets removed after being reported invalid",
)
BRIDGE_SYNC_RUNS = Counter(
    "bridge_sync_runs_total",
    "Subscription synchronization passes",
    ["status"],  # ok, failed, skipped
)
BRIDGE_ACTIVE_CONNECTIONS = Gauge(
    "bridge_active_connections",
    "Live broker connections",
)
BRIDGE_SUBSCRIBED_ENTITIES = Gauge(
    "bridge_subscribed_entities",
    "Projects currently routed by the bridge",
)
