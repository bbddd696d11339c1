"""Domain layer - Modelos del bridge."""

from .alert_state import AlertDecision, AlertLevel, AlertState, Transition
from .delivery_target import DeliveryTarget
from .subscription import (
    AlertConfig,
    BrokerOverride,
    ConnectionKey,
    EntitySubscription,
    NumericTransform,
    resolve_connection,
)

__all__ = [
    "AlertConfig",
    "AlertDecision",
    "AlertLevel",
    "AlertState",
    "BrokerOverride",
    "ConnectionKey",
    "DeliveryTarget",
    "EntitySubscription",
    "NumericTransform",
    "Transition",
    "resolve_connection",
]
