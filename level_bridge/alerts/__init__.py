from .alert_engine import AlertEngine
from .notifications import (
    PushPayload,
    UpdateThrottle,
    build_alert_payload,
    build_update_payload,
    make_dedup_id,
)

__all__ = [
    "AlertEngine",
    "PushPayload",
    "UpdateThrottle",
    "build_alert_payload",
    "build_update_payload",
    "make_dedup_id",
]
