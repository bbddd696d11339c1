from .dispatcher import DispatchResult, NotificationDispatcher, unique_tokens
from .fcm_transport import FcmTransport, TokenOutcome

__all__ = [
    "DispatchResult",
    "FcmTransport",
    "NotificationDispatcher",
    "TokenOutcome",
    "unique_tokens",
]
