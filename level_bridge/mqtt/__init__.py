from .connection import BrokerConnection, create_mqtt_client
from .connection_pool import ConnectionPool, ConvergeResult, PoolClosedError

__all__ = [
    "BrokerConnection",
    "ConnectionPool",
    "ConvergeResult",
    "PoolClosedError",
    "create_mqtt_client",
]
