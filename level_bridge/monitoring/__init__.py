from .health import HealthChecker, HealthStatus
from .stats import BridgeStats

__all__ = ["BridgeStats", "HealthChecker", "HealthStatus"]
