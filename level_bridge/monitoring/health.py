"""Health checks del bridge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Estado de salud del sistema."""

    healthy: bool
    running: bool
    db_connected: bool
    connections: int
    connected: int

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "running": self.running,
            "db_connected": self.db_connected,
            "connections": self.connections,
            "connected": self.connected,
        }


class HealthChecker:
    """Verifica la salud del bridge y su base de datos."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    def check_database(self) -> bool:
        if not self._engine:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("[HEALTH] Database check failed: %s", e)
            return False

    def get_status(self, running: bool, connections: int, connected: int) -> HealthStatus:
        # Sin conexiones deseadas el bridge sigue sano (nada que suscribir)
        db_ok = self.check_database()
        brokers_ok = connections == 0 or connected > 0
        return HealthStatus(
            healthy=running and db_ok and brokers_ok,
            running=running,
            db_connected=db_ok,
            connections=connections,
            connected=connected,
        )
