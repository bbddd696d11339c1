"""Estadísticas del bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass
class BridgeStats:
    """Foto del estado del bridge para /bridge/stats."""

    running: bool = False
    entities: int = 0
    connections: int = 0
    connected: int = 0
    messages_received: int = 0
    refresh_count: int = 0
    last_refresh_at: Optional[datetime] = None
    last_sync: Optional[dict] = None
    workers: dict = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return (
            f"Stats: entities={self.entities} connections={self.connected}/{self.connections} "
            f"received={self.messages_received}"
        )

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "entities": self.entities,
            "connections": self.connections,
            "connected": self.connected,
            "messages_received": self.messages_received,
            "refresh_count": self.refresh_count,
            "last_refresh_at": self.last_refresh_at.isoformat() if self.last_refresh_at else None,
            "last_sync": self.last_sync,
            "workers": dict(self.workers),
            "started_at": self.started_at.isoformat(),
        }
