"""Destino de notificaciones push."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DeliveryTarget:
    """Token de dispositivo; entity_id None = recibe de todos los proyectos."""

    token: str
    entity_id: Optional[str] = None
