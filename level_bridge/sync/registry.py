"""Mapa proyecto → EntitySubscription vigente."""

from __future__ import annotations

import threading
from typing import Mapping, Optional

from ..core.domain import EntitySubscription


class EntityRegistry:
    """Reemplazo atómico del mapa completo en cada sincronización."""

    def __init__(self) -> None:
        self._entities: Mapping[str, EntitySubscription] = {}
        self._lock = threading.Lock()

    def get(self, entity_id: str) -> Optional[EntitySubscription]:
        with self._lock:
            current = self._entities
        return current.get(entity_id)

    def replace(self, entities: Mapping[str, EntitySubscription]) -> set[str]:
        """Instala el nuevo mapa y devuelve los IDs que desaparecieron."""
        new_map = dict(entities)
        with self._lock:
            removed = set(self._entities) - set(new_map)
            self._entities = new_map
        return removed

    def ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._entities)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)
