"""Índice topic → proyectos de una conexión."""

from __future__ import annotations

import threading
from typing import Iterable, Mapping


class TopicIndex:
    """Mapa copy-on-write: el sincronizador reemplaza el mapa completo y los
    callbacks de mensaje leen siempre una versión consistente.
    """

    def __init__(self) -> None:
        self._map: Mapping[str, frozenset[str]] = {}
        self._lock = threading.Lock()

    def lookup(self, topic: str) -> frozenset[str]:
        with self._lock:
            current = self._map
        return current.get(topic, frozenset())

    def replace(self, mapping: Mapping[str, Iterable[str]]) -> None:
        frozen = {topic: frozenset(ids) for topic, ids in mapping.items() if ids}
        with self._lock:
            self._map = frozen

    def clear(self) -> None:
        with self._lock:
            self._map = {}

    def topics(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._map)

    def snapshot(self) -> dict[str, frozenset[str]]:
        with self._lock:
            return dict(self._map)

    def __len__(self) -> int:
        with self._lock:
            return len(self._map)
