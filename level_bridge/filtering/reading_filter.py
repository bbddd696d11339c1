"""Filtro de lecturas: extracción numérica y deadband.

- extract(): toma el PRIMER literal numérico del payload y aplica la
  calibración del proyecto. Payloads estructurados (JSON con campos) quedan
  fuera; cualquier modo estructurado debe entrar por aquí sin tocar alertas.
- ReadingFilter: decide si una lectura se persiste comparando contra el
  último valor GUARDADO del proyecto (no el último recibido).
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Optional, Union

from ..core.domain import NumericTransform

# Mismo patrón que el bridge histórico: no entiende exponentes
_NUMBER_RE = re.compile(r"[-+]?[0-9]*\.?[0-9]+")

DEFAULT_DEADBAND = 0.003  # 3 mm


def extract(raw_body: Union[bytes, bytearray, str, None], transform: Optional[NumericTransform] = None) -> Optional[float]:
    """Devuelve el valor calibrado o None si no hay número en el payload."""
    if raw_body is None:
        return None
    if isinstance(raw_body, (bytes, bytearray)):
        text = bytes(raw_body).decode("utf-8", errors="replace")
    else:
        text = str(raw_body)

    match = _NUMBER_RE.search(text)
    if not match:
        return None

    try:
        value = float(match.group(0))
    except ValueError:
        return None

    if transform is not None:
        value = transform.apply(value)
    return value


@dataclass(frozen=True)
class StoredReading:
    value: float
    stored_at: float


class ReadingFilter:
    """Supresión por deadband contra el último valor persistido."""

    def __init__(self, default_deadband: float = DEFAULT_DEADBAND):
        if default_deadband < 0:
            raise ValueError("default_deadband must be >= 0")
        self._default_deadband = default_deadband
        self._last_stored: dict[str, StoredReading] = {}
        self._lock = threading.Lock()

    @property
    def default_deadband(self) -> float:
        return self._default_deadband

    def effective_deadband(self, deadband: Optional[float] = None) -> float:
        if deadband is None or deadband < 0:
            return self._default_deadband
        return deadband

    def should_store(self, entity_id: str, value: float, deadband: Optional[float] = None) -> bool:
        """False si ya hay un valor guardado y el cambio es menor al deadband."""
        with self._lock:
            previous = self._last_stored.get(entity_id)
        if previous is None:
            return True
        return abs(value - previous.value) >= self.effective_deadband(deadband)

    def mark_stored(self, entity_id: str, value: float, stored_at: float) -> None:
        """Nueva línea base; llamar solo después de persistir con éxito."""
        with self._lock:
            self._last_stored[entity_id] = StoredReading(value=value, stored_at=stored_at)

    def last_stored(self, entity_id: str) -> Optional[StoredReading]:
        with self._lock:
            return self._last_stored.get(entity_id)

    def forget(self, entity_id: str) -> None:
        with self._lock:
            self._last_stored.pop(entity_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_stored)
