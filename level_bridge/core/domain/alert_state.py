"""Estado de alerta por proyecto."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AlertLevel(str, Enum):
    NORMAL = "normal"
    LOW = "low"
    HIGH = "high"

    @property
    def is_alert(self) -> bool:
        return self is not AlertLevel.NORMAL


class Transition(str, Enum):
    """Tipo de transición observada en una evaluación."""

    NONE = "none"
    CROSSED = "crossed"  # normal → low/high
    RECOVERED = "recovered"  # low/high → normal
    OTHER = "other"  # low ↔ high sin pasar por normal


@dataclass(frozen=True)
class AlertState:
    """Último estado registrado (autoritativo en memoria)."""

    level: AlertLevel = AlertLevel.NORMAL
    # epoch seconds de la última transición registrada; None = nunca
    changed_at: Optional[float] = None


@dataclass(frozen=True)
class AlertDecision:
    """Resultado de evaluar un valor contra el estado de alerta."""

    entity_id: str
    value: float
    previous: AlertLevel
    level: AlertLevel
    transition: Transition
    cooled_down: bool
    recorded: bool
    notify: bool
    hysteresis: float
    evaluated_at: float

    @property
    def force_store(self) -> bool:
        """Una transición registrada debe quedar en el histórico."""
        return self.recorded
