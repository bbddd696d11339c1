"""Despacho de notificaciones push con limpieza de tokens inválidos."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence, Union

from ..alerts.notifications import PushPayload
from ..core.domain import DeliveryTarget
from ..metrics.bridge_metrics import BRIDGE_NOTIFICATIONS, BRIDGE_TARGETS_PRUNED
from .fcm_transport import TokenOutcome

logger = logging.getLogger(__name__)


class PushTransport(Protocol):
    @property
    def enabled(self) -> bool: ...

    def multicast(self, tokens: Sequence[str], payload: PushPayload) -> list[TokenOutcome]: ...


class TargetStore(Protocol):
    def targets_for(self, entity_id: str) -> list[DeliveryTarget]: ...

    def delete_tokens(self, tokens: Sequence[str]) -> int: ...


@dataclass
class DispatchResult:
    ok: bool
    delivered: int = 0
    invalid_targets: list[str] = field(default_factory=list)
    error: Optional[str] = None


def unique_tokens(targets: Iterable[Union[DeliveryTarget, str]]) -> list[str]:
    """Tokens sin duplicados, en orden de aparición."""
    seen: set[str] = set()
    tokens = []
    for target in targets:
        token = target.token if isinstance(target, DeliveryTarget) else target
        if not token or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


class NotificationDispatcher:
    """Un multicast por notificación; nunca lanza excepciones."""

    def __init__(self, transport: PushTransport, target_store: TargetStore):
        self._transport = transport
        self._targets = target_store

    @property
    def enabled(self) -> bool:
        return self._transport.enabled

    def send(
        self,
        targets: Iterable[Union[DeliveryTarget, str]],
        payload: PushPayload,
        kind: str = "alert",
    ) -> DispatchResult:
        if not self._transport.enabled:
            BRIDGE_NOTIFICATIONS.labels(kind=kind, status="skipped").inc()
            return DispatchResult(ok=False, error="push disabled")

        tokens = unique_tokens(targets)
        if not tokens:
            BRIDGE_NOTIFICATIONS.labels(kind=kind, status="skipped").inc()
            return DispatchResult(ok=False, error="no targets")

        try:
            outcomes = self._transport.multicast(tokens, payload)
            delivered = sum(1 for o in outcomes if o.success)
            invalid = [o.token for o in outcomes if o.permanently_invalid]
        except Exception as e:
            # Cualquier falla del transporte (HTTP, auth, respuesta inesperada)
            logger.warning("[PUSH] Multicast failed tokens=%d: %s", len(tokens), e)
            BRIDGE_NOTIFICATIONS.labels(kind=kind, status="failed").inc()
            return DispatchResult(ok=False, error=str(e))

        BRIDGE_NOTIFICATIONS.labels(kind=kind, status="sent" if delivered else "failed").inc()

        if invalid:
            self._prune(invalid)

        logger.info(
            "[PUSH] %s '%s' delivered=%d/%d invalid=%d",
            kind,
            payload.title,
            delivered,
            len(tokens),
            len(invalid),
        )
        return DispatchResult(ok=delivered > 0, delivered=delivered, invalid_targets=invalid)

    def notify_entity(self, entity_id: str, payload: PushPayload, kind: str = "alert") -> DispatchResult:
        """Resuelve destinos del proyecto (o globales) y envía."""
        if not self._transport.enabled:
            BRIDGE_NOTIFICATIONS.labels(kind=kind, status="skipped").inc()
            return DispatchResult(ok=False, error="push disabled")
        try:
            targets = self._targets.targets_for(entity_id)
        except Exception as e:
            logger.error("[PUSH] Target lookup failed project=%s: %s", entity_id, e)
            BRIDGE_NOTIFICATIONS.labels(kind=kind, status="failed").inc()
            return DispatchResult(ok=False, error=str(e))
        return self.send(targets, payload, kind=kind)

    def _prune(self, tokens: list[str]) -> None:
        # Limpieza best-effort: sin reintentos
        try:
            removed = self._targets.delete_tokens(tokens)
            BRIDGE_TARGETS_PRUNED.inc(max(0, removed or 0))
            logger.info("[PUSH] Pruned %d invalid delivery targets", removed)
        except Exception as e:
            logger.error("[PUSH] Failed to prune %d invalid targets: %s", len(tokens), e)
