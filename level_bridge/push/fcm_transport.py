"""Transporte push sobre Firebase Cloud Messaging (Admin SDK, API HTTP v1).

Un send_each_for_multicast por cada bloque de hasta 500 tokens; la
respuesta trae un resultado por token en el mismo orden en que se enviaron.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from ..alerts.notifications import PushPayload

logger = logging.getLogger(__name__)

MAX_TOKENS_PER_REQUEST = 500
APP_NAME = "level-bridge"

# Códigos que indican token dado de baja o inválido de forma permanente
TOKEN_NOT_REGISTERED = "registration-token-not-registered"
TOKEN_INVALID = "invalid-registration-token"
_PERMANENT_ERRORS = frozenset({TOKEN_NOT_REGISTERED, TOKEN_INVALID})


@dataclass(frozen=True)
class TokenOutcome:
    token: str
    success: bool
    error: Optional[str] = None

    @property
    def permanently_invalid(self) -> bool:
        return not self.success and self.error in _PERMANENT_ERRORS


def error_code(exc: Optional[BaseException]) -> str:
    """Traduce la excepción de un envío individual a un código estable."""
    if isinstance(exc, messaging.UnregisteredError):
        return TOKEN_NOT_REGISTERED
    if isinstance(exc, exceptions.InvalidArgumentError) and "token" in str(exc).lower():
        return TOKEN_INVALID
    if exc is None:
        return "unknown"
    code = getattr(exc, "code", None) or type(exc).__name__
    return f"{code}: {exc}"


class FcmTransport:
    """Cliente FCM. Sin app de Firebase inicializada queda deshabilitado."""

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self._app = app

    @classmethod
    def from_credentials_file(cls, path: Optional[str], timeout_seconds: float = 5.0) -> "FcmTransport":
        if not path or not Path(path).exists():
            logger.warning("[PUSH] Service account file not found (%s) - push disabled", path)
            return cls(None)
        try:
            app = firebase_admin.get_app(APP_NAME)
        except ValueError:
            try:
                app = firebase_admin.initialize_app(
                    credentials.Certificate(path),
                    options={"httpTimeout": timeout_seconds},
                    name=APP_NAME,
                )
            except (OSError, ValueError) as e:
                logger.warning("[PUSH] Firebase initialization failed: %s - push disabled", e)
                return cls(None)
        logger.info("[PUSH] Firebase Admin initialized (timeout=%ss)", timeout_seconds)
        return cls(app)

    @property
    def enabled(self) -> bool:
        return self._app is not None

    def multicast(self, tokens: Sequence[str], payload: PushPayload) -> list[TokenOutcome]:
        """Envía a todos los tokens; lanza FirebaseError si falla el lote completo."""
        outcomes: list[TokenOutcome] = []
        for start in range(0, len(tokens), MAX_TOKENS_PER_REQUEST):
            chunk = list(tokens[start:start + MAX_TOKENS_PER_REQUEST])
            outcomes.extend(self._send_chunk(chunk, payload))
        return outcomes

    def _send_chunk(self, tokens: list[str], payload: PushPayload) -> list[TokenOutcome]:
        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=payload.data,
            android=messaging.AndroidConfig(priority="high", collapse_key=payload.dedup_id),
            apns=messaging.APNSConfig(headers={"apns-collapse-id": payload.dedup_id}),
        )
        batch = messaging.send_each_for_multicast(message, app=self._app)

        outcomes = []
        responses = list(batch.responses)
        for i, token in enumerate(tokens):
            if i >= len(responses):
                outcomes.append(TokenOutcome(token=token, success=False, error="MissingResult"))
                continue
            response = responses[i]
            if response.success:
                outcomes.append(TokenOutcome(token=token, success=True))
            else:
                outcomes.append(TokenOutcome(token=token, success=False, error=error_code(response.exception)))

        logger.debug(
            "[PUSH] FCM chunk sent tokens=%d ok=%d",
            len(tokens),
            sum(1 for o in outcomes if o.success),
        )
        return outcomes
