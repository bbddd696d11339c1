"""Destinos push (tabla devices)."""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.engine import Engine

from ...core.domain import DeliveryTarget
from .schema import devices


class SqlTargetStore:
    def __init__(self, engine: Engine):
        self._engine = engine

    def targets_for(self, entity_id: str) -> list[DeliveryTarget]:
        """Tokens con alcance al proyecto o globales (project_id NULL)."""
        stmt = select(devices.c.token, devices.c.project_id).where(
            or_(devices.c.project_id == entity_id, devices.c.project_id.is_(None))
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [DeliveryTarget(token=row.token, entity_id=row.project_id) for row in rows if row.token]

    def delete_tokens(self, tokens: Sequence[str]) -> int:
        if not tokens:
            return 0
        with self._engine.begin() as conn:
            result = conn.execute(delete(devices).where(devices.c.token.in_(list(tokens))))
        return result.rowcount or 0
