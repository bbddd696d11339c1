"""Persistencia del histórico de niveles."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine

from .schema import readings

logger = logging.getLogger(__name__)


class SqlReadingStore:
    def __init__(self, engine: Engine):
        self._engine = engine

    def insert(self, entity_id: str, value: float, at: float) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                readings.insert().values(
                    project_id=entity_id,
                    level_meters=float(value),
                    ts=datetime.fromtimestamp(at, tz=timezone.utc),
                )
            )

    def count_older_than(self, cutoff: datetime) -> int:
        with self._engine.connect() as conn:
            return int(
                conn.execute(
                    select(func.count()).select_from(readings).where(readings.c.ts < cutoff)
                ).scalar_one()
            )

    def prune_older_than(self, cutoff: datetime) -> int:
        """Borra lecturas anteriores a `cutoff`. Retorna filas borradas."""
        with self._engine.begin() as conn:
            result = conn.execute(delete(readings).where(readings.c.ts < cutoff))
        deleted = result.rowcount or 0
        logger.info("[DB] Pruned %d readings older than %s", deleted, cutoff.isoformat())
        return deleted
