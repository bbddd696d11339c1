"""Borrado de lecturas más viejas que el TTL configurado."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class PrunableReadingStore(Protocol):
    def count_older_than(self, cutoff: datetime) -> int: ...

    def prune_older_than(self, cutoff: datetime) -> int: ...


@dataclass(frozen=True)
class RetentionResult:
    cutoff: datetime
    matched: int
    deleted: int
    dry_run: bool


def run_retention(
    store: PrunableReadingStore,
    days: int,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> RetentionResult:
    if days <= 0:
        raise ValueError("days must be > 0")

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days)
    matched = store.count_older_than(cutoff)

    if dry_run:
        logger.info("[RETENTION] Dry run: %d readings older than %s", matched, cutoff.isoformat())
        return RetentionResult(cutoff=cutoff, matched=matched, deleted=0, dry_run=True)

    deleted = store.prune_older_than(cutoff) if matched else 0
    logger.info("[RETENTION] Deleted %d/%d readings older than %s", deleted, matched, cutoff.isoformat())
    return RetentionResult(cutoff=cutoff, matched=matched, deleted=deleted, dry_run=False)
