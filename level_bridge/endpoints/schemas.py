from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class SyncSummary(BaseModel):
    ok: bool
    entities: int = 0
    connections: int = 0
    created: int = 0
    closed: int = 0
    failed: List[str] = Field(default_factory=list)
    subscribed: int = 0
    unsubscribed: int = 0
    skipped: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    error: Optional[str] = None


class ReloadResult(BaseModel):
    ok: bool
    sync: SyncSummary


class WorkerMetrics(BaseModel):
    workers: int = 0
    queue_depth: int = 0
    queue_max: int = 0
    enqueued: int = 0
    dropped: int = 0
    processed: int = 0
    errors: int = 0


class BridgeStatsOut(BaseModel):
    running: bool
    entities: int
    connections: int
    connected: int
    messages_received: int
    refresh_count: int
    last_refresh_at: Optional[str] = None
    last_sync: Optional[SyncSummary] = None
    workers: WorkerMetrics = Field(default_factory=WorkerMetrics)
    started_at: str
