"""Workers por proyecto: desacopla el callback de paho del trabajo bloqueante.

Cada worker tiene su propia cola acotada y los items se reparten por
entity_id, así las lecturas de un mismo proyecto se procesan en orden y
completas (incluido store forzado y notificación) antes de la siguiente,
mientras proyectos distintos avanzan en paralelo.

num_workers=0 procesa en el hilo que llama (tests / modo síncrono).
"""

from __future__ import annotations

import logging
import queue
import threading
import zlib
from dataclasses import dataclass
from typing import Callable

from ..metrics.bridge_metrics import BRIDGE_WORK_DROPPED

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4


@dataclass(frozen=True)
class WorkItem:
    entity_id: str
    payload: bytes
    received_at: float


WorkHandler = Callable[[WorkItem], None]


class EntityWorkerPool:
    """N hilos, una cola acotada por hilo, sharding estable por entity_id."""

    def __init__(
        self,
        handler: WorkHandler,
        num_workers: int = DEFAULT_NUM_WORKERS,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._handler = handler
        self._num_workers = max(0, num_workers)
        self._queues: list[queue.Queue] = [
            queue.Queue(maxsize=max_queue_size) for _ in range(self._num_workers)
        ]
        self._stop_event = threading.Event()
        self._workers: list[threading.Thread] = []

        # Metrics
        self._enqueued = 0
        self._dropped = 0
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()

    @property
    def inline(self) -> bool:
        return self._num_workers == 0

    def start(self) -> None:
        if self.inline or self._workers:
            return
        self._stop_event.clear()
        for i in range(self._num_workers):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"bridge-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[WORKERS] Started workers=%d queue_max=%d",
            self._num_workers,
            self._queues[0].maxsize,
        )

    def stop(self, drain: bool = True) -> None:
        """Detiene los workers. Con drain=True termina lo ya encolado."""
        if drain:
            for q in self._queues:
                q.join()
        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=5.0)
        self._workers.clear()
        logger.info("[WORKERS] Stopped. %s", self.metrics)

    def shard_for(self, entity_id: str) -> int:
        return zlib.crc32(entity_id.encode("utf-8")) % self._num_workers

    def submit(self, item: WorkItem) -> bool:
        """Encola sin bloquear. False si la cola del shard está llena."""
        if self.inline:
            with self._lock:
                self._enqueued += 1
            self._run(item, worker_id=-1)
            return True

        try:
            self._queues[self.shard_for(item.entity_id)].put_nowait(item)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            BRIDGE_WORK_DROPPED.inc()
            logger.warning("[WORKERS] Queue full, dropped project=%s", item.entity_id)
            return False
        with self._lock:
            self._enqueued += 1
        return True

    def _worker_loop(self, worker_id: int) -> None:
        q = self._queues[worker_id]
        while not self._stop_event.is_set():
            try:
                item = q.get(timeout=1.0)
            except queue.Empty:
                continue
            try:
                self._run(item, worker_id)
            finally:
                q.task_done()

    def _run(self, item: WorkItem, worker_id: int) -> None:
        try:
            self._handler(item)
            with self._lock:
                self._processed += 1
        except Exception as e:
            with self._lock:
                self._errors += 1
            logger.error("[WORKERS] Worker %d error project=%s: %s", worker_id, item.entity_id, e)

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "workers": self._num_workers,
                "queue_depth": sum(q.qsize() for q in self._queues),
                "queue_max": self._queues[0].maxsize if self._queues else 0,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "processed": self._processed,
                "errors": self._errors,
            }
