from .alert_notifier import AlertNotifier
from .processor import ReadingProcessor, ReadingStore
from .router import MessageRouter
from .workers import EntityWorkerPool, WorkItem

__all__ = [
    "AlertNotifier",
    "EntityWorkerPool",
    "MessageRouter",
    "ReadingProcessor",
    "ReadingStore",
    "WorkItem",
]
