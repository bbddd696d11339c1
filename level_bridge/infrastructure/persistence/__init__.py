"""Persistencia SQL del bridge."""

from .config_store import SqlConfigStore, subscription_from_row
from .delivery_targets import SqlTargetStore
from .readings import SqlReadingStore
from .schema import devices, ensure_schema, metadata, projects, readings

__all__ = [
    "SqlConfigStore",
    "SqlReadingStore",
    "SqlTargetStore",
    "devices",
    "ensure_schema",
    "metadata",
    "projects",
    "readings",
    "subscription_from_row",
]
