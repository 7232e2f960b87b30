"""Persistence layer: SQLAlchemy schema, engine and the stores used by sync."""

from __future__ import annotations

from goal_sync.db.credentials import CredentialStore
from goal_sync.db.database import Database, as_utc
from goal_sync.db.planning import PlanningRepository
from goal_sync.db.records import SyncRecordStore
from goal_sync.db.settings import SyncSettingsStore

__all__ = [
    "CredentialStore",
    "Database",
    "PlanningRepository",
    "SyncRecordStore",
    "SyncSettingsStore",
    "as_utc",
]
