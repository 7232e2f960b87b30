"""Per-user sync settings."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from goal_sync.db.database import Database, as_utc
from goal_sync.db.schema import SyncSettingsRow
from goal_sync.models.sync import SyncSettings

logger = logging.getLogger(__name__)

_FIELDS = tuple(name for name in SyncSettings.model_fields if name != "user_id")


class SyncSettingsStore:
    """Read and write ``sync_settings``.

    A user without a row gets :class:`SyncSettings` defaults (every level
    enabled, default colors, ``calendar_wins``).
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    def get(self, user_id: str) -> SyncSettings:
        with self._db.transaction() as session:
            row = session.get(SyncSettingsRow, user_id)
            if row is None:
                return SyncSettings(user_id=user_id)
            values = {name: getattr(row, name) for name in _FIELDS}
        values["last_synced_at"] = as_utc(values["last_synced_at"])
        return SyncSettings(user_id=user_id, **values)

    def save(self, user_id: str, **fields: Any) -> SyncSettings:
        """Create or update the settings row.

        Unspecified fields keep their stored value, or the
        :class:`SyncSettings` default for a new row.

        Raises:
            ValueError: If a field name is unknown or a value is invalid.
        """
        unknown = set(fields) - set(_FIELDS)
        if unknown:
            raise ValueError(f"Unknown sync settings field(s): {', '.join(sorted(unknown))}")
        # Validates values (e.g. the conflict policy) before touching the row.
        SyncSettings(user_id=user_id, **fields)

        with self._db.transaction() as session:
            row = session.get(SyncSettingsRow, user_id)
            if row is None:
                row = SyncSettingsRow(user_id=user_id)
                session.add(row)
            for name, value in fields.items():
                setattr(row, name, value)
        logger.info("Saved sync settings for user %s", user_id)
        return self.get(user_id)

    def touch_last_synced(self, user_id: str, synced_at: datetime) -> None:
        """Record the end of a full push run, creating the row if needed."""
        with self._db.transaction() as session:
            row = session.get(SyncSettingsRow, user_id)
            if row is None:
                row = SyncSettingsRow(user_id=user_id)
                session.add(row)
            row.last_synced_at = synced_at
