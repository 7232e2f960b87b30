"""goal-sync: two-way Google Calendar sync for a goal-planning hierarchy.

Pushes quarterly, monthly and weekly targets and daily actions to Google
Calendar, and pulls calendar-side edits back onto linked local entities.
"""

from __future__ import annotations

from goal_sync.calendar.conflict import resolve
from goal_sync.calendar.event_mapper import from_provider_event, to_event
from goal_sync.config import ConfigError, Settings, load_settings
from goal_sync.exceptions import AuthError, ParseError, PersistenceError, SyncError
from goal_sync.models.calendar import PullResult, PushResult

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "ConfigError",
    "ParseError",
    "PersistenceError",
    "PullResult",
    "PushResult",
    "Settings",
    "SyncError",
    "from_provider_event",
    "load_settings",
    "resolve",
    "to_event",
]
