"""Google Calendar integration: tokens, event mapping, and the push/pull engines."""

from __future__ import annotations

from goal_sync.calendar.auth import TokenManager
from goal_sync.calendar.client import GoogleCalendarClient
from goal_sync.calendar.conflict import resolve
from goal_sync.calendar.event_mapper import from_provider_event, read_provider_times, to_event
from goal_sync.calendar.pull import PullSyncEngine
from goal_sync.calendar.push import PushSyncEngine
from goal_sync.calendar.sync import PushRequest, RequestSession, SyncService

__all__ = [
    "GoogleCalendarClient",
    "PullSyncEngine",
    "PushRequest",
    "PushSyncEngine",
    "RequestSession",
    "SyncService",
    "TokenManager",
    "from_provider_event",
    "read_provider_times",
    "resolve",
    "to_event",
]
