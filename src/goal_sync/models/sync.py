"""Pydantic models for sync state: credentials, the ledger and settings.

- :class:`Credential` -- stored OAuth tokens for one user and provider.
- :class:`AccessToken` -- an immutable, currently valid bearer token.
- :class:`SyncRecord` -- one row of the idempotency ledger linking a local
  entity to a provider event.
- :class:`SyncSettings` -- per-user level toggles, colors and the conflict
  policy.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from goal_sync.models.entities import HierarchyLevel

GOOGLE_PROVIDER = "google_calendar"
PRIMARY_CALENDAR = "primary"

SyncStatus = Literal["synced", "needs_check"]
ConflictPolicy = Literal["calendar_wins", "app_wins", "ask"]
DEFAULT_CONFLICT_POLICY: ConflictPolicy = "calendar_wins"

# Google Calendar color ids (1-11) used when settings leave a level unset.
DEFAULT_LEVEL_COLORS: dict[HierarchyLevel, str] = {
    "quarterly": "5",
    "monthly": "9",
    "weekly": "10",
    "daily": "1",
}


class Credential(BaseModel):
    """OAuth tokens for ``(user_id, provider)``.

    Attributes:
        expiry: When ``access_token`` stops being accepted (UTC).
        is_active: ``False`` once the user disconnected the calendar.
    """

    user_id: str
    provider: str = GOOGLE_PROVIDER
    access_token: str | None = Field(default=None, repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expiry: datetime | None = None
    is_active: bool = True


class AccessToken(BaseModel):
    """A bearer token and the instant it expires."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(repr=False)
    expires_at: datetime


class SyncRecord(BaseModel):
    """The durable link between a local entity and a provider event."""

    user_id: str
    entity_type: str
    entity_id: str
    external_event_id: str | None = None
    external_calendar_id: str = PRIMARY_CALENDAR
    sync_status: SyncStatus = "synced"
    last_synced_at: datetime | None = None


class SyncSettings(BaseModel):
    """Per-user sync preferences.

    The defaults here are what a user without a settings row gets: every
    level enabled, per-level default colors, and
    :data:`DEFAULT_CONFLICT_POLICY`.  A newly stored row starts from the
    same values.
    """

    user_id: str
    sync_quarterly_targets: bool = True
    sync_monthly_targets: bool = True
    sync_weekly_targets: bool = True
    sync_daily_actions: bool = True
    quarterly_color_id: str | None = None
    monthly_color_id: str | None = None
    weekly_color_id: str | None = None
    daily_color_id: str | None = None
    conflict_resolution: ConflictPolicy = DEFAULT_CONFLICT_POLICY
    last_synced_at: datetime | None = None

    def is_enabled(self, level: HierarchyLevel) -> bool:
        """Whether push is enabled for *level*."""
        flags = {
            "quarterly": self.sync_quarterly_targets,
            "monthly": self.sync_monthly_targets,
            "weekly": self.sync_weekly_targets,
            "daily": self.sync_daily_actions,
        }
        return flags[level]

    def color_for(self, level: HierarchyLevel) -> str:
        """Color id for *level*, falling back to :data:`DEFAULT_LEVEL_COLORS`."""
        configured = getattr(self, f"{level}_color_id")
        return configured or DEFAULT_LEVEL_COLORS[level]
