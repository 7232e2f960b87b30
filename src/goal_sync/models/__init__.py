"""Data models for goal-sync."""

from __future__ import annotations

from goal_sync.models.calendar import PullDetail, PullResult, PushItemResult, PushResult
from goal_sync.models.entities import (
    ALL_LEVELS,
    Ancestor,
    AncestorChain,
    DailyAction,
    HierarchyEntity,
    HierarchyLevel,
    MonthlyTarget,
    QuarterlyTarget,
    TimeBlock,
    WeeklyTarget,
)
from goal_sync.models.sync import AccessToken, Credential, SyncRecord, SyncSettings

__all__ = [
    "ALL_LEVELS",
    "AccessToken",
    "Ancestor",
    "AncestorChain",
    "Credential",
    "DailyAction",
    "HierarchyEntity",
    "HierarchyLevel",
    "MonthlyTarget",
    "PullDetail",
    "PullResult",
    "PushItemResult",
    "PushResult",
    "QuarterlyTarget",
    "SyncRecord",
    "SyncSettings",
    "TimeBlock",
    "WeeklyTarget",
]
