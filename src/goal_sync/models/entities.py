"""Pydantic models for the goal hierarchy as seen by the sync engines.

Each hierarchy level is its own model carrying only the fields that level
actually has, discriminated by ``kind``:

- :class:`QuarterlyTarget` -- a quarter of a vision (``kind="quarterly_target"``).
- :class:`MonthlyTarget` -- a calendar month of work.
- :class:`WeeklyTarget` -- one week, rendered as a Monday focus block.
- :class:`DailyAction` -- a single action on a given day.
- :class:`TimeBlock` -- an ad-hoc block on the time audit, linked to the
  calendar by import rather than by push.

Every entity carries an :class:`AncestorChain` computed once when it is
loaded.  Parent links only enrich event descriptions; sync identity is
always ``(user_id, kind, id)``.
"""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

EntityType = Literal[
    "quarterly_target",
    "monthly_target",
    "weekly_target",
    "daily_action",
    "time_block",
]
HierarchyLevel = Literal["quarterly", "monthly", "weekly", "daily"]
EntityStatus = Literal["pending", "in_progress", "completed"]

ALL_LEVELS: tuple[HierarchyLevel, ...] = ("quarterly", "monthly", "weekly", "daily")

LEVEL_ENTITY_TYPES: dict[HierarchyLevel, EntityType] = {
    "quarterly": "quarterly_target",
    "monthly": "monthly_target",
    "weekly": "weekly_target",
    "daily": "daily_action",
}

# Entity types that carry a cached external-event link and can be pulled.
LINKABLE_ENTITY_TYPES: frozenset[str] = frozenset({"daily_action", "time_block"})


class Ancestor(BaseModel):
    """One step up the hierarchy: ``Ancestor(level_name="Vision", title=...)``."""

    level_name: str
    title: str


class AncestorChain(BaseModel):
    """Ancestors ordered from the top of the hierarchy down to the parent."""

    ancestors: list[Ancestor] = Field(default_factory=list)

    def titles(self) -> list[tuple[str, str]]:
        """Return ``(level_name, title)`` pairs, top-down."""
        return [(ancestor.level_name, ancestor.title) for ancestor in self.ancestors]


class _EntityBase(BaseModel):
    id: str
    user_id: str
    title: str
    description: str | None = None
    status: EntityStatus = "pending"
    ancestors: AncestorChain = Field(default_factory=AncestorChain)


class _MetricMixin(BaseModel):
    key_metric: str | None = None
    target_value: Decimal | None = None


class QuarterlyTarget(_EntityBase, _MetricMixin):
    """A quarterly target, rendered as an all-day event spanning the quarter."""

    kind: Literal["quarterly_target"] = "quarterly_target"
    vision_id: str | None = None
    quarter: int = Field(ge=1, le=4)
    year: int


class MonthlyTarget(_EntityBase, _MetricMixin):
    """A monthly target, rendered as an all-day event spanning the month."""

    kind: Literal["monthly_target"] = "monthly_target"
    month: int = Field(ge=1, le=12)
    year: int


class WeeklyTarget(_EntityBase, _MetricMixin):
    """A weekly target, rendered as a two-hour Monday focus block."""

    kind: Literal["weekly_target"] = "weekly_target"
    week_start_date: date
    week_end_date: date


class DailyAction(_EntityBase, _MetricMixin):
    """A daily action.

    ``scheduled_start_time`` / ``scheduled_end_time`` are empty until the
    user (or a pull) pins the action to a time of day.
    """

    kind: Literal["daily_action"] = "daily_action"
    action_date: date
    estimated_minutes: int | None = None
    scheduled_start_time: time | None = None
    scheduled_end_time: time | None = None
    external_event_id: str | None = None
    source: str = "manual"


class TimeBlock(_EntityBase):
    """A time-audit block; ``title`` is the block's activity name."""

    kind: Literal["time_block"] = "time_block"
    block_date: date
    start_time: time
    end_time: time
    duration_minutes: int | None = None
    external_event_id: str | None = None
    source: str = "manual"


HierarchyEntity = Annotated[
    Union[QuarterlyTarget, MonthlyTarget, WeeklyTarget, DailyAction, TimeBlock],
    Field(discriminator="kind"),
]
