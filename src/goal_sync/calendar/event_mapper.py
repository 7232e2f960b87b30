"""Map hierarchy entities to Google Calendar event bodies, and back.

Outbound, :func:`to_event` renders one entity as a ``dict`` payload for
``events().insert()`` / ``events().update()``:

- **summary** -- the entity title behind a level tag (``[GAP Q2]``,
  ``[GAP Monthly]``, ``[GAP Weekly]``, ``[GAP Daily]``).
- **description** -- the entity's own description followed by a footer
  naming the level, the key metric and the ancestor chain.
- **start / end** -- all-day ranges covering the whole quarter or month
  (end exclusive), a Monday 09:00-11:00 focus block for weekly targets,
  and a timed block for daily actions.
- **colorId** -- per-level color from the user's settings.

Inbound, :func:`read_provider_times` reduces a provider event to the local
date and start/end times that pull compares against;
:func:`from_provider_event` is the same without the
:class:`~goal_sync.exceptions.ParseError`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

from goal_sync.exceptions import ParseError
from goal_sync.models.entities import (
    DailyAction,
    HierarchyEntity,
    HierarchyLevel,
    MonthlyTarget,
    QuarterlyTarget,
    TimeBlock,
    WeeklyTarget,
)
from goal_sync.models.sync import SyncSettings

logger = logging.getLogger(__name__)

FOOTER_BRAND = "Goal Achiever Pro"

DEFAULT_DAILY_MINUTES = 30
DAY_START_HOUR = 9
DAILY_SLOT_COUNT = 8  # daily actions without a time fill 09:00-16:00

WEEKLY_BLOCK_START = time(9, 0)
WEEKLY_BLOCK_END = time(11, 0)

_TITLE_TAG = re.compile(r"^\[GAP[^\]]*\]\s*")

_KIND_LEVELS: dict[str, HierarchyLevel] = {
    "quarterly_target": "quarterly",
    "monthly_target": "monthly",
    "weekly_target": "weekly",
    "daily_action": "daily",
}


@dataclass(frozen=True)
class ProviderTimes:
    """Local date and minute-precision times read from a provider event."""

    date: date
    start_time: time
    end_time: time


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def to_event(
    entity: HierarchyEntity,
    settings: SyncSettings,
    timezone: str,
    slot: int = 0,
) -> dict[str, Any]:
    """Render a hierarchy entity as a Google Calendar event body.

    Args:
        entity: The quarterly, monthly or weekly target or daily action.
        settings: The user's sync settings (for the color id).
        timezone: IANA timezone of the user; timed values carry it as
            ``timeZone``.
        slot: Position of a daily action among that day's actions in the
            current batch.  Picks the start hour when the action has no
            scheduled start time.

    Returns:
        A ``dict`` conforming to the Google Calendar Event resource schema.

    Raises:
        ValueError: For a :class:`TimeBlock`, which is never pushed.
    """
    if isinstance(entity, TimeBlock):
        raise ValueError("Time blocks are linked by import and are not pushed")

    level = _KIND_LEVELS[entity.kind]
    start, end = _event_window(entity, timezone, slot)
    body = {
        "summary": f"{_title_tag(entity)} {entity.title}",
        "description": build_description(entity, level),
        "start": start,
        "end": end,
        "colorId": settings.color_for(level),
    }
    logger.debug("Mapped %s %s to event '%s'", entity.kind, entity.id, body["summary"])
    return body


def _title_tag(entity: HierarchyEntity) -> str:
    if isinstance(entity, QuarterlyTarget):
        return f"[GAP Q{entity.quarter}]"
    if isinstance(entity, MonthlyTarget):
        return "[GAP Monthly]"
    if isinstance(entity, WeeklyTarget):
        return "[GAP Weekly]"
    return "[GAP Daily]"


def strip_title_tag(summary: str) -> str:
    """Remove a leading ``[GAP ...]`` tag so a pushed summary matches its title."""
    return _TITLE_TAG.sub("", summary, count=1).strip()


def build_description(entity: HierarchyEntity, level: HierarchyLevel) -> str:
    """Compose the event description: own text, then the sync footer.

    The footer names the level, the key metric (``Key Metric: m → v``) and
    each known ancestor on its own line, top-down.
    """
    lines = [
        entity.description or "",
        "",
        "---",
        FOOTER_BRAND,
        f"Level: {level.capitalize()}",
    ]

    key_metric = getattr(entity, "key_metric", None)
    if key_metric:
        target_value = getattr(entity, "target_value", None)
        if target_value is not None:
            lines.append(f"Key Metric: {key_metric} → {_format_number(target_value)}")
        else:
            lines.append(f"Key Metric: {key_metric}")

    for level_name, title in entity.ancestors.titles():
        lines.append(f"{level_name}: {title}")

    return "\n".join(lines).strip()


def _format_number(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _event_window(
    entity: HierarchyEntity, timezone: str, slot: int
) -> tuple[dict[str, str], dict[str, str]]:
    if isinstance(entity, QuarterlyTarget):
        first_month = (entity.quarter - 1) * 3 + 1
        start_day = date(entity.year, first_month, 1)
        return _all_day(start_day), _all_day(_add_months(start_day, 3))

    if isinstance(entity, MonthlyTarget):
        start_day = date(entity.year, entity.month, 1)
        return _all_day(start_day), _all_day(_add_months(start_day, 1))

    if isinstance(entity, WeeklyTarget):
        monday = entity.week_start_date - timedelta(days=entity.week_start_date.weekday())
        return (
            _timed(datetime.combine(monday, WEEKLY_BLOCK_START), timezone),
            _timed(datetime.combine(monday, WEEKLY_BLOCK_END), timezone),
        )

    if isinstance(entity, DailyAction):
        start, end = daily_window(entity, slot)
        return _timed(start, timezone), _timed(end, timezone)

    raise ValueError(f"Unsupported entity kind: {entity.kind}")


def daily_window(action: DailyAction, slot: int = 0) -> tuple[datetime, datetime]:
    """Local start and end of the block a daily action is pushed as.

    The scheduled start time wins; otherwise the action takes the
    ``9 + slot % 8`` o'clock slot.  The block lasts the estimated minutes
    (30 when unset) and may run past midnight.
    """
    start_time = action.scheduled_start_time or time(DAY_START_HOUR + slot % DAILY_SLOT_COUNT)
    start = datetime.combine(action.action_date, start_time.replace(second=0, microsecond=0))
    end = start + timedelta(minutes=action.estimated_minutes or DEFAULT_DAILY_MINUTES)
    return start, end


def _add_months(day: date, months: int) -> date:
    index = day.month - 1 + months
    return date(day.year + index // 12, index % 12 + 1, 1)


def _all_day(day: date) -> dict[str, str]:
    return {"date": day.isoformat()}


def _timed(local: datetime, timezone: str) -> dict[str, str]:
    """A wall-clock time in *timezone*; Google resolves the offset."""
    return {"dateTime": local.isoformat(timespec="seconds"), "timeZone": timezone}


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


def read_provider_times(event: dict[str, Any], timezone: str = "UTC") -> ProviderTimes:
    """Extract the local date and start/end times of a provider event.

    - Timed events: the start's date and ``HH:MM`` in *timezone*; a missing
      end falls back to the start.
    - All-day events: ``start.date`` with ``00:00``-``23:59``.

    Args:
        event: Google Calendar event resource.
        timezone: IANA timezone the local entity lives in.  Offsets in the
            event are converted into it; naive values are taken as already
            local.

    Returns:
        The extracted :class:`ProviderTimes`.

    Raises:
        ParseError: If the event has no usable start or its values cannot
            be parsed.
    """
    start = event.get("start") or {}
    end = event.get("end") or {}
    try:
        if start.get("dateTime"):
            tz = ZoneInfo(timezone)
            start_local = _parse_local(start["dateTime"], tz)
            end_local = _parse_local(end.get("dateTime") or start["dateTime"], tz)
            return ProviderTimes(
                date=start_local.date(),
                start_time=_minute(start_local.time()),
                end_time=_minute(end_local.time()),
            )
        if start.get("date"):
            return ProviderTimes(
                date=date.fromisoformat(start["date"]),
                start_time=time(0, 0),
                end_time=time(23, 59),
            )
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Unparseable times on event {event.get('id', '?')}: {exc}") from exc

    raise ParseError(f"Event {event.get('id', '?')} has neither start.dateTime nor start.date")


def from_provider_event(event: dict[str, Any], timezone: str = "UTC") -> ProviderTimes | None:
    """Like :func:`read_provider_times`, but ``None`` for an unusable event."""
    try:
        return read_provider_times(event, timezone)
    except ParseError as exc:
        logger.warning("%s", exc)
        return None


def _parse_local(value: str, tz: ZoneInfo) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(tz)


def _minute(value: time) -> time:
    return value.replace(second=0, microsecond=0, tzinfo=None)
