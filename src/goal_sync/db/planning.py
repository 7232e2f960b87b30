"""Read access to the goal hierarchy, plus the narrow write path used by pull.

Entities come back as the pydantic models in :mod:`goal_sync.models.entities`
with their :class:`AncestorChain` already resolved, so the event mapper never
touches the database.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from typing import Any

from sqlalchemy import Select, select

from goal_sync.db.database import Database
from goal_sync.db.schema import (
    ENTITY_TABLES,
    Base,
    DailyActionRow,
    MonthlyTargetRow,
    PowerGoalRow,
    QuarterlyTargetRow,
    TimeBlockRow,
    WeeklyTargetRow,
)
from goal_sync.models.entities import (
    LEVEL_ENTITY_TYPES,
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

logger = logging.getLogger(__name__)

# row type -> (relationship to the parent row, label of that parent)
_PARENT_ATTR: dict[type[Base], tuple[str, str]] = {
    QuarterlyTargetRow: ("vision", "Vision"),
    MonthlyTargetRow: ("power_goal", "Power Goal"),
    PowerGoalRow: ("vision", "Vision"),
    WeeklyTargetRow: ("monthly_target", "Monthly"),
    DailyActionRow: ("weekly_target", "Weekly"),
}

# Pull change keys -> column names, per linkable entity type.
_CHANGE_COLUMNS: dict[str, dict[str, str]] = {
    "daily_action": {
        "date": "action_date",
        "start_time": "scheduled_start_time",
        "end_time": "scheduled_end_time",
        "title": "title",
        "duration_minutes": "estimated_minutes",
    },
    "time_block": {
        "date": "block_date",
        "start_time": "start_time",
        "end_time": "end_time",
        "title": "activity_name",
        "duration_minutes": "duration_minutes",
    },
}


def _ancestors(row: Base) -> AncestorChain:
    chain: list[Ancestor] = []
    node = row
    while type(node) in _PARENT_ATTR:
        attr, label = _PARENT_ATTR[type(node)]
        parent = getattr(node, attr)
        if parent is None:
            break
        chain.append(Ancestor(level_name=label, title=parent.title))
        node = parent
    chain.reverse()
    return AncestorChain(ancestors=chain)


def _to_entity(row: Base) -> HierarchyEntity:
    if isinstance(row, TimeBlockRow):
        return TimeBlock(
            id=row.id,
            user_id=row.user_id,
            title=row.activity_name,
            description=row.notes,
            block_date=row.block_date,
            start_time=row.start_time,
            end_time=row.end_time,
            duration_minutes=row.duration_minutes,
            external_event_id=row.external_event_id,
            source=row.source,
        )

    common = {
        "id": row.id,
        "user_id": row.user_id,
        "title": row.title,
        "description": row.description,
        "status": row.status,
        "key_metric": row.key_metric,
        "target_value": row.target_value,
        "ancestors": _ancestors(row),
    }
    if isinstance(row, QuarterlyTargetRow):
        return QuarterlyTarget(
            vision_id=row.vision_id, quarter=row.quarter, year=row.year, **common
        )
    if isinstance(row, MonthlyTargetRow):
        return MonthlyTarget(month=row.target_month, year=row.target_year, **common)
    if isinstance(row, WeeklyTargetRow):
        return WeeklyTarget(
            week_start_date=row.week_start_date, week_end_date=row.week_end_date, **common
        )
    if isinstance(row, DailyActionRow):
        return DailyAction(
            action_date=row.action_date,
            estimated_minutes=row.estimated_minutes,
            scheduled_start_time=row.scheduled_start_time,
            scheduled_end_time=row.scheduled_end_time,
            external_event_id=row.external_event_id,
            source=row.source,
            **common,
        )
    raise TypeError(f"Unsupported row type: {type(row).__name__}")


class PlanningRepository:
    """Loads hierarchy entities for sync."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def list_pushable(
        self,
        user_id: str,
        level: HierarchyLevel,
        *,
        today: date,
        vision_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[HierarchyEntity]:
        """Entities of *level* that push should render.

        Completed entities are never pushed.  ``vision_id`` narrows
        quarterly targets only.  Daily actions are limited to
        ``[start_date, end_date]`` when both are given, otherwise to the
        single day ``start_date`` (or *today*).

        Args:
            user_id: Owner of the entities.
            level: Hierarchy level to load.
            today: The current date in the user's timezone.
            vision_id: Optional vision filter for quarterly targets.
            start_date: First day of the daily-action window.
            end_date: Last day of the daily-action window.

        Returns:
            Entities in a stable order (by period, then title).
        """
        stmt = self._pushable_query(user_id, level, today, vision_id, start_date, end_date)
        with self._db.transaction() as session:
            rows = session.execute(stmt).scalars().all()
            entities = [_to_entity(row) for row in rows]
        logger.debug("Loaded %d pushable %s entit(ies) for user %s", len(entities), level, user_id)
        return entities

    @staticmethod
    def _pushable_query(
        user_id: str,
        level: HierarchyLevel,
        today: date,
        vision_id: str | None,
        start_date: date | None,
        end_date: date | None,
    ) -> Select:
        row_cls = ENTITY_TABLES[LEVEL_ENTITY_TYPES[level]]
        stmt = select(row_cls).where(row_cls.user_id == user_id, row_cls.status != "completed")

        if level == "quarterly":
            if vision_id:
                stmt = stmt.where(QuarterlyTargetRow.vision_id == vision_id)
            return stmt.order_by(
                QuarterlyTargetRow.year, QuarterlyTargetRow.quarter, QuarterlyTargetRow.title
            )
        if level == "monthly":
            return stmt.order_by(
                MonthlyTargetRow.target_year, MonthlyTargetRow.target_month, MonthlyTargetRow.title
            )
        if level == "weekly":
            return stmt.order_by(WeeklyTargetRow.week_start_date, WeeklyTargetRow.title)

        if start_date and end_date:
            stmt = stmt.where(
                DailyActionRow.action_date >= start_date, DailyActionRow.action_date <= end_date
            )
        else:
            stmt = stmt.where(DailyActionRow.action_date == (start_date or today))
        return stmt.order_by(DailyActionRow.action_date, DailyActionRow.title, DailyActionRow.id)

    def get_entity(self, entity_type: str, entity_id: str) -> HierarchyEntity | None:
        """Load one entity by type and id, or ``None`` if it no longer exists."""
        row_cls = ENTITY_TABLES.get(entity_type)
        if row_cls is None:
            raise ValueError(f"Unknown entity type: {entity_type!r}")
        with self._db.transaction() as session:
            row = session.get(row_cls, entity_id)
            return _to_entity(row) if row is not None else None

    def apply_provider_changes(
        self, entity_type: str, entity_id: str, changes: Mapping[str, Any]
    ) -> bool:
        """Write pulled field changes onto a linkable entity.

        Args:
            entity_type: ``"daily_action"`` or ``"time_block"``.
            entity_id: Local entity id.
            changes: Subset of ``date``, ``start_time``, ``end_time``,
                ``title`` and ``duration_minutes``.

        Returns:
            ``False`` if the entity no longer exists.

        Raises:
            ValueError: For an entity type that cannot be pulled or an
                unknown change key.
            PersistenceError: If the write fails.
        """
        columns = _CHANGE_COLUMNS.get(entity_type)
        if columns is None:
            raise ValueError(f"Entity type {entity_type!r} does not accept provider changes")
        unknown = set(changes) - set(columns)
        if unknown:
            raise ValueError(f"Unknown change field(s): {', '.join(sorted(unknown))}")

        with self._db.transaction() as session:
            row = session.get(ENTITY_TABLES[entity_type], entity_id)
            if row is None:
                return False
            for key, value in changes.items():
                setattr(row, columns[key], value)
        logger.debug("Applied %s to %s %s", sorted(changes), entity_type, entity_id)
        return True

    def add(self, row: Base) -> str:
        """Insert a hierarchy row and return its id (seeding and tests)."""
        with self._db.transaction() as session:
            session.add(row)
            session.flush()
            return row.id
