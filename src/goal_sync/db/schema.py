"""SQLAlchemy tables for credentials, the sync ledger and the goal hierarchy.

The hierarchy tables mirror what the planning CRUD layer writes; sync only
reads them on push and updates a handful of fields on pull.  ``daily_actions``
and ``time_blocks`` carry an ``external_event_id`` / ``source`` pair that
caches the ledger link; it is written only from :mod:`goal_sync.db.records`.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime, time
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from goal_sync.models.sync import DEFAULT_CONFLICT_POLICY


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all goal-sync tables."""


# === Sync state ===


class CredentialRow(Base):
    """OAuth tokens per user and provider."""

    __tablename__ = "credentials"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="credentials_user_provider"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    access_token: Mapped[str | None] = mapped_column(Text)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class SyncSettingsRow(Base):
    """Per-user calendar sync preferences."""

    __tablename__ = "sync_settings"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sync_quarterly_targets: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_monthly_targets: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_weekly_targets: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_daily_actions: Mapped[bool] = mapped_column(Boolean, default=True)
    quarterly_color_id: Mapped[str | None] = mapped_column(String(4))
    monthly_color_id: Mapped[str | None] = mapped_column(String(4))
    weekly_color_id: Mapped[str | None] = mapped_column(String(4))
    daily_color_id: Mapped[str | None] = mapped_column(String(4))
    conflict_resolution: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CONFLICT_POLICY
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class SyncRecordRow(Base):
    """Ledger row linking a local entity to a provider event."""

    __tablename__ = "sync_records"
    __table_args__ = (
        UniqueConstraint("user_id", "entity_type", "entity_id", name="sync_records_entity"),
        Index("sync_records_user_status", "user_id", "sync_status"),
        Index("sync_records_external_event", "external_event_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    external_event_id: Mapped[str | None] = mapped_column(String(1024))
    external_calendar_id: Mapped[str] = mapped_column(String(255), default="primary")
    sync_status: Mapped[str] = mapped_column(String(20), default="synced")
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


# === Goal hierarchy ===


class VisionRow(Base):
    __tablename__ = "visions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)


class PowerGoalRow(Base):
    __tablename__ = "power_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vision_id: Mapped[str | None] = mapped_column(ForeignKey("visions.id", ondelete="SET NULL"))
    title: Mapped[str] = mapped_column(Text, nullable=False)

    vision: Mapped[VisionRow | None] = relationship()


class QuarterlyTargetRow(Base):
    __tablename__ = "quarterly_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    vision_id: Mapped[str | None] = mapped_column(ForeignKey("visions.id", ondelete="CASCADE"))
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    key_metric: Mapped[str | None] = mapped_column(Text)
    target_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")

    vision: Mapped[VisionRow | None] = relationship()


class MonthlyTargetRow(Base):
    __tablename__ = "monthly_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    power_goal_id: Mapped[str | None] = mapped_column(
        ForeignKey("power_goals.id", ondelete="CASCADE")
    )
    target_month: Mapped[int] = mapped_column(Integer, nullable=False)
    target_year: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    key_metric: Mapped[str | None] = mapped_column(Text)
    target_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")

    power_goal: Mapped[PowerGoalRow | None] = relationship()


class WeeklyTargetRow(Base):
    __tablename__ = "weekly_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    monthly_target_id: Mapped[str | None] = mapped_column(
        ForeignKey("monthly_targets.id", ondelete="CASCADE")
    )
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    key_metric: Mapped[str | None] = mapped_column(Text)
    target_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")

    monthly_target: Mapped[MonthlyTargetRow | None] = relationship()


class DailyActionRow(Base):
    __tablename__ = "daily_actions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    weekly_target_id: Mapped[str | None] = mapped_column(
        ForeignKey("weekly_targets.id", ondelete="CASCADE")
    )
    action_date: Mapped[date] = mapped_column(Date, nullable=False)
    estimated_minutes: Mapped[int | None] = mapped_column(Integer, default=30)
    scheduled_start_time: Mapped[time | None] = mapped_column(Time)
    scheduled_end_time: Mapped[time | None] = mapped_column(Time)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    key_metric: Mapped[str | None] = mapped_column(Text)
    target_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    source: Mapped[str] = mapped_column(String(32), default="manual")
    external_event_id: Mapped[str | None] = mapped_column(String(1024))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    weekly_target: Mapped[WeeklyTargetRow | None] = relationship()


class TimeBlockRow(Base):
    __tablename__ = "time_blocks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    block_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer)
    activity_name: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(32), default="manual")
    external_event_id: Mapped[str | None] = mapped_column(String(1024))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


ENTITY_TABLES: dict[str, type[Base]] = {
    "quarterly_target": QuarterlyTargetRow,
    "monthly_target": MonthlyTargetRow,
    "weekly_target": WeeklyTargetRow,
    "daily_action": DailyActionRow,
    "time_block": TimeBlockRow,
}
