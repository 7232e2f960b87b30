"""Shared fixtures for goal-sync tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path

import pytest

from goal_sync.db.credentials import CredentialStore
from goal_sync.db.database import Database
from goal_sync.db.planning import PlanningRepository
from goal_sync.db.records import SyncRecordStore
from goal_sync.db.schema import (
    DailyActionRow,
    MonthlyTargetRow,
    PowerGoalRow,
    QuarterlyTargetRow,
    TimeBlockRow,
    VisionRow,
    WeeklyTargetRow,
)
from goal_sync.db.settings import SyncSettingsStore

USER_ID = "user-1"
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
TODAY = date(2024, 1, 15)


@pytest.fixture()
def monkeypatch_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> dict[str, str]:
    """Set all required environment variables to valid defaults.

    Also patches ``load_dotenv`` so that a real ``.env`` file on disk does not
    override the test values.

    Returns the dict of variables so tests can inspect or override values.
    """
    monkeypatch.setattr("goal_sync.config.load_dotenv", lambda *_a, **_kw: None)
    env_vars = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'env.db'}",
        "GOOGLE_CLIENT_ID": "test-client-id",
        "GOOGLE_CLIENT_SECRET": "test-client-secret",
    }
    for key in ("GOOGLE_TOKEN_URI", "TIMEZONE", "PUSH_POLICY", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all goal-sync-related environment variables.

    Patches ``load_dotenv`` so a real ``.env`` file cannot re-inject values
    that the test explicitly removed.
    """
    monkeypatch.setattr("goal_sync.config.load_dotenv", lambda *_a, **_kw: None)
    for key in (
        "DATABASE_URL",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GOOGLE_TOKEN_URI",
        "TIMEZONE",
        "PUSH_POLICY",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_root_logger() -> Generator[None, None, None]:
    """Reset the root logger after each test to prevent handler leaks."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def database(tmp_path: Path) -> Generator[Database, None, None]:
    """A fresh SQLite database with all tables created."""
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.create_all()
    yield db
    db.close()


@pytest.fixture()
def credential_store(database: Database) -> CredentialStore:
    return CredentialStore(database)


@pytest.fixture()
def record_store(database: Database) -> SyncRecordStore:
    return SyncRecordStore(database)


@pytest.fixture()
def settings_store(database: Database) -> SyncSettingsStore:
    return SyncSettingsStore(database)


@pytest.fixture()
def planning(database: Database) -> PlanningRepository:
    return PlanningRepository(database)


@pytest.fixture()
def connected_user(credential_store: CredentialStore) -> str:
    """Store a credential whose access token is valid for another hour."""
    credential_store.connect(
        USER_ID,
        refresh_token="refresh-abc",
        access_token="access-abc",
        expiry=NOW + timedelta(hours=1),
    )
    return USER_ID


@pytest.fixture()
def hierarchy(planning: PlanningRepository) -> dict[str, str]:
    """Seed one branch of the hierarchy (vision down to a weekly target).

    Returns the ids keyed by level name.
    """
    vision_id = planning.add(VisionRow(user_id=USER_ID, title="Run a profitable studio"))
    power_goal_id = planning.add(
        PowerGoalRow(user_id=USER_ID, vision_id=vision_id, title="Land ten clients")
    )
    quarterly_id = planning.add(
        QuarterlyTargetRow(
            user_id=USER_ID,
            vision_id=vision_id,
            quarter=1,
            year=2024,
            title="Sign three retainers",
            key_metric="Retainers signed",
            target_value=3,
        )
    )
    monthly_id = planning.add(
        MonthlyTargetRow(
            user_id=USER_ID,
            power_goal_id=power_goal_id,
            target_month=1,
            target_year=2024,
            title="Send twenty proposals",
        )
    )
    weekly_id = planning.add(
        WeeklyTargetRow(
            user_id=USER_ID,
            monthly_target_id=monthly_id,
            week_start_date=date(2024, 1, 15),
            week_end_date=date(2024, 1, 21),
            title="Five proposals out",
        )
    )
    return {
        "vision": vision_id,
        "power_goal": power_goal_id,
        "quarterly": quarterly_id,
        "monthly": monthly_id,
        "weekly": weekly_id,
    }


@pytest.fixture()
def make_daily_action(planning: PlanningRepository) -> Callable[..., str]:
    """Factory inserting a daily action for ``USER_ID``; returns its id."""

    def _make(**overrides: object) -> str:
        values: dict = {
            "user_id": USER_ID,
            "title": "Draft proposal",
            "action_date": TODAY,
            "estimated_minutes": 60,
        }
        values.update(overrides)
        return planning.add(DailyActionRow(**values))

    return _make


@pytest.fixture()
def make_time_block(planning: PlanningRepository) -> Callable[..., str]:
    """Factory inserting a time block for ``USER_ID``; returns its id."""

    def _make(**overrides: object) -> str:
        values: dict = {
            "user_id": USER_ID,
            "activity_name": "Client call",
            "block_date": TODAY,
            "start_time": time(14, 0),
            "end_time": time(15, 0),
            "duration_minutes": 60,
        }
        values.update(overrides)
        return planning.add(TimeBlockRow(**values))

    return _make
