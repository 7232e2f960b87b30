"""Shared fixtures for Google Calendar unit tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from goal_sync.calendar.auth import TokenManager
from goal_sync.calendar.client import GoogleCalendarClient
from goal_sync.calendar.pull import PullSyncEngine
from goal_sync.calendar.push import PushSyncEngine
from goal_sync.db.credentials import CredentialStore
from goal_sync.db.planning import PlanningRepository
from goal_sync.db.records import SyncRecordStore
from goal_sync.db.settings import SyncSettingsStore

_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture()
def mock_service() -> MagicMock:
    """A mock ``googleapiclient`` service resource.

    ``mock_service.events.return_value`` is the events collection; set
    ``insert/update/get(...).execute`` return values or side effects on it.
    """
    service = MagicMock()
    service.events.return_value.insert.return_value.execute.return_value = {"id": "evt-1"}
    return service


@pytest.fixture()
def events(mock_service: MagicMock) -> MagicMock:
    """Shortcut to the mock events collection."""
    return mock_service.events.return_value


@pytest.fixture()
def client_factory(mock_service: MagicMock) -> Callable[..., GoogleCalendarClient]:
    """Client factory handing the engines a client around ``mock_service``."""
    return lambda _token: GoogleCalendarClient(None, service=mock_service)


@pytest.fixture()
def token_response() -> Callable[..., SimpleNamespace]:
    """Factory for a fake ``google.auth.transport.Response``."""

    def _make(status: int = 200, payload: dict | None = None, raw: bytes | None = None):
        data = raw if raw is not None else json.dumps(payload or {}).encode("utf-8")
        return SimpleNamespace(status=status, data=data, headers={})

    return _make


@pytest.fixture()
def token_request(token_response: Callable[..., SimpleNamespace]) -> MagicMock:
    """A mock transport that answers every refresh with a fresh token."""
    return MagicMock(
        return_value=token_response(
            200, {"access_token": "refreshed-token", "expires_in": 3599, "token_type": "Bearer"}
        )
    )


@pytest.fixture()
def token_manager(credential_store: CredentialStore, token_request: MagicMock) -> TokenManager:
    """A TokenManager with test client credentials and a fixed clock."""
    return TokenManager(
        credential_store,
        "test-client-id",
        "test-client-secret",
        request=token_request,
        clock=lambda: _NOW,
    )


@pytest.fixture()
def push_engine(
    planning: PlanningRepository,
    record_store: SyncRecordStore,
    settings_store: SyncSettingsStore,
    credential_store: CredentialStore,
    token_manager: TokenManager,
    client_factory: Callable[..., GoogleCalendarClient],
) -> PushSyncEngine:
    """A create_always push engine over SQLite and the mock service."""
    return PushSyncEngine(
        planning,
        record_store,
        settings_store,
        credential_store,
        token_manager,
        client_factory=client_factory,
        clock=lambda: _NOW,
    )


@pytest.fixture()
def pull_engine(
    planning: PlanningRepository,
    record_store: SyncRecordStore,
    settings_store: SyncSettingsStore,
    credential_store: CredentialStore,
    token_manager: TokenManager,
    client_factory: Callable[..., GoogleCalendarClient],
) -> PullSyncEngine:
    """A UTC pull engine over SQLite and the mock service."""
    return PullSyncEngine(
        planning,
        record_store,
        settings_store,
        credential_store,
        token_manager,
        client_factory=client_factory,
        clock=lambda: _NOW,
    )


@pytest.fixture()
def tmp_credentials_file(tmp_path: Path) -> Path:
    """Write a minimal credentials.json to a temp directory and return its path."""
    creds_path = tmp_path / "credentials.json"
    creds_path.write_text('{"installed": {"client_id": "fake", "client_secret": "fake"}}')
    return creds_path
