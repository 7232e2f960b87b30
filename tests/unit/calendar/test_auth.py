"""Tests for the Google OAuth token lifecycle.

Covers :class:`~goal_sync.calendar.auth.TokenManager` and
:func:`~goal_sync.calendar.auth.run_consent_flow`.

Test matrix:

| Test | Scenario | Expected |
|---|---|---|
| test_valid_token_returned_without_refresh | expiry 61s away | stored token, no request |
| test_token_inside_skew_is_refreshed | expiry 59s away | refresh, new token persisted |
| test_expired_token_is_refreshed | expiry in the past | refresh |
| test_missing_access_token_is_refreshed | no access token | refresh |
| test_no_credential | never connected | AuthError not_connected |
| test_inactive_credential | disconnected | AuthError not_connected |
| test_missing_refresh_token | refresh token empty | AuthError not_connected |
| test_missing_client_config | no client id | AuthError missing_config |
| test_refresh_rejected | HTTP 400 invalid_grant | AuthError refresh_failed |
| test_transport_error | endpoint unreachable | AuthError refresh_failed |
| test_response_without_access_token | 200 but empty | AuthError refresh_failed |
| test_persist_failure_still_returns_token | save fails | token returned |
| test_consent_flow_missing_file | no secrets file | AuthError missing_config |
| test_consent_flow_uses_offline_access | flow runs | offline + consent |
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, create_autospec, patch
from urllib.parse import parse_qs

import pytest
from google.auth.exceptions import TransportError

from goal_sync.calendar.auth import SCOPES, TokenManager, run_consent_flow
from goal_sync.db.credentials import CredentialStore
from goal_sync.exceptions import AuthError, PersistenceError
from goal_sync.models.sync import Credential

USER_ID = "user-1"
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


def _credential(**overrides: object) -> Credential:
    values: dict = {
        "user_id": USER_ID,
        "access_token": "stored-token",
        "refresh_token": "refresh-abc",
        "expiry": NOW + timedelta(hours=1),
    }
    values.update(overrides)
    return Credential(**values)


def _manager(store: object, request: MagicMock, **kwargs: object) -> TokenManager:
    return TokenManager(
        store,  # type: ignore[arg-type]
        kwargs.pop("client_id", "test-client-id"),  # type: ignore[arg-type]
        kwargs.pop("client_secret", "test-client-secret"),  # type: ignore[arg-type]
        request=request,
        clock=lambda: NOW,
    )


class TestEnsureValidToken:
    """Tests for ``TokenManager.ensure_valid_token``."""

    def test_valid_token_returned_without_refresh(self, token_request: MagicMock) -> None:
        store = create_autospec(CredentialStore, instance=True)
        manager = _manager(store, token_request)

        token = manager.ensure_valid_token(_credential(expiry=NOW + timedelta(seconds=61)))

        assert token.value == "stored-token"
        token_request.assert_not_called()
        store.save_access_token.assert_not_called()

    def test_token_inside_skew_is_refreshed(
        self,
        token_manager: TokenManager,
        token_request: MagicMock,
        credential_store: CredentialStore,
    ) -> None:
        credential_store.connect(
            USER_ID,
            refresh_token="refresh-abc",
            access_token="stale-token",
            expiry=NOW + timedelta(seconds=59),
        )

        token = token_manager.ensure_valid_token(credential_store.get(USER_ID))

        assert token.value == "refreshed-token"
        assert token.expires_at == NOW + timedelta(seconds=3599)
        stored = credential_store.get(USER_ID)
        assert stored.access_token == "refreshed-token"
        assert stored.expiry == NOW + timedelta(seconds=3599)
        assert stored.refresh_token == "refresh-abc"

    def test_refresh_request_shape(self, token_request: MagicMock) -> None:
        store = create_autospec(CredentialStore, instance=True)
        manager = _manager(store, token_request)

        manager.ensure_valid_token(_credential(expiry=NOW - timedelta(minutes=5)))

        kwargs = token_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://oauth2.googleapis.com/token"
        form = parse_qs(kwargs["body"])
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-abc"]
        assert form["client_id"] == ["test-client-id"]
        store.save_access_token.assert_called_once()

    def test_missing_access_token_is_refreshed(self, token_request: MagicMock) -> None:
        store = create_autospec(CredentialStore, instance=True)

        token = _manager(store, token_request).ensure_valid_token(_credential(access_token=None))

        assert token.value == "refreshed-token"

    def test_no_credential(self, token_request: MagicMock) -> None:
        manager = _manager(MagicMock(), token_request)

        with pytest.raises(AuthError) as exc_info:
            manager.ensure_valid_token(None)

        assert exc_info.value.reason == "not_connected"

    def test_inactive_credential(self, token_request: MagicMock) -> None:
        manager = _manager(MagicMock(), token_request)

        with pytest.raises(AuthError) as exc_info:
            manager.ensure_valid_token(_credential(is_active=False))

        assert exc_info.value.reason == "not_connected"
        token_request.assert_not_called()

    def test_missing_refresh_token(self, token_request: MagicMock) -> None:
        manager = _manager(MagicMock(), token_request)

        with pytest.raises(AuthError) as exc_info:
            manager.ensure_valid_token(_credential(refresh_token=None))

        assert exc_info.value.reason == "not_connected"

    def test_persist_failure_still_returns_token(self, token_request: MagicMock) -> None:
        store = create_autospec(CredentialStore, instance=True)
        store.save_access_token.side_effect = PersistenceError("disk full")

        token = _manager(store, token_request).ensure_valid_token(
            _credential(expiry=NOW - timedelta(seconds=1))
        )

        assert token.value == "refreshed-token"


class TestRefresh:
    """Tests for ``TokenManager.refresh`` failure modes."""

    def test_missing_client_config(self, token_request: MagicMock) -> None:
        manager = _manager(MagicMock(), token_request, client_id="")

        with pytest.raises(AuthError) as exc_info:
            manager.refresh("refresh-abc")

        assert exc_info.value.reason == "missing_config"
        token_request.assert_not_called()

    def test_refresh_rejected(self, token_response: Callable[..., SimpleNamespace]) -> None:
        request = MagicMock(return_value=token_response(400, {"error": "invalid_grant"}))

        with pytest.raises(AuthError, match="invalid_grant") as exc_info:
            _manager(MagicMock(), request).refresh("refresh-abc")

        assert exc_info.value.reason == "refresh_failed"

    def test_transport_error(self) -> None:
        request = MagicMock(side_effect=TransportError("connection reset"))

        with pytest.raises(AuthError) as exc_info:
            _manager(MagicMock(), request).refresh("refresh-abc")

        assert exc_info.value.reason == "refresh_failed"

    def test_response_without_access_token(
        self, token_response: Callable[..., SimpleNamespace]
    ) -> None:
        request = MagicMock(return_value=token_response(200, {"token_type": "Bearer"}))

        with pytest.raises(AuthError, match="access_token") as exc_info:
            _manager(MagicMock(), request).refresh("refresh-abc")

        assert exc_info.value.reason == "refresh_failed"

    def test_non_json_error_body(self, token_response: Callable[..., SimpleNamespace]) -> None:
        request = MagicMock(return_value=token_response(502, raw=b"<html>Bad gateway</html>"))

        with pytest.raises(AuthError, match="HTTP 502"):
            _manager(MagicMock(), request).refresh("refresh-abc")

    def test_expires_in_defaults_to_one_hour(
        self, token_response: Callable[..., SimpleNamespace]
    ) -> None:
        request = MagicMock(return_value=token_response(200, {"access_token": "t"}))

        token = _manager(MagicMock(), request).refresh("refresh-abc", now=NOW)

        assert token.expires_at == NOW + timedelta(hours=1)


class TestConsentFlow:
    """Tests for ``run_consent_flow``."""

    def test_consent_flow_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(AuthError) as exc_info:
            run_consent_flow(tmp_path / "missing.json")

        assert exc_info.value.reason == "missing_config"

    def test_consent_flow_uses_offline_access(self, tmp_credentials_file: Path) -> None:
        creds = MagicMock(refresh_token="refresh-new")
        with patch("goal_sync.calendar.auth.InstalledAppFlow") as mock_flow_cls:
            mock_flow_cls.from_client_secrets_file.return_value.run_local_server.return_value = creds

            result = run_consent_flow(tmp_credentials_file)

        assert result is creds
        mock_flow_cls.from_client_secrets_file.assert_called_once_with(
            str(tmp_credentials_file), scopes=SCOPES
        )
        run_kwargs = mock_flow_cls.from_client_secrets_file.return_value.run_local_server.call_args.kwargs
        assert run_kwargs["access_type"] == "offline"
        assert run_kwargs["prompt"] == "consent"

    def test_consent_flow_without_refresh_token(self, tmp_credentials_file: Path) -> None:
        with patch("goal_sync.calendar.auth.InstalledAppFlow") as mock_flow_cls:
            mock_flow_cls.from_client_secrets_file.return_value.run_local_server.return_value = (
                MagicMock(refresh_token=None)
            )

            with pytest.raises(AuthError, match="no refresh token"):
                run_consent_flow(tmp_credentials_file)

    def test_scope_is_calendar(self) -> None:
        assert SCOPES == ["https://www.googleapis.com/auth/calendar"]
