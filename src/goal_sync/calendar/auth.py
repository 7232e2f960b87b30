"""OAuth 2.0 token lifecycle for Google Calendar.

:class:`TokenManager` turns a stored :class:`~goal_sync.models.sync.Credential`
into an access token that is valid for at least the next minute, refreshing
it against the Google token endpoint and persisting the result when needed.

Usage::

    from goal_sync.calendar.auth import TokenManager

    manager = TokenManager(credential_store, client_id, client_secret)
    token = manager.ensure_valid_token(credential_store.get(user_id))

:func:`run_consent_flow` runs the Desktop application consent flow through
``google-auth-oauthlib`` and is only used by the ``connect`` CLI command.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from google.auth import exceptions as google_auth_exceptions
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow

from goal_sync.config import GOOGLE_TOKEN_URI
from goal_sync.exceptions import AuthError, PersistenceError
from goal_sync.models.sync import AccessToken, Credential

if TYPE_CHECKING:
    from google.oauth2.credentials import Credentials

    from goal_sync.config import Settings
    from goal_sync.db.credentials import CredentialStore

logger = logging.getLogger(__name__)

SCOPES: list[str] = ["https://www.googleapis.com/auth/calendar"]
"""OAuth 2.0 scopes required to create, update and read events."""

REFRESH_SKEW = timedelta(seconds=60)
"""A token expiring within this window is refreshed before use."""

_REQUEST_TIMEOUT = 30  # seconds


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TokenManager:
    """Keeps a user's Google access token valid.

    Refresh failures are never retried; they surface as :class:`AuthError`
    and abort the sync run that asked for the token.

    Args:
        store: Where refreshed tokens are persisted.
        client_id: OAuth client id (may be empty; a refresh then fails with
            ``reason="missing_config"``).
        client_secret: OAuth client secret paired with *client_id*.
        token_uri: Token endpoint URL.
        request: A ``google.auth.transport.Request`` callable.  Defaults to
            the ``requests``-backed transport.  Pass a mock here in tests.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        store: CredentialStore,
        client_id: str,
        client_secret: str,
        *,
        token_uri: str = GOOGLE_TOKEN_URI,
        request: Callable[..., Any] | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_uri = token_uri
        self._request = request or Request()
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, store: CredentialStore, **kwargs: Any
    ) -> TokenManager:
        """Build a manager from deployment :class:`~goal_sync.config.Settings`."""
        return cls(
            store,
            settings.google_client_id,
            settings.google_client_secret,
            token_uri=settings.token_uri,
            **kwargs,
        )

    def ensure_valid_token(self, credential: Credential | None) -> AccessToken:
        """Return an access token valid for at least :data:`REFRESH_SKEW`.

        The stored token is returned unchanged while ``now < expiry - 60s``.
        Otherwise the token is refreshed and the new token and expiry are
        written back through the credential store.

        Args:
            credential: The user's stored credential, or ``None`` if the
                user never connected.

        Returns:
            The usable :class:`AccessToken`.

        Raises:
            AuthError: ``not_connected`` for a missing or inactive
                credential or one without a refresh token;
                ``missing_config`` / ``refresh_failed`` from :meth:`refresh`.
        """
        if credential is None or not credential.is_active:
            raise AuthError("Not connected to Google Calendar", reason="not_connected")
        if not credential.refresh_token:
            raise AuthError(
                "No refresh token stored; reconnect Google Calendar", reason="not_connected"
            )

        now = self._clock()
        if (
            credential.access_token
            and credential.expiry is not None
            and now < credential.expiry - REFRESH_SKEW
        ):
            return AccessToken(value=credential.access_token, expires_at=credential.expiry)

        logger.info("Access token for user %s expired or expiring, refreshing", credential.user_id)
        token = self.refresh(credential.refresh_token, now=now)
        try:
            self._store.save_access_token(credential.user_id, token, provider=credential.provider)
        except PersistenceError as exc:
            # The refreshed token is still usable for this run.
            logger.error("Failed to persist refreshed token for %s: %s", credential.user_id, exc)
        return token

    def refresh(self, refresh_token: str, now: datetime | None = None) -> AccessToken:
        """Exchange *refresh_token* for a new access token.

        Performs the network call only; nothing is persisted.

        Args:
            refresh_token: The user's long-lived refresh token.
            now: Reference time for computing ``expires_at``.

        Returns:
            The new :class:`AccessToken`.

        Raises:
            AuthError: ``missing_config`` when client credentials are not
                configured; ``refresh_failed`` on a transport error, a
                non-2xx response, or a response without ``access_token``.
        """
        if not self._client_id or not self._client_secret:
            raise AuthError(
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set to refresh tokens",
                reason="missing_config",
            )

        body = urlencode(
            {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )
        try:
            response = self._request(
                url=self._token_uri,
                method="POST",
                body=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=_REQUEST_TIMEOUT,
            )
        except google_auth_exceptions.TransportError as exc:
            logger.error("Token endpoint unreachable: %s", exc)
            raise AuthError(f"Token refresh failed: {exc}", reason="refresh_failed") from exc

        payload = _decode_json(response.data)
        if not 200 <= response.status < 300:
            detail = payload.get("error", "unknown_error") if payload else "unknown_error"
            logger.error("Token refresh rejected (HTTP %s): %s", response.status, detail)
            raise AuthError(
                f"Token refresh failed (HTTP {response.status}): {detail}",
                reason="refresh_failed",
            )

        access_token = payload.get("access_token") if payload else None
        if not access_token:
            raise AuthError("Token response did not include access_token", reason="refresh_failed")
        try:
            expires_in = int(payload.get("expires_in", 3600))
        except (TypeError, ValueError) as exc:
            raise AuthError(
                "Token response had an invalid expires_in", reason="refresh_failed"
            ) from exc

        issued_at = now or self._clock()
        logger.info("Token refresh succeeded (expires in %ds)", expires_in)
        return AccessToken(value=access_token, expires_at=issued_at + timedelta(seconds=expires_in))


def _decode_json(data: bytes | str | None) -> dict[str, Any] | None:
    if not data:
        return None
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def run_consent_flow(client_secrets_path: Path | str, port: int = 0) -> Credentials:
    """Launch the InstalledAppFlow to authorize calendar access via browser.

    Args:
        client_secrets_path: Path to the OAuth client secrets JSON file
            downloaded from Google Cloud Console.
        port: Local port for the redirect listener; ``0`` picks a free one.

    Returns:
        Fresh ``google.oauth2.credentials.Credentials`` with a refresh
        token.

    Raises:
        AuthError: If the client secrets file is missing
            (``missing_config``) or the flow yields no refresh token.
    """
    client_secrets_path = Path(client_secrets_path)
    if not client_secrets_path.exists():
        msg = f"OAuth client secrets file not found: {client_secrets_path}"
        logger.error(msg)
        raise AuthError(msg, reason="missing_config")

    flow = InstalledAppFlow.from_client_secrets_file(str(client_secrets_path), scopes=SCOPES)
    creds = flow.run_local_server(port=port, access_type="offline", prompt="consent")
    if not creds.refresh_token:
        raise AuthError("Consent flow returned no refresh token", reason="not_connected")
    logger.info("Browser OAuth flow completed successfully")
    return creds
