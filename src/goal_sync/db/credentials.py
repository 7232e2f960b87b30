"""Stored OAuth credentials, one row per user and provider."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from goal_sync.db.database import Database, as_utc
from goal_sync.db.schema import CredentialRow
from goal_sync.exceptions import PersistenceError
from goal_sync.models.sync import GOOGLE_PROVIDER, AccessToken, Credential

logger = logging.getLogger(__name__)


def _find_row(session: Session, user_id: str, provider: str) -> CredentialRow | None:
    stmt = select(CredentialRow).where(
        CredentialRow.user_id == user_id,
        CredentialRow.provider == provider,
    )
    return session.execute(stmt).scalar_one_or_none()


def _to_model(row: CredentialRow) -> Credential:
    return Credential(
        user_id=row.user_id,
        provider=row.provider,
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        expiry=as_utc(row.expiry),
        is_active=row.is_active,
    )


class CredentialStore:
    """Read and update credentials.

    Sync never creates a credential; :meth:`connect` exists for the
    consent flow that runs outside a sync.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    def get(self, user_id: str, provider: str = GOOGLE_PROVIDER) -> Credential | None:
        """Return the credential for ``(user_id, provider)``, or ``None``."""
        with self._db.transaction() as session:
            row = _find_row(session, user_id, provider)
            return _to_model(row) if row is not None else None

    def save_access_token(
        self, user_id: str, token: AccessToken, provider: str = GOOGLE_PROVIDER
    ) -> None:
        """Persist a refreshed access token and its expiry.

        Raises:
            PersistenceError: If the credential row is gone or the write fails.
        """
        with self._db.transaction() as session:
            row = _find_row(session, user_id, provider)
            if row is None:
                raise PersistenceError(f"No {provider} credential for user {user_id}")
            row.access_token = token.value
            row.expiry = token.expires_at
        logger.debug(
            "Stored refreshed access token for user %s (expires %s)", user_id, token.expires_at
        )

    def connect(
        self,
        user_id: str,
        *,
        refresh_token: str,
        access_token: str | None = None,
        expiry: datetime | None = None,
        provider: str = GOOGLE_PROVIDER,
    ) -> Credential:
        """Create or replace the credential for ``(user_id, provider)``.

        Reconnecting reactivates a credential that was disconnected.
        """
        with self._db.transaction() as session:
            row = _find_row(session, user_id, provider)
            if row is None:
                row = CredentialRow(user_id=user_id, provider=provider)
                session.add(row)
            row.refresh_token = refresh_token
            row.access_token = access_token
            row.expiry = expiry
            row.is_active = True
            session.flush()
            credential = _to_model(row)
        logger.info("Connected %s for user %s", provider, user_id)
        return credential

    def disconnect(self, user_id: str, provider: str = GOOGLE_PROVIDER) -> bool:
        """Mark the credential inactive; returns ``False`` if none exists."""
        with self._db.transaction() as session:
            row = _find_row(session, user_id, provider)
            if row is None:
                return False
            row.is_active = False
        logger.info("Disconnected %s for user %s", provider, user_id)
        return True
