"""Entry points that run push and pull for a user.

Provides :class:`SyncService`, which wires the stores, the token manager and
both engines together and exposes two kinds of entry point:

- **request-scoped** -- :meth:`SyncService.handle_push_request`,
  :meth:`SyncService.handle_pull_request` and
  :meth:`SyncService.handle_status_request` take a :class:`RequestSession`
  carrying the verified user id and return ``(http_status, json_body)``.
- **direct** -- :meth:`SyncService.push_for_user`,
  :meth:`SyncService.pull_for_user` and :meth:`SyncService.status_for_user`
  take a user id (for schedulers and the
  CLI) and return the JSON body.

Both funnel into the same :class:`~goal_sync.calendar.push.PushSyncEngine`
and :class:`~goal_sync.calendar.pull.PullSyncEngine`.  A run is reported as
successful unless the fatal auth path was hit.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from goal_sync.calendar.auth import TokenManager
from goal_sync.calendar.pull import PullSyncEngine
from goal_sync.calendar.push import PushSyncEngine
from goal_sync.config import Settings
from goal_sync.db.credentials import CredentialStore
from goal_sync.db.database import Database
from goal_sync.db.planning import PlanningRepository
from goal_sync.db.records import SyncRecordStore
from goal_sync.db.settings import SyncSettingsStore
from goal_sync.exceptions import AuthError, PersistenceError
from goal_sync.models.entities import ALL_LEVELS, HierarchyLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestSession:
    """The caller's identity, as established by the auth middleware.

    ``user_id`` is ``None`` for an unauthenticated request.
    """

    user_id: str | None


class PushRequest(BaseModel):
    """Body of a push request.

    Accepts the camelCase keys the web client sends (``visionId``,
    ``startDate``, ``endDate``) as well as snake_case names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    vision_id: str | None = Field(default=None, alias="visionId")
    levels: list[HierarchyLevel] = Field(default_factory=lambda: list(ALL_LEVELS))
    start_date: date | None = Field(default=None, alias="startDate")
    end_date: date | None = Field(default=None, alias="endDate")

    @model_validator(mode="after")
    def _check_window(self) -> PushRequest:
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


def _auth_failure(exc: AuthError) -> dict[str, Any]:
    return {"success": False, "error": str(exc), "reason": exc.reason, "needs_auth": True}


class SyncService:
    """Runs push and pull for individual users.

    Args:
        push_engine: Engine used for push runs.
        pull_engine: Engine used for pull runs.
        records: The sync ledger (for :meth:`mark_stale` and the status).
        settings_store: Per-user sync settings (for the status).
        credentials: Stored OAuth credentials (for the status).
    """

    def __init__(
        self,
        push_engine: PushSyncEngine,
        pull_engine: PullSyncEngine,
        records: SyncRecordStore,
        settings_store: SyncSettingsStore,
        credentials: CredentialStore,
    ) -> None:
        self.push_engine = push_engine
        self.pull_engine = pull_engine
        self._records = records
        self._settings = settings_store
        self._credentials = credentials

    @classmethod
    def from_settings(
        cls, settings: Settings, database: Database | None = None, **engine_kwargs: Any
    ) -> SyncService:
        """Build a service for a deployment.

        Args:
            settings: Loaded deployment settings.
            database: An existing :class:`Database`; one is created from
                ``settings.database_url`` when omitted.
            **engine_kwargs: Passed to both engines (e.g. ``client_factory``
                or ``clock`` in tests).
        """
        database = database or Database(settings.database_url)
        credentials = CredentialStore(database)
        records = SyncRecordStore(database)
        settings_store = SyncSettingsStore(database)
        planning = PlanningRepository(database)
        tokens = TokenManager.from_settings(settings, credentials)

        push_engine = PushSyncEngine(
            planning,
            records,
            settings_store,
            credentials,
            tokens,
            timezone=settings.timezone,
            push_policy=settings.push_policy,
            **engine_kwargs,
        )
        pull_engine = PullSyncEngine(
            planning,
            records,
            settings_store,
            credentials,
            tokens,
            timezone=settings.timezone,
            **engine_kwargs,
        )
        return cls(push_engine, pull_engine, records, settings_store, credentials)

    # ------------------------------------------------------------------
    # Direct entry points
    # ------------------------------------------------------------------

    def push_for_user(
        self,
        user_id: str,
        request: PushRequest | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        """Push for *user_id* and return the JSON response body."""
        request = request or PushRequest()
        try:
            result = self.push_engine.push_all(
                user_id,
                request.levels,
                vision_id=request.vision_id,
                start_date=request.start_date,
                end_date=request.end_date,
                cancel=cancel,
            )
        except AuthError as exc:
            logger.error("Push aborted for user %s: %s", user_id, exc)
            return _auth_failure(exc)
        except PersistenceError as exc:
            logger.error("Push aborted for user %s: %s", user_id, exc)
            return {"success": False, "error": str(exc)}
        return result.to_response()

    def pull_for_user(
        self, user_id: str, cancel: threading.Event | None = None
    ) -> dict[str, Any]:
        """Pull for *user_id* and return the JSON response body."""
        try:
            result = self.pull_engine.pull_all(user_id, cancel=cancel)
        except AuthError as exc:
            logger.error("Pull aborted for user %s: %s", user_id, exc)
            return _auth_failure(exc)
        except PersistenceError as exc:
            logger.error("Pull aborted for user %s: %s", user_id, exc)
            return {"success": False, "error": str(exc)}
        return result.to_response()

    def mark_stale(self, user_id: str) -> int:
        """Flag a user's linked records ``needs_check`` for the next pull."""
        return self._records.mark_needs_check(user_id)

    def status_for_user(self, user_id: str) -> dict[str, Any]:
        """Report how much of *user_id*'s data is linked to the calendar.

        The body carries ``connected`` (a usable credential is stored),
        ``linked`` (ledger records pointing at an event), ``needs_check``
        (records waiting for the next pull) and ``last_synced_at`` (end of
        the last full push, ISO 8601, or ``None``).  Links set by an import
        are counted once a pull has adopted them.
        """
        try:
            credential = self._credentials.get(user_id)
            last_synced_at = self._settings.get(user_id).last_synced_at
            linked = self._records.count_linked(user_id)
            needs_check = self._records.count_needs_check(user_id)
        except PersistenceError as exc:
            logger.error("Status lookup failed for user %s: %s", user_id, exc)
            return {"success": False, "error": str(exc)}

        connected = (
            credential is not None and credential.is_active and bool(credential.refresh_token)
        )
        return {
            "success": True,
            "connected": connected,
            "linked": linked,
            "needs_check": needs_check,
            "last_synced_at": last_synced_at.isoformat() if last_synced_at else None,
        }

    # ------------------------------------------------------------------
    # Request-scoped entry points
    # ------------------------------------------------------------------

    def handle_push_request(
        self, session: RequestSession, body: dict[str, Any] | None = None
    ) -> tuple[int, dict[str, Any]]:
        """Handle an authenticated push request.

        Returns:
            ``(401, ...)`` when unauthenticated or the calendar is not
            usable, ``(400, ...)`` for an invalid body, ``(500, ...)`` when
            the database is unavailable, otherwise ``(200, ...)``.
        """
        if not session.user_id:
            return 401, {"error": "Unauthorized"}
        try:
            request = PushRequest.model_validate(body or {})
        except ValidationError as exc:
            details = exc.errors(include_url=False, include_context=False)
            return 400, {"error": "Invalid request body", "details": details}

        payload = self.push_for_user(session.user_id, request)
        return _status_for(payload), payload

    def handle_pull_request(self, session: RequestSession) -> tuple[int, dict[str, Any]]:
        """Handle an authenticated pull request (same status codes as push)."""
        if not session.user_id:
            return 401, {"error": "Unauthorized"}
        payload = self.pull_for_user(session.user_id)
        return _status_for(payload), payload

    def handle_status_request(self, session: RequestSession) -> tuple[int, dict[str, Any]]:
        """Handle an authenticated status request (401, 500 or 200)."""
        if not session.user_id:
            return 401, {"error": "Unauthorized"}
        payload = self.status_for_user(session.user_id)
        return _status_for(payload), payload


def _status_for(payload: dict[str, Any]) -> int:
    if payload.get("success"):
        return 200
    if payload.get("needs_auth"):
        return 401
    return 500
