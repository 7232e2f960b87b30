"""Push local hierarchy entities to Google Calendar.

Provides :class:`PushSyncEngine`.  For each requested level that the user
has enabled, every non-completed entity is rendered by the event mapper and
sent to the provider; each success is recorded in the sync ledger.

Partial failures are handled per entity -- a provider error or a failed
ledger write is recorded in the returned
:class:`~goal_sync.models.calendar.PushResult` and the run moves on.  Only
an :class:`~goal_sync.exceptions.AuthError` aborts the run, and it does so
before any entity is touched.

Two push policies exist:

- ``create_always`` -- every push inserts a new event.  Pushing the same
  entity twice leaves two provider events; the ledger points at the newer
  one.
- ``create_or_update_by_record`` -- when the ledger already links the
  entity, the linked event is updated in place.  If the provider reports
  it gone, a new event is created and the ledger is re-pointed.

A daily action is stored with the times it was pushed at, so an action
that had no time keeps the slot it was given.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo

from goal_sync.calendar.auth import TokenManager
from goal_sync.calendar.client import GoogleCalendarClient
from goal_sync.calendar.event_mapper import daily_window, to_event
from goal_sync.calendar.exceptions import CalendarAPIError, CalendarNotFoundError
from goal_sync.config import PUSH_POLICIES
from goal_sync.db.credentials import CredentialStore
from goal_sync.db.planning import PlanningRepository
from goal_sync.db.records import SyncRecordStore
from goal_sync.db.settings import SyncSettingsStore
from goal_sync.exceptions import PersistenceError
from goal_sync.models.calendar import PushItemResult, PushResult
from goal_sync.models.entities import ALL_LEVELS, DailyAction, HierarchyEntity, HierarchyLevel
from goal_sync.models.sync import AccessToken, SyncSettings

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PushSyncEngine:
    """Creates (or updates) provider events for local entities.

    Args:
        planning: Source of pushable entities.
        records: The sync ledger.
        settings_store: Per-user sync settings.
        credentials: Stored OAuth credentials.
        tokens: Produces a valid access token per run.
        timezone: IANA timezone used to render timed events and to decide
            what "today" is.
        push_policy: ``"create_always"`` or ``"create_or_update_by_record"``.
        client_factory: Builds a calendar client from an access token.
            Pass a factory returning a client around a mock service in
            tests.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        planning: PlanningRepository,
        records: SyncRecordStore,
        settings_store: SyncSettingsStore,
        credentials: CredentialStore,
        tokens: TokenManager,
        *,
        timezone: str = "UTC",
        push_policy: str = "create_always",
        client_factory: Callable[[AccessToken], GoogleCalendarClient] = GoogleCalendarClient.for_token,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if push_policy not in PUSH_POLICIES:
            raise ValueError(f"Unknown push policy: {push_policy!r}")
        self._planning = planning
        self._records = records
        self._settings = settings_store
        self._credentials = credentials
        self._tokens = tokens
        self._timezone = timezone
        self._push_policy = push_policy
        self._client_factory = client_factory
        self._clock = clock

    @property
    def push_policy(self) -> str:
        return self._push_policy

    def push_all(
        self,
        user_id: str,
        levels: Iterable[HierarchyLevel] | None = None,
        *,
        vision_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        cancel: threading.Event | None = None,
    ) -> PushResult:
        """Push every eligible entity of the requested levels.

        Levels are processed top-down (quarterly, monthly, weekly, daily)
        whatever order they are requested in; a level whose settings flag
        is off is skipped.

        Args:
            user_id: Verified id of the user to push for.
            levels: Levels to push; all four when ``None`` or empty.
            vision_id: Restrict quarterly targets to this vision.
            start_date: Daily actions on this day, or the first day of the
                window when *end_date* is also given.  Defaults to today.
            end_date: Last day of the daily-action window.
            cancel: When set, the run stops before the next entity and
                returns what it has so far with ``cancelled=True``.

        Returns:
            A :class:`PushResult` with one item per entity attempted.

        Raises:
            AuthError: If no valid access token can be obtained.
            ValueError: If *levels* names an unknown level.
        """
        requested = set(levels or ALL_LEVELS)
        unknown = requested - set(ALL_LEVELS)
        if unknown:
            raise ValueError(f"Unknown level(s): {', '.join(sorted(unknown))}")

        token = self._tokens.ensure_valid_token(self._credentials.get(user_id))
        settings = self._settings.get(user_id)
        client = self._client_factory(token)
        today = self._clock().astimezone(ZoneInfo(self._timezone)).date()

        result = PushResult()
        logger.info(
            "Starting push for user %s (levels=%s, policy=%s)",
            user_id,
            ",".join(level for level in ALL_LEVELS if level in requested),
            self._push_policy,
        )

        for level in ALL_LEVELS:
            if level not in requested:
                continue
            if not settings.is_enabled(level):
                logger.info("Skipping %s level (disabled in settings)", level)
                continue
            try:
                entities = self._planning.list_pushable(
                    user_id,
                    level,
                    today=today,
                    vision_id=vision_id,
                    start_date=start_date,
                    end_date=end_date,
                )
            except PersistenceError as exc:
                logger.error("Could not load %s entities for user %s: %s", level, user_id, exc)
                continue

            if self._push_level(client, user_id, entities, settings, result, cancel):
                break

        if result.cancelled:
            logger.warning("Push for user %s cancelled after %d item(s)", user_id, result.total)
        else:
            try:
                self._settings.touch_last_synced(user_id, self._clock())
            except PersistenceError as exc:
                logger.error("Could not record last sync time for user %s: %s", user_id, exc)

        logger.info(
            "Push complete: %d synced, %d failed, %d total",
            result.synced,
            result.failed,
            result.total,
        )
        return result

    def _push_level(
        self,
        client: GoogleCalendarClient,
        user_id: str,
        entities: list[HierarchyEntity],
        settings: SyncSettings,
        result: PushResult,
        cancel: threading.Event | None,
    ) -> bool:
        """Push one level's entities; returns ``True`` if cancelled."""
        slots: dict[date, int] = defaultdict(int)
        for entity in entities:
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                return True
            slot = 0
            if isinstance(entity, DailyAction):
                slot = slots[entity.action_date]
                slots[entity.action_date] += 1
            result.results.append(self._push_one(client, user_id, entity, settings, slot))
        return False

    def _push_one(
        self,
        client: GoogleCalendarClient,
        user_id: str,
        entity: HierarchyEntity,
        settings: SyncSettings,
        slot: int,
    ) -> PushItemResult:
        entity_type = entity.kind
        try:
            body = to_event(entity, settings, self._timezone, slot)
            event = self._send(client, user_id, entity, body)
        except (CalendarAPIError, PersistenceError, ValueError) as exc:
            logger.warning("Failed to push %s %s: %s", entity_type, entity.id, exc)
            return PushItemResult(entity_type, entity.id, success=False, error=str(exc))

        event_id = event["id"]
        schedule: tuple[time, time] | None = None
        if isinstance(entity, DailyAction):
            start, end = daily_window(entity, slot)
            schedule = (start.time(), end.time())
        try:
            self._records.upsert(
                user_id, entity_type, entity.id, event_id, self._clock(), schedule=schedule
            )
        except PersistenceError as exc:
            logger.error(
                "Event %s created for %s %s but not recorded: %s",
                event_id,
                entity_type,
                entity.id,
                exc,
            )
            return PushItemResult(
                entity_type,
                entity.id,
                success=False,
                external_event_id=event_id,
                error=f"Event created but not recorded: {exc}",
            )

        logger.info("Pushed %s '%s' -> %s", entity_type, entity.title, event_id)
        return PushItemResult(entity_type, entity.id, success=True, external_event_id=event_id)

    def _send(
        self,
        client: GoogleCalendarClient,
        user_id: str,
        entity: HierarchyEntity,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        if self._push_policy == "create_or_update_by_record":
            record = self._records.get(user_id, entity.kind, entity.id)
            if record is not None and record.external_event_id:
                try:
                    return client.update_event(record.external_event_id, body)
                except CalendarNotFoundError:
                    logger.info(
                        "Linked event %s for %s %s is gone, creating a new one",
                        record.external_event_id,
                        entity.kind,
                        entity.id,
                    )
        return client.create_event(body)
