"""Pull provider-side edits back onto linked local entities.

Provides :class:`PullSyncEngine`.  Daily actions and time blocks that an
import linked to an event without a ledger record are adopted into the
ledger first.  Every ledger record that links a daily action or time block
to a provider event is then handled in order fetch -> diff -> apply:

- the event is gone (404) or cancelled -> the link is removed and the
  entity goes back to being a manual one;
- the event differs from the entity -> the conflict policy decides whether
  the provider's date, times and title are copied onto the entity;
- nothing differs -> the entity is reported as already in sync.

Per-entity failures (provider errors, unreadable events, failed writes)
are recorded in the returned :class:`~goal_sync.models.calendar.PullResult`
and the run moves on.  After the loop, every ``needs_check`` record of the
user is marked synced.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import Any

from goal_sync.calendar.auth import TokenManager
from goal_sync.calendar.client import GoogleCalendarClient
from goal_sync.calendar.conflict import resolve
from goal_sync.calendar.event_mapper import ProviderTimes, read_provider_times, strip_title_tag
from goal_sync.calendar.exceptions import CalendarAPIError, CalendarNotFoundError
from goal_sync.db.credentials import CredentialStore
from goal_sync.db.planning import PlanningRepository
from goal_sync.db.records import SyncRecordStore
from goal_sync.db.settings import SyncSettingsStore
from goal_sync.exceptions import ParseError, PersistenceError
from goal_sync.models.calendar import PullDetail, PullResult
from goal_sync.models.entities import DailyAction, HierarchyEntity, TimeBlock
from goal_sync.models.sync import AccessToken, ConflictPolicy, SyncRecord

logger = logging.getLogger(__name__)

_MINUTES_PER_DAY = 24 * 60


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _minute(value: time | None) -> time | None:
    if value is None:
        return None
    return value.replace(second=0, microsecond=0, tzinfo=None)


def _local_fields(entity: HierarchyEntity) -> tuple[date, time | None, time | None]:
    if isinstance(entity, DailyAction):
        return entity.action_date, entity.scheduled_start_time, entity.scheduled_end_time
    if isinstance(entity, TimeBlock):
        return entity.block_date, entity.start_time, entity.end_time
    raise ValueError(f"{entity.kind} entities cannot be pulled")


def diff_entity(
    entity: HierarchyEntity, times: ProviderTimes, summary: str | None
) -> dict[str, Any]:
    """Fields whose provider value differs from the local one.

    Times are compared at minute precision.  The title is compared with
    the ``[GAP ...]`` tag removed; a missing or empty summary never counts
    as a change.

    Returns:
        A ``{field: provider_value}`` dict over ``date``, ``start_time``,
        ``end_time`` and ``title``; empty when nothing changed.
    """
    local_date, local_start, local_end = _local_fields(entity)
    changes: dict[str, Any] = {}
    if times.date != local_date:
        changes["date"] = times.date
    if times.start_time != _minute(local_start):
        changes["start_time"] = times.start_time
    if times.end_time != _minute(local_end):
        changes["end_time"] = times.end_time
    if summary:
        title = strip_title_tag(summary)
        if title and title != entity.title:
            changes["title"] = title
    return changes


def duration_minutes(start: time, end: time) -> int:
    """Minutes from *start* to *end*; an end before the start wraps past midnight."""
    minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    if minutes < 0:
        minutes += _MINUTES_PER_DAY
    return minutes


class PullSyncEngine:
    """Reconciles linked local entities from their provider events.

    Args:
        planning: Loads and updates the linked entities.
        records: The sync ledger.
        settings_store: Per-user sync settings (for the conflict policy).
        credentials: Stored OAuth credentials.
        tokens: Produces a valid access token per run.
        timezone: IANA timezone provider times are converted into.
        client_factory: Builds a calendar client from an access token.
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
        client_factory: Callable[[AccessToken], GoogleCalendarClient] = GoogleCalendarClient.for_token,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._planning = planning
        self._records = records
        self._settings = settings_store
        self._credentials = credentials
        self._tokens = tokens
        self._timezone = timezone
        self._client_factory = client_factory
        self._clock = clock

    def pull_all(self, user_id: str, cancel: threading.Event | None = None) -> PullResult:
        """Reconcile every linked daily action and time block of *user_id*.

        Args:
            user_id: Verified id of the user to pull for.
            cancel: When set, the run stops before the next entity and
                returns what it has so far with ``cancelled=True``.  A
                cancelled run does not sweep ``needs_check`` records.

        Returns:
            A :class:`PullResult` with one detail per entity examined.

        Raises:
            AuthError: If no valid access token can be obtained.
            PersistenceError: If imported links cannot be adopted or the
                linked records cannot be listed.
        """
        token = self._tokens.ensure_valid_token(self._credentials.get(user_id))
        policy = self._settings.get(user_id).conflict_resolution
        client = self._client_factory(token)
        self._records.adopt_entity_links(user_id)
        records = self._records.list_linked(user_id)

        logger.info(
            "Starting pull for user %s: %d linked record(s), policy=%s",
            user_id,
            len(records),
            policy,
        )

        result = PullResult()
        for record in records:
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break
            self._pull_one(client, record, policy, result)

        if result.cancelled:
            logger.warning("Pull for user %s cancelled after %d record(s)", user_id, len(result.details))
        else:
            try:
                swept = self._records.sweep_needs_check(user_id, self._clock())
                if swept:
                    logger.info("Marked %d needs_check record(s) synced", swept)
            except PersistenceError as exc:
                logger.error("needs_check sweep failed for user %s: %s", user_id, exc)
                result.errors.append(f"Failed to sweep needs_check records: {exc}")

        logger.info(
            "Pull complete: %d updated, %d unlinked, %d conflict(s), %d error(s)",
            result.synced,
            result.deleted,
            result.conflicts,
            len(result.errors),
        )
        return result

    def _pull_one(
        self,
        client: GoogleCalendarClient,
        record: SyncRecord,
        policy: ConflictPolicy,
        result: PullResult,
    ) -> None:
        entity_type, entity_id = record.entity_type, record.entity_id
        event_id = record.external_event_id or ""

        try:
            event = client.get_event(event_id)
        except CalendarNotFoundError:
            self._unlink(record, result, "deleted upstream")
            return
        except CalendarAPIError as exc:
            self._error(result, record, f"Failed to fetch event {event_id}: {exc}")
            return

        if event.get("status") == "cancelled":
            self._unlink(record, result, "cancelled upstream")
            return

        try:
            times = read_provider_times(event, self._timezone)
        except ParseError as exc:
            self._error(result, record, f"Could not read date/time from event {event_id}: {exc}")
            return

        try:
            entity = self._planning.get_entity(entity_type, entity_id)
        except PersistenceError as exc:
            self._error(result, record, f"Failed to load {entity_type} {entity_id}: {exc}")
            return
        if entity is None:
            self._error(result, record, f"Local {entity_type} {entity_id} no longer exists")
            return

        changes = diff_entity(entity, times, event.get("summary"))
        resolution = resolve(policy, local_changed=bool(changes))
        if not changes:
            result.details.append(
                PullDetail(entity_type, entity_id, action="skipped", reason="already in sync")
            )
            self._touch(record)
            return

        old_date = _local_fields(entity)[0].isoformat()
        new_date = times.date.isoformat()

        if resolution == "keep_local":
            logger.info(
                "Conflict on %s %s (%s): keeping local copy",
                entity_type,
                entity_id,
                ", ".join(sorted(changes)),
            )
            result.conflicts += 1
            result.details.append(
                PullDetail(
                    entity_type,
                    entity_id,
                    action="skipped",
                    reason="conflict resolution: app_wins",
                    old_date=old_date,
                    new_date=new_date,
                )
            )
            return

        if "start_time" in changes or "end_time" in changes:
            changes["duration_minutes"] = duration_minutes(times.start_time, times.end_time)

        try:
            applied = self._planning.apply_provider_changes(entity_type, entity_id, changes)
            if applied:
                self._records.touch(record.user_id, entity_type, entity_id, self._clock())
        except PersistenceError as exc:
            self._error(result, record, f"Failed to update {entity_type} {entity_id}: {exc}")
            return
        if not applied:
            self._error(result, record, f"Local {entity_type} {entity_id} no longer exists")
            return

        logger.info(
            "Updated %s %s from provider (%s)", entity_type, entity_id, ", ".join(sorted(changes))
        )
        result.synced += 1
        result.details.append(
            PullDetail(
                entity_type,
                entity_id,
                action="updated",
                reason="updated from provider",
                old_date=old_date,
                new_date=new_date,
            )
        )

    def _unlink(self, record: SyncRecord, result: PullResult, reason: str) -> None:
        try:
            self._records.unlink(record.user_id, record.entity_type, record.entity_id)
        except PersistenceError as exc:
            self._error(
                result,
                record,
                f"Failed to unlink {record.entity_type} {record.entity_id}: {exc}",
            )
            return
        logger.info(
            "Event %s %s; unlinked %s %s",
            record.external_event_id,
            reason,
            record.entity_type,
            record.entity_id,
        )
        result.deleted += 1
        result.details.append(
            PullDetail(record.entity_type, record.entity_id, action="deleted", reason=reason)
        )

    def _touch(self, record: SyncRecord) -> None:
        try:
            self._records.touch(
                record.user_id, record.entity_type, record.entity_id, self._clock()
            )
        except PersistenceError as exc:
            # The entity is already in sync; only the bookkeeping timestamp is lost.
            logger.warning(
                "Could not touch record for %s %s: %s", record.entity_type, record.entity_id, exc
            )

    @staticmethod
    def _error(result: PullResult, record: SyncRecord, message: str) -> None:
        logger.warning(message)
        result.errors.append(message)
        result.details.append(
            PullDetail(record.entity_type, record.entity_id, action="error", reason=message)
        )
