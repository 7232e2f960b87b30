"""The sync ledger: one row per local entity linked to a provider event.

The ledger is the only authoritative link between an entity and its event.
Daily actions and time blocks keep an ``external_event_id`` / ``source``
copy of that link for the planning UI; the copy is written here, in the same
transaction as the ledger row, and nowhere else.
Links that arrive the other way, set on the entity by a calendar import,
are adopted into the ledger before each pull.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, time

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from goal_sync.db.database import Database, as_utc
from goal_sync.db.schema import ENTITY_TABLES, DailyActionRow, SyncRecordRow
from goal_sync.models.entities import LINKABLE_ENTITY_TYPES
from goal_sync.models.sync import GOOGLE_PROVIDER, PRIMARY_CALENDAR, SyncRecord

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "manual"


def _to_model(row: SyncRecordRow) -> SyncRecord:
    return SyncRecord(
        user_id=row.user_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        external_event_id=row.external_event_id,
        external_calendar_id=row.external_calendar_id,
        sync_status=row.sync_status,
        last_synced_at=as_utc(row.last_synced_at),
    )


def _find_row(
    session: Session, user_id: str, entity_type: str, entity_id: str
) -> SyncRecordRow | None:
    stmt = select(SyncRecordRow).where(
        SyncRecordRow.user_id == user_id,
        SyncRecordRow.entity_type == entity_type,
        SyncRecordRow.entity_id == entity_id,
    )
    return session.execute(stmt).scalar_one_or_none()


def _write_entity_link(
    session: Session, entity_type: str, entity_id: str, external_event_id: str | None
) -> None:
    """Mirror the ledger link onto the entity row, for linkable types only."""
    if entity_type not in LINKABLE_ENTITY_TYPES:
        return
    entity = session.get(ENTITY_TABLES[entity_type], entity_id)
    if entity is None:
        return
    entity.external_event_id = external_event_id
    entity.source = GOOGLE_PROVIDER if external_event_id else MANUAL_SOURCE


def _write_schedule(session: Session, entity_id: str, schedule: tuple[time, time]) -> None:
    """Store the times a daily action was pushed with."""
    action = session.get(DailyActionRow, entity_id)
    if action is None:
        return
    action.scheduled_start_time, action.scheduled_end_time = schedule


class SyncRecordStore:
    """CRUD over ``sync_records``.

    Every method is one transaction; all raise ``PersistenceError`` when
    the database fails.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    def get(self, user_id: str, entity_type: str, entity_id: str) -> SyncRecord | None:
        """Return the record for an entity, or ``None`` if it was never linked."""
        with self._db.transaction() as session:
            row = _find_row(session, user_id, entity_type, entity_id)
            return _to_model(row) if row is not None else None

    def upsert(
        self,
        user_id: str,
        entity_type: str,
        entity_id: str,
        external_event_id: str,
        synced_at: datetime,
        calendar_id: str = PRIMARY_CALENDAR,
        schedule: tuple[time, time] | None = None,
    ) -> SyncRecord:
        """Insert or update the record for an entity and mark it synced.

        Args:
            user_id: Owner of the entity.
            entity_type: Ledger entity type.
            entity_id: Local entity id.
            external_event_id: Provider event id the entity now maps to.
            synced_at: Timestamp stored as ``last_synced_at``.
            calendar_id: Provider calendar holding the event.
            schedule: Start and end times the event was rendered with.  For
                a daily action they are stored on the entity in the same
                transaction, so an unscheduled action keeps the slot it was
                pushed into and the next pull sees no change.

        Returns:
            The stored record.
        """
        with self._db.transaction() as session:
            row = _find_row(session, user_id, entity_type, entity_id)
            if row is None:
                row = SyncRecordRow(
                    user_id=user_id, entity_type=entity_type, entity_id=entity_id
                )
                session.add(row)
            row.external_event_id = external_event_id
            row.external_calendar_id = calendar_id
            row.sync_status = "synced"
            row.last_synced_at = synced_at
            _write_entity_link(session, entity_type, entity_id, external_event_id)
            if schedule is not None and entity_type == "daily_action":
                _write_schedule(session, entity_id, schedule)
            session.flush()
            record = _to_model(row)
        logger.debug("Linked %s %s -> event %s", entity_type, entity_id, external_event_id)
        return record

    def list_linked(
        self, user_id: str, entity_types: Iterable[str] = LINKABLE_ENTITY_TYPES
    ) -> list[SyncRecord]:
        """Records with a provider event id, for the given entity types."""
        stmt = (
            select(SyncRecordRow)
            .where(
                SyncRecordRow.user_id == user_id,
                SyncRecordRow.entity_type.in_(list(entity_types)),
                SyncRecordRow.external_event_id.is_not(None),
            )
            .order_by(SyncRecordRow.entity_type, SyncRecordRow.entity_id)
        )
        with self._db.transaction() as session:
            return [_to_model(row) for row in session.execute(stmt).scalars()]

    def adopt_entity_links(self, user_id: str) -> int:
        """Create ledger rows for entities linked outside of push.

        Daily actions and time blocks imported from the calendar carry an
        ``external_event_id`` but have no ledger row yet.  Each one gets a
        ``needs_check`` record pointing at that event, so pull reconciles it
        like any other link and its sweep marks it synced.  Entities that
        already have a record are left alone.

        Returns:
            Number of records created.
        """
        adopted = 0
        with self._db.transaction() as session:
            for entity_type in sorted(LINKABLE_ENTITY_TYPES):
                row_cls = ENTITY_TABLES[entity_type]
                recorded = select(SyncRecordRow.entity_id).where(
                    SyncRecordRow.user_id == user_id, SyncRecordRow.entity_type == entity_type
                )
                stmt = select(row_cls).where(
                    row_cls.user_id == user_id,
                    row_cls.external_event_id.is_not(None),
                    row_cls.id.not_in(recorded),
                )
                for entity in session.execute(stmt).scalars().all():
                    session.add(
                        SyncRecordRow(
                            user_id=user_id,
                            entity_type=entity_type,
                            entity_id=entity.id,
                            external_event_id=entity.external_event_id,
                            sync_status="needs_check",
                        )
                    )
                    adopted += 1
        if adopted:
            logger.info("Adopted %d imported link(s) into the ledger for user %s", adopted, user_id)
        return adopted

    def unlink(self, user_id: str, entity_type: str, entity_id: str) -> bool:
        """Delete the record and clear the entity's cached link.

        Returns:
            ``True`` if a record existed.
        """
        with self._db.transaction() as session:
            row = _find_row(session, user_id, entity_type, entity_id)
            _write_entity_link(session, entity_type, entity_id, None)
            if row is None:
                return False
            session.delete(row)
        logger.debug("Unlinked %s %s", entity_type, entity_id)
        return True

    def touch(
        self, user_id: str, entity_type: str, entity_id: str, synced_at: datetime
    ) -> None:
        """Set ``last_synced_at`` and mark the record synced."""
        with self._db.transaction() as session:
            row = _find_row(session, user_id, entity_type, entity_id)
            if row is not None:
                row.last_synced_at = synced_at
                row.sync_status = "synced"

    def mark_needs_check(self, user_id: str) -> int:
        """Flag every linked record of *user_id* for re-examination.

        Returns:
            Number of records flagged.
        """
        stmt = (
            update(SyncRecordRow)
            .where(
                SyncRecordRow.user_id == user_id,
                SyncRecordRow.external_event_id.is_not(None),
            )
            .values(sync_status="needs_check")
        )
        with self._db.transaction() as session:
            count = session.execute(stmt).rowcount
        logger.info("Marked %d record(s) needs_check for user %s", count, user_id)
        return count

    def count_linked(self, user_id: str) -> int:
        """Number of records of *user_id* that point at a provider event."""
        stmt = select(func.count()).select_from(SyncRecordRow).where(
            SyncRecordRow.user_id == user_id, SyncRecordRow.external_event_id.is_not(None)
        )
        with self._db.transaction() as session:
            return session.execute(stmt).scalar_one()

    def count_needs_check(self, user_id: str) -> int:
        """Number of records of *user_id* waiting for the next pull."""
        stmt = select(func.count()).select_from(SyncRecordRow).where(
            SyncRecordRow.user_id == user_id, SyncRecordRow.sync_status == "needs_check"
        )
        with self._db.transaction() as session:
            return session.execute(stmt).scalar_one()

    def sweep_needs_check(self, user_id: str, synced_at: datetime) -> int:
        """Mark every ``needs_check`` record of *user_id* synced.

        Returns:
            Number of records swept.
        """
        stmt = (
            update(SyncRecordRow)
            .where(
                SyncRecordRow.user_id == user_id,
                SyncRecordRow.sync_status == "needs_check",
            )
            .values(sync_status="synced", last_synced_at=synced_at)
        )
        with self._db.transaction() as session:
            return session.execute(stmt).rowcount
