"""Engine and session handling for the goal-sync database.

All stores share one :class:`Database`.  Each store operation runs inside
:meth:`Database.transaction`, so a single read-modify-write of a ledger row
commits atomically or not at all.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from goal_sync.db.schema import Base
from goal_sync.exceptions import PersistenceError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``timezone=True`` columns;
    those are stored in UTC, so they are tagged rather than converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """SQLAlchemy engine wrapper shared by the stores."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        """Initialize the database.

        Args:
            url: SQLAlchemy database URL (e.g. ``sqlite:///goal_sync.db``).
            echo: Log every SQL statement (debugging only).
        """
        self.url = url
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self._engine: Engine = create_engine(url, connect_args=connect_args, echo=echo)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self._engine)
        logger.info("Database schema ready (%s)", self._engine.url.render_as_string())

    def close(self) -> None:
        """Dispose of the connection pool."""
        self._engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error.

        Raises:
            PersistenceError: If the database raised ``SQLAlchemyError``.
        """
        session = Session(self._engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Database error: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
