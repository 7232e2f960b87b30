"""Error taxonomy for the sync engines.

Only :class:`AuthError` is fatal to a run.  The others are raised by the
stores and the event mapper and caught per entity by the engines, which
record them in the run result and move on to the next entity.  Provider
HTTP failures live in :mod:`goal_sync.calendar.exceptions`.
"""

from __future__ import annotations

from typing import Literal

AuthFailure = Literal["not_connected", "refresh_failed", "missing_config"]


class SyncError(Exception):
    """Base class for goal-sync errors."""


class AuthError(SyncError):
    """The user's calendar credentials cannot produce a valid access token.

    Raised before any per-entity work begins and never retried within the
    run.

    Attributes:
        reason: ``"not_connected"`` (no active credential or no refresh
            token), ``"refresh_failed"`` (token endpoint rejected the
            refresh or was unreachable) or ``"missing_config"`` (OAuth
            client id/secret not configured).
    """

    def __init__(self, message: str, reason: AuthFailure = "refresh_failed") -> None:
        super().__init__(message)
        self.reason = reason


class ParseError(SyncError):
    """A provider payload could not be interpreted (bad date/time, no id)."""


class PersistenceError(SyncError):
    """A write or read against the local store failed."""
