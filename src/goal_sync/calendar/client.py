"""Google Calendar events client used by push and pull.

Provides :class:`GoogleCalendarClient`, a thin wrapper around the
``googleapiclient`` service resource limited to what sync needs:

- **Create** -- insert an event on the primary calendar.
- **Update** -- replace an event by id (update-by-record push policy only).
- **Get** -- fetch a single event by id.

All API calls are wrapped with
:func:`~goal_sync.calendar.exceptions.translate_http_errors`, so callers
only ever see :class:`~goal_sync.calendar.exceptions.CalendarAPIError`
and its subclasses.  Calls are not retried.
"""

from __future__ import annotations

import logging
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from goal_sync.calendar.exceptions import CalendarAPIError, translate_http_errors
from goal_sync.models.sync import PRIMARY_CALENDAR, AccessToken

logger = logging.getLogger(__name__)

# Ids imported from the calendar view are stored with this prefix.
_IMPORTED_ID_PREFIX = "gcal_"


def normalize_event_id(event_id: str) -> str:
    """Strip the ``gcal_`` import prefix from a stored event id."""
    if event_id.startswith(_IMPORTED_ID_PREFIX):
        return event_id[len(_IMPORTED_ID_PREFIX) :]
    return event_id


class GoogleCalendarClient:
    """Client for the Google Calendar events the sync engines touch.

    Args:
        credentials: Google OAuth 2.0 credentials carrying the access token.
        service: Optional pre-built ``googleapiclient`` service resource.
            If ``None``, one is built from *credentials*.  Pass a mock here
            in tests.
        calendar_id: Calendar to operate on.
    """

    def __init__(
        self,
        credentials: Credentials | None,
        service: Any | None = None,
        calendar_id: str = PRIMARY_CALENDAR,
    ) -> None:
        self._credentials = credentials
        self._calendar_id = calendar_id
        self._service = service or build(
            "calendar", "v3", credentials=credentials, cache_discovery=False
        )

    @classmethod
    def for_token(cls, token: AccessToken, service: Any | None = None) -> GoogleCalendarClient:
        """Build a client authorized by a bare access token.

        The credentials carry no refresh token; refreshing is the job of
        :class:`~goal_sync.calendar.auth.TokenManager`.
        """
        credentials = Credentials(token=token.value)
        return cls(credentials, service=service)

    @translate_http_errors
    def create_event(self, body: dict[str, Any]) -> dict[str, Any]:
        """Insert a new event.

        Args:
            body: Google Calendar event resource.

        Returns:
            The created event resource.

        Raises:
            CalendarAPIError: If the API rejects the event or the response
                carries no event id.
        """
        result = (
            self._service.events().insert(calendarId=self._calendar_id, body=body).execute()
        )
        if not result or not result.get("id"):
            raise CalendarAPIError("Calendar API returned an event without an id")
        logger.info("Created event '%s' (id=%s)", body.get("summary", "?"), result["id"])
        return result

    @translate_http_errors
    def update_event(self, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        """Replace an existing event by its id.

        Raises:
            CalendarNotFoundError: If the event no longer exists.
        """
        event_id = normalize_event_id(event_id)
        result = (
            self._service.events()
            .update(calendarId=self._calendar_id, eventId=event_id, body=body)
            .execute()
        )
        if not result or not result.get("id"):
            raise CalendarAPIError("Calendar API returned an event without an id")
        logger.info("Updated event '%s' (id=%s)", body.get("summary", "?"), result["id"])
        return result

    @translate_http_errors
    def get_event(self, event_id: str) -> dict[str, Any]:
        """Fetch a single event by id.

        Cancelled events are returned as-is (``status == "cancelled"``);
        deciding what that means is up to the caller.

        Raises:
            CalendarNotFoundError: If the event does not exist.
        """
        event_id = normalize_event_id(event_id)
        result = self._service.events().get(calendarId=self._calendar_id, eventId=event_id).execute()
        logger.debug("Fetched event %s (status=%s)", event_id, result.get("status"))
        return result
