"""Exceptions for Google Calendar API operations.

Defines a hierarchy of calendar-specific exceptions and the
``@translate_http_errors`` decorator that converts ``googleapiclient``
and transport failures into them.  Nothing is retried: a failed call is
reported once and the sync engines record it against the entity.

Exception hierarchy::

    CalendarAPIError           (base for all Calendar API errors)
    +-- CalendarAuthError      (HTTP 401 / 403 on an event call)
    +-- CalendarRateLimitError (HTTP 429 rate-limit responses)
    +-- CalendarNotFoundError  (HTTP 404 / 410, event is gone)
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httplib2
from google.auth import exceptions as google_auth_exceptions
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class CalendarAPIError(Exception):
    """Base exception for Google Calendar API errors.

    Attributes:
        status_code: HTTP status code from the API, or ``None`` if the
            error did not originate from an HTTP response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CalendarAuthError(CalendarAPIError):
    """The access token was rejected on an event call (HTTP 401)."""

    def __init__(self, message: str = "Calendar authentication failed", status_code: int = 401):
        super().__init__(message, status_code=status_code)


class CalendarRateLimitError(CalendarAPIError):
    """Raised when the Calendar API returns HTTP 429 (rate limit exceeded)."""

    def __init__(self, message: str = "Calendar API rate limit exceeded") -> None:
        super().__init__(message, status_code=429)


class CalendarNotFoundError(CalendarAPIError):
    """The event no longer exists (HTTP 404, or 410 for a purged event).

    Pull treats this as the provider-side deletion signal.
    """

    def __init__(self, message: str = "Calendar resource not found", status_code: int = 404):
        super().__init__(message, status_code=status_code)


def _classify_http_error(error: HttpError) -> CalendarAPIError:
    """Map an ``HttpError`` to the appropriate calendar exception.

    Args:
        error: The ``googleapiclient.errors.HttpError`` to classify.

    Returns:
        A :class:`CalendarAPIError` subclass matching the HTTP status code.
    """
    status = error.resp.status

    if status in (404, 410):
        return CalendarNotFoundError(str(error), status_code=status)
    if status == 429:
        return CalendarRateLimitError(str(error))
    if status in (401, 403):
        return CalendarAuthError(str(error), status_code=status)
    return CalendarAPIError(str(error), status_code=status)


def translate_http_errors(func: F) -> F:
    """Decorator that converts provider failures into :class:`CalendarAPIError`.

    - ``HttpError`` is classified by status code (see
      :func:`_classify_http_error`).
    - A rejected access token that the transport tries and fails to
      refresh (``google.auth.exceptions.RefreshError``) becomes a
      :class:`CalendarAuthError`.  Clients are built from a bare access
      token, so any 401 ends here.
    - Network failures (``OSError``, ``TimeoutError``,
      ``httplib2.HttpLib2Error``) become a status-less
      :class:`CalendarAPIError`.

    The original exception is chained as ``__cause__``.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except HttpError as exc:
            cal_error = _classify_http_error(exc)
            if isinstance(cal_error, CalendarNotFoundError):
                logger.info("Event not found (HTTP %s)", cal_error.status_code)
            else:
                logger.warning("Calendar API error (HTTP %s): %s", cal_error.status_code, exc)
            raise cal_error from exc
        except google_auth_exceptions.RefreshError as exc:
            logger.warning("Calendar API rejected the access token: %s", exc)
            raise CalendarAuthError(f"Access token rejected: {exc}") from exc
        except (OSError, TimeoutError, httplib2.HttpLib2Error) as exc:
            logger.warning("Network error calling Calendar API: %s", exc)
            raise CalendarAPIError(f"Network error: {exc}") from exc

    return wrapper  # type: ignore[return-value]
