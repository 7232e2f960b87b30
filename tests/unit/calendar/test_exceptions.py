"""Tests for calendar exception classification.

Test matrix:

| Test | Scenario | Expected |
|---|---|---|
| test_status_mapping | 404/410/429/401/403/500 | matching subclass + status |
| test_success_passes_through | no error | return value unchanged |
| test_http_error_is_chained | HttpError 500 | __cause__ is the HttpError |
| test_network_error | OSError / HttpLib2Error | CalendarAPIError, no status |
| test_refresh_error | RefreshError from transport | CalendarAuthError 401 |
| test_called_once | any failure | wrapped function not retried |
| test_hierarchy | subclasses | all are CalendarAPIError |
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from httplib2 import Response

from goal_sync.calendar.exceptions import (
    CalendarAPIError,
    CalendarAuthError,
    CalendarNotFoundError,
    CalendarRateLimitError,
    translate_http_errors,
)


def _make_http_error(status: int) -> HttpError:
    """Create a ``googleapiclient.errors.HttpError`` with the given status code."""
    resp = Response({"status": str(status)})
    return HttpError(resp, b"simulated error")


class TestTranslateHttpErrors:
    """Tests for the ``@translate_http_errors`` decorator."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (404, CalendarNotFoundError),
            (410, CalendarNotFoundError),
            (429, CalendarRateLimitError),
            (401, CalendarAuthError),
            (403, CalendarAuthError),
            (500, CalendarAPIError),
        ],
    )
    def test_status_mapping(self, status: int, expected: type[CalendarAPIError]) -> None:
        @translate_http_errors
        def failing() -> None:
            raise _make_http_error(status)

        with pytest.raises(expected) as exc_info:
            failing()

        assert type(exc_info.value) is expected
        assert exc_info.value.status_code == status

    def test_success_passes_through(self) -> None:
        @translate_http_errors
        def ok() -> dict:
            return {"id": "evt-1"}

        assert ok() == {"id": "evt-1"}

    def test_http_error_is_chained(self) -> None:
        original = _make_http_error(500)

        @translate_http_errors
        def failing() -> None:
            raise original

        with pytest.raises(CalendarAPIError) as exc_info:
            failing()

        assert exc_info.value.__cause__ is original

    @pytest.mark.parametrize(
        "error",
        [OSError("connection reset"), TimeoutError("timed out"), httplib2.HttpLib2Error("bad")],
    )
    def test_network_error(self, error: Exception) -> None:
        @translate_http_errors
        def failing() -> None:
            raise error

        with pytest.raises(CalendarAPIError, match="Network error") as exc_info:
            failing()

        assert exc_info.value.status_code is None

    def test_refresh_error(self) -> None:
        @translate_http_errors
        def failing() -> None:
            raise RefreshError("The credentials do not contain the necessary fields")

        with pytest.raises(CalendarAuthError, match="Access token rejected") as exc_info:
            failing()

        assert exc_info.value.status_code == 401
        assert isinstance(exc_info.value.__cause__, RefreshError)

    def test_called_once(self) -> None:
        inner = MagicMock(side_effect=_make_http_error(429))
        wrapped = translate_http_errors(inner)

        with pytest.raises(CalendarRateLimitError):
            wrapped()

        inner.assert_called_once()


class TestHierarchy:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "cls", [CalendarAuthError, CalendarRateLimitError, CalendarNotFoundError]
    )
    def test_hierarchy(self, cls: type[CalendarAPIError]) -> None:
        assert issubclass(cls, CalendarAPIError)

    def test_default_status_codes(self) -> None:
        assert CalendarAuthError().status_code == 401
        assert CalendarRateLimitError().status_code == 429
        assert CalendarNotFoundError().status_code == 404
