"""Unit tests for console report rendering.

Tests cover: push report lines and summary, push auth failure hint, pull
markers and date arrows, empty runs, cancellation note, status counts and
connect hint, and JSON output.
"""

from __future__ import annotations

import json

import pytest

from goal_sync.output import (
    format_json,
    format_pull_response,
    format_push_response,
    format_status_response,
    print_report,
)


class TestFormatPushResponse:
    """Tests for ``format_push_response``."""

    def test_lists_each_item_and_summary(self) -> None:
        payload = {
            "success": True,
            "synced": 1,
            "failed": 1,
            "total": 2,
            "cancelled": False,
            "message": "Synced 1 of 2 items to Google Calendar",
            "results": [
                {
                    "entity_type": "weekly_target",
                    "entity_id": "w1",
                    "success": True,
                    "external_event_id": "evt-1",
                    "error": None,
                },
                {
                    "entity_type": "daily_action",
                    "entity_id": "d1",
                    "success": False,
                    "external_event_id": None,
                    "error": "HTTP 500",
                },
            ],
        }

        text = format_push_response(payload)

        assert "GOAL SYNC: PUSH TO GOOGLE CALENDAR" in text
        assert "[SYNCED] weekly_target w1 -> evt-1" in text
        assert "[FAILED] daily_action d1: HTTP 500" in text
        assert "Synced 1 of 2 items to Google Calendar" in text
        assert "Failed: 1" in text
        assert "cancelled" not in text

    def test_empty_run(self) -> None:
        payload = {"success": True, "results": [], "message": "Synced 0 of 0 items to Google Calendar"}

        assert "Nothing to push." in format_push_response(payload)

    def test_cancelled_run_is_noted(self) -> None:
        payload = {"success": True, "results": [], "message": "m", "cancelled": True}

        assert "Run was cancelled" in format_push_response(payload)

    def test_auth_failure_shows_reconnect_hint(self) -> None:
        payload = {
            "success": False,
            "error": "Google Calendar not connected",
            "reason": "not_connected",
            "needs_auth": True,
        }

        text = format_push_response(payload)

        assert "[ERROR] Google Calendar not connected" in text
        assert "goal-sync connect" in text


class TestFormatPullResponse:
    """Tests for ``format_pull_response``."""

    def test_markers_and_dates(self) -> None:
        payload = {
            "success": True,
            "message": "Updated 1, unlinked 1, 0 conflict(s), 0 error(s)",
            "details": [
                {
                    "entity_type": "daily_action",
                    "entity_id": "d1",
                    "action": "updated",
                    "reason": "updated from provider",
                    "old_date": "2024-01-15",
                    "new_date": "2024-01-16",
                },
                {
                    "entity_type": "time_block",
                    "entity_id": "t1",
                    "action": "deleted",
                    "reason": "deleted upstream",
                    "old_date": None,
                    "new_date": None,
                },
            ],
        }

        text = format_pull_response(payload)

        assert "[UPDATED] daily_action d1: updated from provider (2024-01-15 -> 2024-01-16)" in text
        assert "[UNLINKED] time_block t1: deleted upstream" in text
        assert "Updated 1, unlinked 1" in text

    def test_no_linked_items(self) -> None:
        payload = {"success": True, "details": [], "message": "m"}

        assert "No linked items." in format_pull_response(payload)

    def test_failure_without_auth_has_no_hint(self) -> None:
        payload = {"success": False, "error": "Database unavailable"}

        text = format_pull_response(payload)

        assert "[ERROR] Database unavailable" in text
        assert "goal-sync connect" not in text


class TestFormatStatusResponse:
    """Tests for ``format_status_response``."""

    def test_connected_counts(self) -> None:
        payload = {
            "success": True,
            "connected": True,
            "linked": 3,
            "needs_check": 2,
            "last_synced_at": "2024-01-15T12:00:00+00:00",
        }

        text = format_status_response(payload)

        assert "Connected:       yes" in text
        assert "Linked items:    3" in text
        assert "Needing check:   2" in text
        assert "Last full push:  2024-01-15T12:00:00+00:00" in text
        assert "goal-sync connect" not in text

    def test_not_connected_shows_hint(self) -> None:
        payload = {
            "success": True,
            "connected": False,
            "linked": 0,
            "needs_check": 0,
            "last_synced_at": None,
        }

        text = format_status_response(payload)

        assert "Connected:       no" in text
        assert "Last full push:  never" in text
        assert "Connect Google Calendar with `goal-sync connect`." in text

    def test_failure(self) -> None:
        text = format_status_response({"success": False, "error": "Database unavailable"})

        assert "[ERROR] Database unavailable" in text
        assert "Linked items" not in text


class TestJsonAndPrint:
    """Tests for ``format_json`` and ``print_report``."""

    def test_format_json_round_trips(self) -> None:
        payload = {"success": True, "synced": 2}

        assert json.loads(format_json(payload)) == payload

    def test_print_report_writes_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        print_report("hello")

        assert capsys.readouterr().out == "hello\n"
