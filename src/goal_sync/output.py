"""Console output for CLI sync runs.

Renders the JSON response bodies produced by
:class:`~goal_sync.calendar.sync.SyncService` as a readable report: a
banner, one line per entity, and a summary.  ``--json`` bypasses this and
prints the body itself via :func:`format_json`.
"""

from __future__ import annotations

import json
import sys
from typing import Any

_BANNER_WIDTH = 60
_SEPARATOR = "=" * _BANNER_WIDTH

_PULL_MARKERS = {
    "updated": "[UPDATED]",
    "deleted": "[UNLINKED]",
    "skipped": "[SKIPPED]",
    "error": "[ERROR]",
}


def format_json(payload: dict[str, Any]) -> str:
    """Pretty-print a response body as JSON."""
    return json.dumps(payload, indent=2, sort_keys=True, default=str)


def format_push_response(payload: dict[str, Any]) -> str:
    """Render a push response body.

    Args:
        payload: Body returned by ``SyncService.push_for_user``.

    Returns:
        A multi-line string ready for console display.
    """
    lines = _banner("GOAL SYNC: PUSH TO GOOGLE CALENDAR")
    if not payload.get("success"):
        _append_failure(lines, payload)
        lines.append(_SEPARATOR)
        return "\n".join(lines)

    lines.append("")
    results = payload.get("results", [])
    if not results:
        lines.append("  Nothing to push.")
    for item in results:
        label = f"{item['entity_type']} {item['entity_id']}"
        if item.get("success"):
            lines.append(f"  [SYNCED] {label} -> {item.get('external_event_id')}")
        else:
            lines.append(f"  [FAILED] {label}: {item.get('error')}")

    lines.append("")
    lines.append("--- Summary ---")
    lines.append(f"  {payload['message']}")
    lines.append(f"  Failed: {payload.get('failed', 0)}")
    if payload.get("cancelled"):
        lines.append("  Run was cancelled before all items were processed.")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def format_pull_response(payload: dict[str, Any]) -> str:
    """Render a pull response body.

    Args:
        payload: Body returned by ``SyncService.pull_for_user``.

    Returns:
        A multi-line string ready for console display.
    """
    lines = _banner("GOAL SYNC: PULL FROM GOOGLE CALENDAR")
    if not payload.get("success"):
        _append_failure(lines, payload)
        lines.append(_SEPARATOR)
        return "\n".join(lines)

    lines.append("")
    details = payload.get("details", [])
    if not details:
        lines.append("  No linked items.")
    for detail in details:
        marker = _PULL_MARKERS.get(detail["action"], f"[{detail['action'].upper()}]")
        line = f"  {marker} {detail['entity_type']} {detail['entity_id']}"
        if detail.get("reason"):
            line += f": {detail['reason']}"
        if detail.get("old_date") and detail.get("new_date"):
            line += f" ({detail['old_date']} -> {detail['new_date']})"
        lines.append(line)

    lines.append("")
    lines.append("--- Summary ---")
    lines.append(f"  {payload['message']}")
    if payload.get("cancelled"):
        lines.append("  Run was cancelled before all items were processed.")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def format_status_response(payload: dict[str, Any]) -> str:
    """Render a status response body from ``SyncService.status_for_user``."""
    lines = _banner("GOAL SYNC: STATUS")
    if not payload.get("success"):
        _append_failure(lines, payload)
        lines.append(_SEPARATOR)
        return "\n".join(lines)

    lines.append("")
    lines.append(f"  Connected:       {'yes' if payload.get('connected') else 'no'}")
    lines.append(f"  Linked items:    {payload.get('linked', 0)}")
    lines.append(f"  Needing check:   {payload.get('needs_check', 0)}")
    lines.append(f"  Last full push:  {payload.get('last_synced_at') or 'never'}")
    if not payload.get("connected"):
        lines.append("  Connect Google Calendar with `goal-sync connect`.")
    lines.append(_SEPARATOR)
    return "\n".join(lines)


def print_report(text: str) -> None:
    """Write a rendered report to stdout."""
    sys.stdout.write(text + "\n")


def _banner(title: str) -> list[str]:
    return [_SEPARATOR, f"  {title}", _SEPARATOR]


def _append_failure(lines: list[str], payload: dict[str, Any]) -> None:
    lines.append("")
    lines.append(f"  [ERROR] {payload.get('error', 'Sync failed')}")
    if payload.get("needs_auth"):
        lines.append("  Reconnect Google Calendar with `goal-sync connect`.")
