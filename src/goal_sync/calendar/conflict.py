"""Conflict resolution between a local entity and its provider event."""

from __future__ import annotations

from typing import Literal

from goal_sync.models.sync import ConflictPolicy

Resolution = Literal["keep_local", "keep_provider"]


def resolve(policy: ConflictPolicy, local_changed: bool = True) -> Resolution:
    """Decide which side wins when pull finds a diff.

    ``ask`` has no interactive flow behind it and behaves exactly like
    ``calendar_wins``.

    Args:
        policy: The user's conflict policy.
        local_changed: Whether the provider copy differs from the local
            entity.  Without a diff there is nothing to apply.

    Returns:
        ``"keep_local"`` or ``"keep_provider"``.

    Raises:
        ValueError: For an unknown policy.
    """
    if not local_changed:
        return "keep_local"
    if policy == "app_wins":
        return "keep_local"
    if policy in ("calendar_wins", "ask"):
        return "keep_provider"
    raise ValueError(f"Unknown conflict policy: {policy!r}")
