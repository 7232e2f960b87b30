"""Data models for push and pull run results.

- :class:`PushResult` -- outcome of pushing local entities to Google
  Calendar, one :class:`PushItemResult` per entity attempted.
- :class:`PullResult` -- outcome of reconciling linked entities from
  Google Calendar, one :class:`PullDetail` per entity examined.

Both render to the JSON response shape returned by the invocation
surface via ``to_response()``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

PullAction = Literal["updated", "deleted", "skipped", "error"]


@dataclass
class PushItemResult:
    """Outcome of pushing a single entity.

    Attributes:
        entity_type: Ledger entity type (e.g. ``"weekly_target"``).
        entity_id: Local entity id.
        success: Whether the provider accepted the event.
        external_event_id: Provider event id, when one was created or
            updated.
        error: Failure description when ``success`` is ``False``.
    """

    entity_type: str
    entity_id: str
    success: bool
    external_event_id: str | None = None
    error: str | None = None


@dataclass
class PushResult:
    """Aggregated result of a push run.

    Attributes:
        results: Per-entity outcomes in processing order.
        cancelled: ``True`` when the run stopped early on cancellation;
            counts then cover only the entities processed so far.
    """

    results: list[PushItemResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def synced(self) -> int:
        """Number of entities whose event was created or updated."""
        return sum(1 for item in self.results if item.success)

    @property
    def failed(self) -> int:
        """Number of entities that failed to push."""
        return sum(1 for item in self.results if not item.success)

    @property
    def total(self) -> int:
        """Number of entities attempted."""
        return len(self.results)

    def to_response(self) -> dict[str, Any]:
        """Render the JSON response body for this run."""
        return {
            "success": True,
            "synced": self.synced,
            "failed": self.failed,
            "total": self.total,
            "cancelled": self.cancelled,
            "results": [asdict(item) for item in self.results],
            "message": f"Synced {self.synced} of {self.total} items to Google Calendar",
        }


@dataclass
class PullDetail:
    """What pull did with one linked entity.

    ``old_date`` / ``new_date`` are ISO dates, set when a date diff was
    applied or overridden by the conflict policy.
    """

    entity_type: str
    entity_id: str
    action: PullAction
    reason: str | None = None
    old_date: str | None = None
    new_date: str | None = None


@dataclass
class PullResult:
    """Aggregated result of a pull run.

    Attributes:
        synced: Entities updated from the provider's copy.
        deleted: Entities unlinked because the provider event was deleted
            or cancelled.
        conflicts: Diffs discarded because the conflict policy kept the
            local copy.
        errors: Human-readable per-entity failures.
        details: One entry per entity examined.
        cancelled: ``True`` when the run stopped early on cancellation.
    """

    synced: int = 0
    deleted: int = 0
    conflicts: int = 0
    errors: list[str] = field(default_factory=list)
    details: list[PullDetail] = field(default_factory=list)
    cancelled: bool = False

    @property
    def has_errors(self) -> bool:
        """Whether any entity failed during the run."""
        return len(self.errors) > 0

    def to_response(self) -> dict[str, Any]:
        """Render the JSON response body for this run."""
        return {
            "success": True,
            "synced": self.synced,
            "deleted": self.deleted,
            "conflicts": self.conflicts,
            "cancelled": self.cancelled,
            "errors": list(self.errors),
            "details": [asdict(detail) for detail in self.details],
            "message": (
                f"Updated {self.synced}, unlinked {self.deleted}, "
                f"{self.conflicts} conflict(s), {len(self.errors)} error(s)"
            ),
        }
