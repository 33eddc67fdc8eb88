"""
ripple.engine.ledger — Pure Stats Update
=========================================

The shared update logic for every event kind, written once:

    StatsSnapshot + ActivityEvent → points / hours / events → level
                                  → streak → badges → StatsSnapshot

No database I/O.  :mod:`ripple.services.stats_service` wraps this in a
transaction; :func:`replay` reuses it to rebuild stats from the activity log.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from ripple.engine.badges import derive_badges
from ripple.engine.events import ActivityEvent, EventKind
from ripple.engine.reward import calculate_points, hours_for_event, level_for_points
from ripple.engine.rules import DEFAULT_RULES, RuleTables
from ripple.engine.streaks import advance_streak, as_utc

__all__ = ["LedgerResult", "StatsSnapshot", "apply_activity", "decay_streak", "replay"]


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Immutable view of one participant's stats."""

    id: str
    total_points: int = 0
    volunteer_hours: Decimal = Decimal(0)
    completed_events: int = 0
    badges: tuple[str, ...] = ()
    level: int = 1
    streak: int = 0
    last_activity: datetime | None = None
    created_at: datetime | None = None
    display_name: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> StatsSnapshot:
        """Build from a :class:`ripple.database.models.Participant` row."""
        return cls(
            id=row.id,
            total_points=row.total_points,
            volunteer_hours=Decimal(row.volunteer_hours),
            completed_events=row.completed_events,
            badges=tuple(row.badges or ()),
            level=row.level,
            streak=row.streak,
            last_activity=as_utc(row.last_activity) if row.last_activity else None,
            created_at=as_utc(row.created_at) if row.created_at else None,
            display_name=row.display_name,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form, stored as ``activity_log.stats_after``."""
        return {
            "id": self.id,
            "total_points": self.total_points,
            "volunteer_hours": str(self.volunteer_hours),
            "completed_events": self.completed_events,
            "badges": list(self.badges),
            "level": self.level,
            "streak": self.streak,
            "last_activity": self.last_activity.isoformat() if self.last_activity else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "display_name": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatsSnapshot:
        def _dt(value: str | None) -> datetime | None:
            return as_utc(datetime.fromisoformat(value)) if value else None

        return cls(
            id=data["id"],
            total_points=int(data["total_points"]),
            volunteer_hours=Decimal(data["volunteer_hours"]),
            completed_events=int(data["completed_events"]),
            badges=tuple(data.get("badges") or ()),
            level=int(data["level"]),
            streak=int(data["streak"]),
            last_activity=_dt(data.get("last_activity")),
            created_at=_dt(data.get("created_at")),
            display_name=data.get("display_name"),
        )


@dataclass(frozen=True, slots=True)
class LedgerResult:
    """Output of :func:`apply_activity`."""

    stats: StatsSnapshot
    points_delta: int
    hours_delta: Decimal
    new_badges: tuple[str, ...] = field(default_factory=tuple)
    leveled_up: bool = False


def apply_activity(
    stats: StatsSnapshot,
    event: ActivityEvent,
    rules: RuleTables = DEFAULT_RULES,
) -> LedgerResult:
    """Apply one validated event to *stats* and return the updated snapshot.

    Raises :class:`ripple.errors.InvalidPayload` for malformed events.
    """
    points_delta = calculate_points(event, rules)
    hours_delta = hours_for_event(event)
    events_delta = 1 if event.kind is EventKind.EVENT_COMPLETION else 0

    total_points = stats.total_points + points_delta
    streak = advance_streak(stats.last_activity, stats.streak, event.occurred_at)

    updated = replace(
        stats,
        total_points=total_points,
        volunteer_hours=stats.volunteer_hours + hours_delta,
        completed_events=stats.completed_events + events_delta,
        level=level_for_points(total_points, rules),
        streak=streak.streak,
        last_activity=streak.last_activity,
    )
    # Badges last: they read the fully updated counters and streak.
    badges = tuple(derive_badges(updated, rules))
    updated = replace(updated, badges=badges)

    return LedgerResult(
        stats=updated,
        points_delta=points_delta,
        hours_delta=hours_delta,
        new_badges=tuple(b for b in badges if b not in stats.badges),
        leveled_up=updated.level > stats.level,
    )


def decay_streak(
    stats: StatsSnapshot, rules: RuleTables = DEFAULT_RULES
) -> StatsSnapshot:
    """Zero the streak (time-driven decay) and re-derive badges to match."""
    decayed = replace(stats, streak=0)
    return replace(decayed, badges=tuple(derive_badges(decayed, rules)))


def replay(
    base: StatsSnapshot,
    events: Iterable[ActivityEvent],
    rules: RuleTables = DEFAULT_RULES,
) -> StatsSnapshot:
    """Rebuild stats by applying *events* in order to a zeroed *base*."""
    stats = replace(
        base,
        total_points=0,
        volunteer_hours=Decimal(0),
        completed_events=0,
        badges=(),
        level=level_for_points(0, rules),
        streak=0,
        last_activity=None,
    )
    for event in events:
        stats = apply_activity(stats, event, rules).stats
    return stats
