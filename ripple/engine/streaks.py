"""
ripple.engine.streaks — UTC-Day Streak Tracker
===============================================

A streak counts consecutive UTC calendar days with at least one activity
event.  Two transitions exist:

* **event-driven** (:func:`advance_streak`) — applied by the aggregator
  when a new event is processed;
* **time-driven** (:func:`is_streak_stale`) — the daily sweep decays the
  streak of anyone idle for longer than the grace window.

Stored timestamps may come back from the database without tzinfo (SQLite
drops it); :func:`as_utc` treats those as UTC.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

__all__ = [
    "StreakState",
    "StreakUpdate",
    "advance_streak",
    "as_utc",
    "classify_streak",
    "is_streak_stale",
    "utc_day",
]

DEFAULT_GRACE = timedelta(days=1)


class StreakState(enum.StrEnum):
    NO_ACTIVITY = "no_activity"    # never active, streak 0
    ACTIVE_TODAY = "active_today"  # an event already counted today
    BUILDING = "building"          # last active yesterday; today extends it
    LAPSED = "lapsed"              # gap > 1 day; next event restarts at 1


@dataclass(frozen=True, slots=True)
class StreakUpdate:
    """Result of applying one event to a ``(last_activity, streak)`` pair."""

    streak: int
    last_activity: datetime


def as_utc(moment: datetime) -> datetime:
    """Return *moment* as an aware UTC datetime (naive input is taken as UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def utc_day(moment: datetime) -> date:
    return as_utc(moment).date()


def advance_streak(
    last_activity: datetime | None, streak: int, occurred_at: datetime
) -> StreakUpdate:
    """Apply an event at *occurred_at* to the prior streak state.

    * same UTC day as ``last_activity`` → unchanged
    * exactly the previous UTC day      → ``streak + 1``
    * no prior activity, or a larger gap → ``1``

    An event dated *before* the ``last_activity`` day (late delivery) is
    already covered by a later day, so the streak is left alone and
    ``last_activity`` never moves backwards.
    """
    occurred_at = as_utc(occurred_at)
    if last_activity is None:
        return StreakUpdate(streak=1, last_activity=occurred_at)

    last_activity = as_utc(last_activity)
    gap_days = (occurred_at.date() - last_activity.date()).days

    if gap_days < 0:
        return StreakUpdate(streak=streak, last_activity=last_activity)
    if gap_days == 0:
        return StreakUpdate(
            streak=streak, last_activity=max(last_activity, occurred_at),
        )
    if gap_days == 1:
        return StreakUpdate(streak=streak + 1, last_activity=occurred_at)
    return StreakUpdate(streak=1, last_activity=occurred_at)


def classify_streak(
    last_activity: datetime | None, streak: int, now: datetime
) -> StreakState:
    """Describe where a participant sits in the streak state machine."""
    if last_activity is None:
        return StreakState.NO_ACTIVITY
    gap_days = (utc_day(now) - utc_day(last_activity)).days
    if gap_days <= 0:
        return StreakState.ACTIVE_TODAY
    if gap_days == 1 and streak > 0:
        return StreakState.BUILDING
    return StreakState.LAPSED


def is_streak_stale(
    last_activity: datetime | None,
    now: datetime,
    grace: timedelta = DEFAULT_GRACE,
) -> bool:
    """True when ``now - last_activity`` exceeds *grace* (sweep condition)."""
    if last_activity is None:
        return False
    return as_utc(now) - as_utc(last_activity) > grace
