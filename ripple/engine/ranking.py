"""
ripple.engine.ranking — Deterministic Dense Ranking
====================================================

Ordering: ``total_points`` descending, then ``last_activity`` ascending
(earlier sustained achievement first; never-active participants last),
then ``id`` ascending.  Every position ``1..N`` is used exactly once.

The SQL query in :mod:`ripple.services.leaderboard_service` and
:func:`rank_key` here implement the same ordering.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from ripple.engine.ledger import StatsSnapshot
from ripple.engine.streaks import as_utc

__all__ = ["LeaderboardEntry", "assign_ranks", "rank_key", "rank_stats"]


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    """One ranked row — valid only for the ranking window it came from."""

    user_id: str
    rank: int
    total_points: int
    volunteer_hours: Decimal
    completed_events: int
    level: int = 1
    display_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "rank": self.rank,
            "total_points": self.total_points,
            "volunteer_hours": str(self.volunteer_hours),
            "completed_events": self.completed_events,
            "level": self.level,
            "display_name": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LeaderboardEntry:
        return cls(
            user_id=data["user_id"],
            rank=int(data["rank"]),
            total_points=int(data["total_points"]),
            volunteer_hours=Decimal(data["volunteer_hours"]),
            completed_events=int(data["completed_events"]),
            level=int(data.get("level", 1)),
            display_name=data.get("display_name"),
        )


def rank_key(stats: StatsSnapshot) -> tuple[int, bool, datetime | None, str]:
    """Sort key implementing the leaderboard ordering."""
    never_active = stats.last_activity is None
    last = as_utc(stats.last_activity) if stats.last_activity else None
    # ``never_active`` precedes the timestamp so None is never compared.
    return (-stats.total_points, never_active, last, stats.id)


def assign_ranks(ordered: Iterable[StatsSnapshot]) -> list[LeaderboardEntry]:
    """Number an already-ordered sequence ``1..N``."""
    return [
        LeaderboardEntry(
            user_id=s.id,
            rank=position,
            total_points=s.total_points,
            volunteer_hours=s.volunteer_hours,
            completed_events=s.completed_events,
            level=s.level,
            display_name=s.display_name,
        )
        for position, s in enumerate(ordered, start=1)
    ]


def rank_stats(
    population: Iterable[StatsSnapshot], limit: int | None = None
) -> list[LeaderboardEntry]:
    """Rank an in-memory population and return the top *limit* entries."""
    ordered = sorted(population, key=rank_key)
    if limit is not None:
        ordered = ordered[:limit]
    return assign_ranks(ordered)
