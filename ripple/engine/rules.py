"""
ripple.engine.rules — Rule Tables
==================================

Point formulas, level thresholds and badge tiers as one immutable value.
Every pure calculator takes a :class:`RuleTables` argument (defaulting to
:data:`DEFAULT_RULES`) so tests and replays can run against any rule set
without touching global state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from typing import Any

__all__ = ["BadgeTier", "DEFAULT_RULES", "RuleTables", "rules_from_mapping"]


@dataclass(frozen=True, slots=True)
class BadgeTier:
    """One tier of a badge category: reaching ``threshold`` earns ``badge_id``."""

    threshold: Decimal
    badge_id: str


def _tiers(*pairs: tuple[int, str]) -> tuple[BadgeTier, ...]:
    return tuple(BadgeTier(Decimal(t), b) for t, b in pairs)


@dataclass(frozen=True, slots=True)
class RuleTables:
    """Immutable point/level/badge configuration.

    Tier tuples are ascending by threshold.  The badge deriver keeps only
    the highest satisfied tier of each category.
    """

    # Points
    base_event_points: int = 50
    hour_multiplier: int = 10
    donation_multiplier: Decimal = Decimal(1)
    referral_bonus: int = 25

    # Levels
    points_per_level: int = 100
    max_level: int | None = None

    # Badges
    first_event_threshold: int = 1
    first_event_badge: str = "first-event"
    volunteer_hour_tiers: tuple[BadgeTier, ...] = field(
        default_factory=lambda: _tiers(
            (10, "volunteer-10"), (50, "volunteer-50"), (100, "volunteer-100"),
        )
    )
    streak_tiers: tuple[BadgeTier, ...] = field(
        default_factory=lambda: _tiers((7, "streak-7"), (30, "streak-30"))
    )

    def __post_init__(self) -> None:
        if self.points_per_level <= 0:
            raise ValueError("points_per_level must be positive")
        if self.max_level is not None and self.max_level < 1:
            raise ValueError("max_level must be >= 1 when set")
        for name in ("volunteer_hour_tiers", "streak_tiers"):
            thresholds = [t.threshold for t in getattr(self, name)]
            if thresholds != sorted(thresholds):
                raise ValueError(f"{name} must be ascending by threshold")


DEFAULT_RULES = RuleTables()


def rules_from_mapping(raw: dict[str, Any] | None) -> RuleTables:
    """Build a :class:`RuleTables` from a YAML ``rules:`` section.

    Unknown keys raise ``KeyError`` so typos don't silently fall back to
    defaults.  Tier sections are mappings of ``threshold: badge_id``::

        rules:
          referral_bonus: 40
          streak_tiers: {3: streak-3, 7: streak-7}
    """
    if not raw:
        return DEFAULT_RULES

    known = {f.name for f in fields(RuleTables)}
    overrides: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            raise KeyError(f"Unknown rule key: {key!r}")
        if key in ("volunteer_hour_tiers", "streak_tiers"):
            value = tuple(
                BadgeTier(Decimal(str(t)), str(b))
                for t, b in sorted(value.items(), key=lambda kv: Decimal(str(kv[0])))
            )
        elif key == "donation_multiplier":
            value = Decimal(str(value))
        overrides[key] = value
    return replace(DEFAULT_RULES, **overrides)
