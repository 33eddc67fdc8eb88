"""
ripple.engine.badges — Badge Deriver
=====================================

Handler-registry evaluation of badge categories.  Each category maps to a
pure handler that receives the participant's *current* stats and returns
the single highest tier reached, or ``None``.

The full set is recomputed from scratch on every update, so a category
never holds two tiers and a corrective adjustment that lowers a stat also
drops the badge it no longer supports.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import TYPE_CHECKING

from ripple.engine.rules import DEFAULT_RULES, BadgeTier, RuleTables

if TYPE_CHECKING:
    from ripple.engine.ledger import StatsSnapshot

logger = logging.getLogger(__name__)

__all__ = ["BadgeCategory", "CATEGORY_HANDLERS", "badge_category", "derive_badges"]


class BadgeCategory(enum.StrEnum):
    """Badge families.  At most one badge per family is ever held."""
    MILESTONE = "milestone"
    VOLUNTEER_HOURS = "volunteer-hours"
    STREAK = "streak"


def _highest_tier(value: Decimal | int, tiers: Sequence[BadgeTier]) -> str | None:
    """Return the badge of the highest tier whose threshold *value* meets."""
    earned = None
    for tier in tiers:
        if value >= tier.threshold:
            earned = tier.badge_id
    return earned


# ---------------------------------------------------------------------------
# Category handlers — pure functions (stats, rules) → badge id | None
# ---------------------------------------------------------------------------
def _check_milestone(stats: StatsSnapshot, rules: RuleTables) -> str | None:
    if stats.completed_events >= rules.first_event_threshold:
        return rules.first_event_badge
    return None


def _check_volunteer_hours(stats: StatsSnapshot, rules: RuleTables) -> str | None:
    return _highest_tier(stats.volunteer_hours, rules.volunteer_hour_tiers)


def _check_streak(stats: StatsSnapshot, rules: RuleTables) -> str | None:
    return _highest_tier(stats.streak, rules.streak_tiers)


# Registry order is the order badges appear in the derived list.
CATEGORY_HANDLERS: dict[BadgeCategory, Callable[[StatsSnapshot, RuleTables], str | None]] = {
    BadgeCategory.MILESTONE: _check_milestone,
    BadgeCategory.VOLUNTEER_HOURS: _check_volunteer_hours,
    BadgeCategory.STREAK: _check_streak,
}


def derive_badges(
    stats: StatsSnapshot, rules: RuleTables = DEFAULT_RULES
) -> list[str]:
    """Return the complete badge list for *stats*.

    The result contains at most one badge per :class:`BadgeCategory`,
    ordered milestone → volunteer-hours → streak.
    """
    badges: list[str] = []
    for category, handler in CATEGORY_HANDLERS.items():
        badge = handler(stats, rules)
        if badge is not None:
            badges.append(badge)
            logger.debug("Badge %s satisfied (%s)", badge, category)
    return badges


def badge_category(badge_id: str, rules: RuleTables = DEFAULT_RULES) -> BadgeCategory | None:
    """Look up which category *badge_id* belongs to under *rules*."""
    if badge_id == rules.first_event_badge:
        return BadgeCategory.MILESTONE
    if any(t.badge_id == badge_id for t in rules.volunteer_hour_tiers):
        return BadgeCategory.VOLUNTEER_HOURS
    if any(t.badge_id == badge_id for t in rules.streak_tiers):
        return BadgeCategory.STREAK
    return None
