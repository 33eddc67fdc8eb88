"""
ripple.constants — Shared Presentation Constants
=================================================

Single source of truth for how badges and top ranks are shown.
Import from here instead of duplicating in routes and snapshot exports.
"""

from __future__ import annotations

from ripple.engine.badges import BadgeCategory

# ---------------------------------------------------------------------------
# Badge catalog (display metadata only — earning rules live in RuleTables)
# ---------------------------------------------------------------------------
BADGE_CATALOG: dict[str, dict[str, str]] = {
    "first-event": {
        "name": "First Step",
        "icon": "\U0001f3af",      # 🎯
        "category": BadgeCategory.MILESTONE,
    },
    "volunteer-10": {
        "name": "Dedicated Helper",
        "icon": "\U0001f31f",      # 🌟
        "category": BadgeCategory.VOLUNTEER_HOURS,
    },
    "volunteer-50": {
        "name": "Community Hero",
        "icon": "\U0001f3c6",      # 🏆
        "category": BadgeCategory.VOLUNTEER_HOURS,
    },
    "volunteer-100": {
        "name": "Legendary Volunteer",
        "icon": "\U0001f451",      # 👑
        "category": BadgeCategory.VOLUNTEER_HOURS,
    },
    "streak-7": {
        "name": "Week Warrior",
        "icon": "\U0001f525",      # 🔥
        "category": BadgeCategory.STREAK,
    },
    "streak-30": {
        "name": "Month Master",
        "icon": "\u26a1",      # ⚡
        "category": BadgeCategory.STREAK,
    },
}

RANK_MEDALS: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


def describe_badge(badge_id: str) -> dict[str, str]:
    """Return display metadata for *badge_id*.

    Badges introduced through custom rules have no catalog entry; they fall
    back to their id as the name.
    """
    meta = BADGE_CATALOG.get(badge_id)
    if meta is None:
        return {"id": badge_id, "name": badge_id, "icon": "", "category": ""}
    return {"id": badge_id, **{k: str(v) for k, v in meta.items()}}


def medal_for_rank(rank: int) -> str | None:
    """Medal emoji for podium ranks 1–3."""
    if 1 <= rank <= len(RANK_MEDALS):
        return RANK_MEDALS[rank - 1]
    return None
