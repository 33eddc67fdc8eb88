"""
ripple.api.routes.public — Read-only public endpoints
======================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Query

from ripple.api.deps import ConfigDep, EngineDep
from ripple.config import RippleConfig
from ripple.constants import describe_badge, medal_for_rank
from ripple.database.models import SnapshotKind
from ripple.engine.ledger import StatsSnapshot
from ripple.engine.reward import points_to_next_level
from ripple.engine.streaks import classify_streak
from ripple.services.leaderboard_service import MAX_LIMIT, count_participants, rank, rank_of
from ripple.services.snapshot_service import get_snapshot, list_snapshots
from ripple.services.stats_service import get_participant, list_activity

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _profile_dict(stats: StatsSnapshot, position: int, cfg: RippleConfig) -> dict:
    return {
        "id": stats.id,
        "display_name": stats.display_name,
        "total_points": stats.total_points,
        "volunteer_hours": str(stats.volunteer_hours),
        "completed_events": stats.completed_events,
        "level": stats.level,
        "points_to_next_level": points_to_next_level(stats.total_points, cfg.rules),
        "streak": stats.streak,
        "streak_state": classify_streak(
            stats.last_activity, stats.streak, datetime.now(UTC)
        ).value,
        "badges": [describe_badge(b) for b in stats.badges],
        "rank": position,
        "medal": medal_for_rank(position),
        "last_activity": stats.last_activity.isoformat() if stats.last_activity else None,
        "created_at": stats.created_at.isoformat() if stats.created_at else None,
    }


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    engine: EngineDep,
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
):
    """Current top-*limit* ranking."""
    entries = rank(engine, limit)
    return {
        "total": count_participants(engine),
        "limit": limit,
        "entries": [
            {**e.to_dict(), "medal": medal_for_rank(e.rank)} for e in entries
        ],
    }


# ---------------------------------------------------------------------------
# GET /participants/{user_id}
# ---------------------------------------------------------------------------
@router.get("/participants/{user_id}")
def get_participant_profile(user_id: str, engine: EngineDep, cfg: ConfigDep):
    stats = get_participant(engine, user_id)
    return _profile_dict(stats, rank_of(engine, user_id), cfg)


@router.get("/participants/{user_id}/activity")
def get_participant_activity(
    user_id: str,
    engine: EngineDep,
    limit: int = Query(50, ge=1, le=500),
):
    return {"user_id": user_id, "activity": list_activity(engine, user_id, limit)}


# ---------------------------------------------------------------------------
# GET /snapshots
# ---------------------------------------------------------------------------
@router.get("/snapshots")
def get_snapshots(
    engine: EngineDep,
    kind: SnapshotKind | None = None,
    limit: int = Query(20, ge=1, le=200),
):
    return {"snapshots": list_snapshots(engine, kind, limit)}


@router.get("/snapshots/{snapshot_id}")
def get_snapshot_detail(snapshot_id: int, engine: EngineDep):
    snap = get_snapshot(engine, snapshot_id)
    for entry in snap["entries"]:
        entry["medal"] = medal_for_rank(entry["rank"])
    return snap
