"""
ripple.services.admin_service — Audited Admin Operations
=========================================================

Manual triggers for the scheduled jobs plus participant recomputation.
Every action follows the pattern:
  1. Run the operation (its own transaction(s))
  2. Write an admin_log row with a before/after JSONB summary
  3. Commit

The audit row is written even when the operation was a no-op (e.g. a
snapshot that already existed), so the log shows every trigger.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from ripple.config import RippleConfig
from ripple.database.engine import get_session
from ripple.database.models import AdminActionType, AdminLog, SnapshotKind
from ripple.services.snapshot_service import capture_snapshot
from ripple.services.stats_service import recompute_participant
from ripple.services.streak_service import run_streak_sweep

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------
def _log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: AdminActionType,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type.value,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def _record(engine: Engine, **kwargs: Any) -> None:
    with get_session(engine) as session:
        _log_admin_action(session, **kwargs)


# ---------------------------------------------------------------------------
# Audited triggers
# ---------------------------------------------------------------------------
def trigger_streak_sweep(
    engine: Engine,
    cfg: RippleConfig,
    *,
    actor_id: str,
    now: datetime | None = None,
    reason: str | None = None,
) -> dict[str, int]:
    summary = run_streak_sweep(
        engine,
        now=now,
        batch_size=cfg.sweep_batch_size,
        grace=timedelta(hours=cfg.streak_grace_hours),
        rules=cfg.rules,
    )
    _record(
        engine,
        actor_id=actor_id,
        action_type=AdminActionType.STREAK_SWEEP,
        target_table="participants",
        target_id=None,
        before=None,
        after=summary,
        reason=reason,
    )
    logger.info("Admin %s triggered streak sweep: %s", actor_id, summary)
    return summary


def trigger_snapshot(
    engine: Engine,
    cfg: RippleConfig,
    kind: str | SnapshotKind,
    *,
    actor_id: str,
    now: datetime | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    result = capture_snapshot(engine, kind, now=now, size=cfg.snapshot_size)
    summary = {
        "snapshot_id": result.snapshot_id,
        "kind": result.kind.value,
        "period_start": result.period_start.isoformat(),
        "created": result.created,
        "entry_count": result.entry_count,
    }
    _record(
        engine,
        actor_id=actor_id,
        action_type=AdminActionType.SNAPSHOT,
        target_table="leaderboard_snapshots",
        target_id=str(result.snapshot_id),
        before=None,
        after=summary,
        reason=reason,
    )
    logger.info("Admin %s triggered %s snapshot: %s", actor_id, result.kind.value, summary)
    return summary


def trigger_recompute(
    engine: Engine,
    cfg: RippleConfig,
    user_id: str,
    *,
    actor_id: str,
    now: datetime | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Replay *user_id*'s activity log and record the before/after stats."""
    before, after = recompute_participant(
        engine,
        user_id,
        rules=cfg.rules,
        now=now,
        grace=timedelta(hours=cfg.streak_grace_hours),
    )
    _record(
        engine,
        actor_id=actor_id,
        action_type=AdminActionType.RECOMPUTE,
        target_table="participants",
        target_id=user_id,
        before=before.to_dict(),
        after=after.to_dict(),
        reason=reason,
    )
    return {"before": before.to_dict(), "after": after.to_dict(), "changed": before != after}


def list_admin_log(engine: Engine, limit: int = 50) -> list[dict[str, Any]]:
    """Most recent audit rows, newest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc()).limit(limit)
        ).all()
        return [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ]
