"""
ripple.services.streak_service — Daily Streak Sweep
====================================================

Resets the streak of every participant whose last activity is older than
the grace window (24 h by default):

    now - last_activity > grace   →   streak = 0, badges re-derived

The sweep only writes ``streak`` and ``badges``; points, hours and events
are never touched.  It is idempotent: a second run finds nothing to reset.

**Work is batched** (at most ``MAX_BATCH_SIZE`` rows per transaction) using
keyset pagination on the primary key.  Each batch re-checks staleness on the
loaded rows and writes them under the optimistic ``version`` check, so a
participant who just became active again is left alone.  A failing batch is
logged and skipped; the next daily run retries it.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ripple.config import MAX_BATCH_SIZE
from ripple.database.models import Participant
from ripple.engine.ledger import StatsSnapshot, decay_streak
from ripple.engine.rules import DEFAULT_RULES, RuleTables
from ripple.engine.streaks import DEFAULT_GRACE, as_utc, is_streak_stale
from ripple.services.leaderboard_feed import notify_before_commit

logger = logging.getLogger(__name__)


def _stale_ids_after(
    session: Session, cutoff: datetime, after_id: str | None, batch_size: int
) -> list[str]:
    stmt = (
        select(Participant.id)
        .where(Participant.streak > 0)
        .where(Participant.last_activity.is_not(None))
        .where(Participant.last_activity < cutoff)
        .order_by(Participant.id)
        .limit(batch_size)
    )
    if after_id is not None:
        stmt = stmt.where(Participant.id > after_id)
    return list(session.scalars(stmt).all())


def _reset_batch(
    engine: Engine,
    ids: list[str],
    now: datetime,
    grace: timedelta,
    rules: RuleTables,
) -> int:
    """Reset stale streaks among *ids* in one transaction; returns the count."""
    reset = 0
    with Session(engine) as session:
        rows = session.scalars(
            select(Participant).where(Participant.id.in_(ids))
        ).all()
        for row in rows:
            last = as_utc(row.last_activity) if row.last_activity else None
            if row.streak == 0 or not is_streak_stale(last, now, grace):
                continue
            decayed = decay_streak(StatsSnapshot.from_row(row), rules)
            row.streak = decayed.streak
            row.badges = list(decayed.badges)
            reset += 1
        if reset:
            notify_before_commit(session, "streak-sweep")
        session.commit()
    return reset


def run_streak_sweep(
    engine: Engine,
    *,
    now: datetime | None = None,
    batch_size: int = MAX_BATCH_SIZE,
    grace: timedelta = DEFAULT_GRACE,
    rules: RuleTables = DEFAULT_RULES,
) -> dict[str, int]:
    """Reset lapsed streaks across all participants.

    *batch_size* is clamped to ``1..MAX_BATCH_SIZE``.

    Returns a summary dict:
    ``{"scanned": N, "reset": M, "batches": B, "failed_batches": F}``.
    """
    now = as_utc(now) if now else datetime.now(UTC)
    batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
    cutoff = now - grace

    scanned = reset = batches = failed = 0
    after_id: str | None = None

    while True:
        with Session(engine) as session:
            ids = _stale_ids_after(session, cutoff, after_id, batch_size)
        if not ids:
            break

        # Advance the cursor first so a failing batch is skipped, not retried.
        after_id = ids[-1]
        batches += 1
        scanned += len(ids)
        try:
            count = _reset_batch(engine, ids, now, grace, rules)
        except (StaleDataError, SQLAlchemyError):
            failed += 1
            logger.exception(
                "Streak sweep: batch %d (%d rows ending at %s) failed — skipped",
                batches, len(ids), after_id,
            )
            continue

        reset += count
        logger.info(
            "Streak sweep: batch %d reset %d/%d streaks (total so far: %d)",
            batches, count, len(ids), reset,
        )

    logger.info(
        "Streak sweep complete — %d reset across %d batches, %d failed "
        "(cutoff=%s)",
        reset, batches, failed, cutoff.isoformat(),
    )
    return {"scanned": scanned, "reset": reset, "batches": batches, "failed_batches": failed}
