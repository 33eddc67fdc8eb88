"""
ripple.services.snapshot_service — Periodic Leaderboard Snapshots
==================================================================

Captures the top-N ranking into ``leaderboard_snapshots`` once per period:

* **weekly**  — period starts Monday 00:00 UTC (ISO week)
* **monthly** — period starts on the 1st at 00:00 UTC

The period is the one containing the capture time.  ``(kind, period_start)``
is unique, so re-running a capture inside the same period is a no-op that
returns the existing snapshot.  Stored snapshots are never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ripple.database.models import LeaderboardSnapshot, SnapshotKind
from ripple.engine.ranking import LeaderboardEntry
from ripple.engine.streaks import as_utc
from ripple.errors import NotFoundError, ValidationError
from ripple.services.leaderboard_service import MAX_LIMIT, rank_in_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SnapshotResult:
    snapshot_id: int
    kind: SnapshotKind
    period_start: datetime
    created: bool
    entry_count: int


def _coerce_kind(kind: str | SnapshotKind) -> SnapshotKind:
    try:
        return SnapshotKind(kind)
    except ValueError:
        raise ValidationError(
            f"Unknown snapshot kind {kind!r} (expected one of "
            f"{', '.join(k.value for k in SnapshotKind)})"
        ) from None


def period_start(kind: str | SnapshotKind, moment: datetime) -> datetime:
    """Start of the *kind* period containing *moment* (UTC midnight)."""
    kind = _coerce_kind(kind)
    moment = as_utc(moment)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if kind is SnapshotKind.WEEKLY:
        return midnight - timedelta(days=midnight.weekday())
    return midnight.replace(day=1)


def _snapshot_to_dict(snap: LeaderboardSnapshot) -> dict[str, Any]:
    return {
        "id": snap.id,
        "kind": snap.kind,
        "period_start": as_utc(snap.period_start).isoformat(),
        "captured_at": as_utc(snap.captured_at).isoformat(),
        "entries": list(snap.entries),
    }


def capture_snapshot(
    engine: Engine,
    kind: str | SnapshotKind,
    *,
    now: datetime | None = None,
    size: int = 100,
) -> SnapshotResult:
    """Persist the current top-*size* ranking for the period containing *now*.

    Returns the existing snapshot (``created=False``) when one was already
    stored for this period.
    """
    kind = _coerce_kind(kind)
    if not 1 <= size <= MAX_LIMIT:
        raise ValidationError(f"size must be between 1 and {MAX_LIMIT}, got {size}")
    now = as_utc(now) if now else datetime.now(UTC)
    start = period_start(kind, now)

    def _existing(session: Session) -> LeaderboardSnapshot | None:
        return session.scalar(
            select(LeaderboardSnapshot).where(
                LeaderboardSnapshot.kind == kind.value,
                LeaderboardSnapshot.period_start == start,
            )
        )

    with Session(engine) as session:
        found = _existing(session)
        if found is not None:
            logger.info(
                "%s snapshot for period %s already exists (id=%d) — skipped",
                kind.value, start.date(), found.id,
            )
            return SnapshotResult(found.id, kind, start, False, len(found.entries))

        entries = rank_in_session(session, size)
        snap = LeaderboardSnapshot(
            kind=kind.value,
            period_start=start,
            captured_at=now,
            entries=[e.to_dict() for e in entries],
        )
        session.add(snap)
        try:
            session.commit()
        except IntegrityError:
            # Another scheduler instance captured this period first.
            session.rollback()
            found = _existing(session)
            if found is None:
                raise
            return SnapshotResult(found.id, kind, start, False, len(found.entries))

        logger.info(
            "Captured %s snapshot id=%d for period %s (%d entries)",
            kind.value, snap.id, start.date(), len(entries),
        )
        return SnapshotResult(snap.id, kind, start, True, len(entries))


def list_snapshots(
    engine: Engine, kind: str | SnapshotKind | None = None, limit: int = 20
) -> list[dict[str, Any]]:
    """Snapshot headers (no entries), newest period first."""
    stmt = select(LeaderboardSnapshot).order_by(
        LeaderboardSnapshot.period_start.desc(), LeaderboardSnapshot.id.desc()
    )
    if kind is not None:
        stmt = stmt.where(LeaderboardSnapshot.kind == _coerce_kind(kind).value)
    with Session(engine) as session:
        snaps = session.scalars(stmt.limit(limit)).all()
        return [
            {
                "id": s.id,
                "kind": s.kind,
                "period_start": as_utc(s.period_start).isoformat(),
                "captured_at": as_utc(s.captured_at).isoformat(),
                "entry_count": len(s.entries),
            }
            for s in snaps
        ]


def get_snapshot(engine: Engine, snapshot_id: int) -> dict[str, Any]:
    with Session(engine) as session:
        snap = session.get(LeaderboardSnapshot, snapshot_id)
        if snap is None:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")
        return _snapshot_to_dict(snap)


def snapshot_entries(engine: Engine, snapshot_id: int) -> list[LeaderboardEntry]:
    """Typed entries of a stored snapshot."""
    return [LeaderboardEntry.from_dict(e) for e in get_snapshot(engine, snapshot_id)["entries"]]
