"""
ripple.services.stats_service — Transactional Stats Aggregator
===============================================================

Single entry point for every activity event:

    apply_event(engine, event) → ApplyOutcome

Each attempt runs in one transaction:
  1. Look up ``event_id`` in activity_log — already there → duplicate.
  2. Load the participant (missing → ``UserNotFound``).
  3. Run the pure ledger update (points, hours, events, level, streak,
     badges).
  4. Write the participant under its optimistic ``version`` check and
     append the activity_log row.
  5. Commit.  A version mismatch means another event for the same
     participant committed first: roll back, back off, retry.

The unique index on ``activity_log.event_id`` is the last line of
idempotency: if two deliveries of one event race, the loser's commit fails
and it returns the winner's persisted result.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import Engine, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ripple.database.models import ActivityLog, Participant
from ripple.engine.events import ActivityEvent, event_from_payload
from ripple.engine.ledger import StatsSnapshot, apply_activity, decay_streak, replay
from ripple.engine.reward import level_for_points, validate_event
from ripple.engine.rules import DEFAULT_RULES, RuleTables
from ripple.engine.streaks import as_utc, is_streak_stale
from ripple.errors import (
    ConcurrencyConflict,
    StoreUnavailable,
    UserNotFound,
    ValidationError,
)
from ripple.services.leaderboard_feed import notify_before_commit

logger = logging.getLogger(__name__)

MAX_EVENT_ID_LENGTH = 100
MAX_USER_ID_LENGTH = 64

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    """Result of :func:`apply_event`.

    ``duplicate`` is True when the event had already been applied; ``stats``
    and the deltas are then the values persisted by the original apply.
    """

    event_id: str
    stats: StatsSnapshot
    points_delta: int
    hours_delta: Decimal
    duplicate: bool = False
    new_badges: tuple[str, ...] = ()
    leveled_up: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _write_stats(row: Participant, stats: StatsSnapshot) -> None:
    row.total_points = stats.total_points
    row.volunteer_hours = stats.volunteer_hours
    row.completed_events = stats.completed_events
    row.badges = list(stats.badges)
    row.level = stats.level
    row.streak = stats.streak
    row.last_activity = stats.last_activity


def _find_logged(session: Session, event_id: str) -> ActivityLog | None:
    return session.scalar(select(ActivityLog).where(ActivityLog.event_id == event_id))


def _duplicate_outcome(log: ActivityLog) -> ApplyOutcome:
    return ApplyOutcome(
        event_id=log.event_id,
        stats=StatsSnapshot.from_dict(log.stats_after),
        points_delta=log.points_delta,
        hours_delta=Decimal(log.hours_delta),
        duplicate=True,
    )


def _translate_store_error(exc: DBAPIError) -> Exception:
    """Map a driver error onto the ledger taxonomy."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _RETRYABLE_PGCODES:
        return ConcurrencyConflict(f"Transaction conflict ({pgcode})")
    return StoreUnavailable(str(exc.orig) if exc.orig is not None else str(exc))


def _backoff_seconds(attempt: int, base: float, cap: float) -> float:
    backoff = min(base * (2 ** (attempt - 1)), cap)
    return backoff + random.uniform(0, backoff * 0.5)


# ---------------------------------------------------------------------------
# Registration & reads
# ---------------------------------------------------------------------------
def register_participant(
    engine: Engine,
    user_id: str,
    display_name: str | None = None,
    *,
    now: datetime | None = None,
) -> tuple[StatsSnapshot, bool]:
    """Create the stats row for a new participant.

    Idempotent: registering an existing id returns its current stats.
    Returns ``(stats, created)``.
    """
    if not user_id or not user_id.strip():
        raise ValidationError("user_id must be a non-empty string")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"user_id longer than {MAX_USER_ID_LENGTH} characters")

    with Session(engine) as session:
        row = session.get(Participant, user_id)
        if row is not None:
            return StatsSnapshot.from_row(row), False

        row = Participant(
            id=user_id,
            display_name=display_name,
            total_points=0,
            volunteer_hours=Decimal(0),
            completed_events=0,
            badges=[],
            level=level_for_points(0),
            streak=0,
            last_activity=None,
            created_at=as_utc(now) if now else datetime.now(UTC),
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            # Lost a registration race — the other writer's row stands.
            session.rollback()
            existing = session.get(Participant, user_id)
            if existing is None:
                raise
            return StatsSnapshot.from_row(existing), False

        logger.info("Registered participant %s", user_id)
        return StatsSnapshot.from_row(row), True


def get_participant(engine: Engine, user_id: str) -> StatsSnapshot:
    """Read one participant's stats (profile view)."""
    with Session(engine) as session:
        row = session.get(Participant, user_id)
        if row is None:
            raise UserNotFound(user_id)
        return StatsSnapshot.from_row(row)


def list_activity(engine: Engine, user_id: str, limit: int = 50) -> list[dict]:
    """Most recent activity-log entries for *user_id*, newest first."""
    with Session(engine) as session:
        if session.get(Participant, user_id) is None:
            raise UserNotFound(user_id)
        logs = session.scalars(
            select(ActivityLog)
            .where(ActivityLog.user_id == user_id)
            .order_by(ActivityLog.occurred_at.desc(), ActivityLog.id.desc())
            .limit(limit)
        ).all()
        return [
            {
                "event_id": log.event_id,
                "kind": log.kind,
                "payload": log.payload,
                "points_delta": log.points_delta,
                "hours_delta": str(log.hours_delta),
                "total_points_after": log.stats_after.get("total_points"),
                "occurred_at": as_utc(log.occurred_at).isoformat(),
            }
            for log in logs
        ]


# ---------------------------------------------------------------------------
# The aggregator
# ---------------------------------------------------------------------------
def _apply_once(
    engine: Engine, event: ActivityEvent, event_id: str, rules: RuleTables
) -> ApplyOutcome:
    with Session(engine) as session:
        existing = _find_logged(session, event_id)
        if existing is not None:
            return _duplicate_outcome(existing)

        row = session.get(Participant, event.user_id)
        if row is None:
            raise UserNotFound(event.user_id)

        result = apply_activity(StatsSnapshot.from_row(row), event, rules)

        try:
            _write_stats(row, result.stats)
            session.add(ActivityLog(
                event_id=event_id,
                user_id=event.user_id,
                kind=event.kind.value,
                payload=event.payload(),
                points_delta=result.points_delta,
                hours_delta=result.hours_delta,
                stats_after=result.stats.to_dict(),
                occurred_at=as_utc(event.occurred_at),
            ))
            notify_before_commit(session, event.user_id)
            session.commit()
        except StaleDataError as exc:
            session.rollback()
            raise ConcurrencyConflict(
                f"Participant {event.user_id!r} changed concurrently"
            ) from exc
        except IntegrityError:
            session.rollback()
            existing = _find_logged(session, event_id)
            if existing is None:
                raise
            logger.info("Event %s applied concurrently by another worker", event_id)
            return _duplicate_outcome(existing)

        return ApplyOutcome(
            event_id=event_id,
            stats=result.stats,
            points_delta=result.points_delta,
            hours_delta=result.hours_delta,
            new_badges=result.new_badges,
            leveled_up=result.leveled_up,
        )


def apply_event(
    engine: Engine,
    event: ActivityEvent,
    *,
    rules: RuleTables = DEFAULT_RULES,
    max_attempts: int = 5,
    backoff_base: float = 0.05,
    backoff_max: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> ApplyOutcome:
    """Apply one activity event to its participant's stats, exactly once.

    Raises
    ------
    InvalidPayload
        Negative hours/amount, empty ids, self-referral.  Nothing is written.
    UserNotFound
        The credited participant has no stats row.
    ConcurrencyConflict
        Still contended after *max_attempts* attempts.
    StoreUnavailable
        The database could not be reached.
    """
    validate_event(event)
    event_id = event.event_key
    if len(event_id) > MAX_EVENT_ID_LENGTH:
        raise ValidationError(f"event_id longer than {MAX_EVENT_ID_LENGTH} characters")

    attempt = 0
    while True:
        attempt += 1
        try:
            try:
                outcome = _apply_once(engine, event, event_id, rules)
            except (OperationalError, InterfaceError) as exc:
                raise _translate_store_error(exc) from exc
        except ConcurrencyConflict:
            if attempt >= max_attempts:
                logger.warning(
                    "Giving up on event %s for %s after %d conflicting attempts",
                    event_id, event.user_id, attempt,
                )
                raise
            wait = _backoff_seconds(attempt, backoff_base, backoff_max)
            logger.info(
                "Concurrency conflict on %s (attempt %d/%d), retrying in %.3fs",
                event.user_id, attempt, max_attempts, wait,
            )
            sleep(wait)
            continue

        if outcome.duplicate:
            logger.info("Duplicate event %s ignored for %s", event_id, event.user_id)
        else:
            logger.info(
                "Applied %s %s to %s: +%d pts (total=%d, level=%d, streak=%d)",
                event.kind.value, event_id, event.user_id, outcome.points_delta,
                outcome.stats.total_points, outcome.stats.level, outcome.stats.streak,
            )
        return outcome


# ---------------------------------------------------------------------------
# Audit recomputation
# ---------------------------------------------------------------------------
def recompute_participant(
    engine: Engine,
    user_id: str,
    *,
    rules: RuleTables = DEFAULT_RULES,
    now: datetime | None = None,
    grace: timedelta = timedelta(days=1),
) -> tuple[StatsSnapshot, StatsSnapshot]:
    """Rebuild *user_id*'s stats by replaying their activity log.

    Applies the streak decay the daily sweep would have applied by *now*.
    Badges are re-derived, so a correction may remove a badge.
    Returns ``(before, after)``.
    """
    now = as_utc(now) if now else datetime.now(UTC)

    with Session(engine) as session:
        row = session.get(Participant, user_id)
        if row is None:
            raise UserNotFound(user_id)
        before = StatsSnapshot.from_row(row)

        logs = session.scalars(
            select(ActivityLog)
            .where(ActivityLog.user_id == user_id)
            .order_by(ActivityLog.occurred_at, ActivityLog.id)
        ).all()
        events = [
            event_from_payload(log.kind, log.payload, as_utc(log.occurred_at), log.event_id)
            for log in logs
        ]
        after = replay(before, events, rules)
        if after.streak and is_streak_stale(after.last_activity, now, grace):
            after = decay_streak(after, rules)

        try:
            _write_stats(row, after)
            notify_before_commit(session, user_id)
            session.commit()
        except StaleDataError as exc:
            session.rollback()
            raise ConcurrencyConflict(
                f"Participant {user_id!r} changed during recompute"
            ) from exc

    if after != before:
        logger.warning(
            "Recompute corrected %s: points %d→%d, hours %s→%s, badges %s→%s",
            user_id, before.total_points, after.total_points,
            before.volunteer_hours, after.volunteer_hours,
            list(before.badges), list(after.badges),
        )
    else:
        logger.info("Recompute for %s: stats already consistent", user_id)
    return before, after
