"""
ripple.services.leaderboard_service — Point-in-Time Ranking
============================================================

Read-only queries over ``participants``.  The ordering mirrors
:func:`ripple.engine.ranking.rank_key`:

    total_points DESC, (last_activity IS NULL), last_activity ASC, id ASC

Reads run concurrently with live updates and see whatever has committed
(eventual consistency, no snapshot isolation across calls).
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, and_, func, or_, select
from sqlalchemy.orm import Session

from ripple.database.models import Participant
from ripple.engine.ledger import StatsSnapshot
from ripple.engine.ranking import LeaderboardEntry, assign_ranks
from ripple.errors import UserNotFound, ValidationError

logger = logging.getLogger(__name__)

MAX_LIMIT = 1000

RANKING_ORDER = (
    Participant.total_points.desc(),
    Participant.last_activity.is_(None),
    Participant.last_activity.asc(),
    Participant.id.asc(),
)


def rank_in_session(session: Session, limit: int) -> list[LeaderboardEntry]:
    """Rank the top *limit* participants using an existing session."""
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}, got {limit}")
    rows = session.scalars(
        select(Participant).order_by(*RANKING_ORDER).limit(limit)
    ).all()
    return assign_ranks(StatsSnapshot.from_row(r) for r in rows)


def rank(engine: Engine, limit: int = 50) -> list[LeaderboardEntry]:
    """Return the top *limit* participants with dense ranks ``1..N``."""
    with Session(engine) as session:
        return rank_in_session(session, limit)


def rank_of(engine: Engine, user_id: str) -> int:
    """Position of *user_id* under the leaderboard ordering (1-based)."""
    with Session(engine) as session:
        me = session.get(Participant, user_id)
        if me is None:
            raise UserNotFound(user_id)

        same_points = Participant.total_points == me.total_points
        if me.last_activity is None:
            # Everyone with activity precedes a never-active participant.
            ahead_on_tiebreak = or_(
                Participant.last_activity.is_not(None),
                and_(Participant.last_activity.is_(None), Participant.id < me.id),
            )
        else:
            ahead_on_tiebreak = or_(
                Participant.last_activity < me.last_activity,
                and_(
                    Participant.last_activity == me.last_activity,
                    Participant.id < me.id,
                ),
            )

        ahead = session.scalar(
            select(func.count()).select_from(Participant).where(
                or_(
                    Participant.total_points > me.total_points,
                    and_(same_points, ahead_on_tiebreak),
                )
            )
        ) or 0
    return ahead + 1


def count_participants(engine: Engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(Participant)) or 0
