"""
tests/test_leaderboard.py — Ranking Queries & Live Feed
========================================================
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import Session

from ripple.database.engine import run_db
from ripple.database.models import Participant
from ripple.engine.events import Donation
from ripple.errors import UserNotFound, ValidationError
from ripple.services.leaderboard_feed import LeaderboardFeed, notify_before_commit
from ripple.services.leaderboard_service import count_participants, rank, rank_of
from ripple.services.stats_service import apply_event, register_participant

D = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _seed(engine, rows: list[tuple[str, int, datetime | None]]) -> None:
    with Session(engine) as session:
        for user_id, points, last in rows:
            session.add(Participant(
                id=user_id, total_points=points, last_activity=last,
                level=points // 100 + 1,
            ))
        session.commit()


class TestRank:
    def test_orders_and_breaks_ties(self, db_engine):
        _seed(db_engine, [
            ("carol", 100, D),
            ("alice", 100, D + timedelta(hours=1)),
            ("bob", 100, D),
            ("zed", 500, D),
            ("newbie", 100, None),
        ])
        entries = rank(db_engine, 10)
        assert [e.user_id for e in entries] == ["zed", "bob", "carol", "alice", "newbie"]
        assert [e.rank for e in entries] == [1, 2, 3, 4, 5]

    def test_limit_truncates(self, db_engine):
        _seed(db_engine, [(f"u-{i:02d}", i * 10, D) for i in range(30)])
        entries = rank(db_engine, 10)
        assert len(entries) == 10
        assert entries[0].total_points == 290

    @pytest.mark.parametrize("limit", [0, -1, 1001])
    def test_invalid_limit(self, db_engine, limit):
        with pytest.raises(ValidationError):
            rank(db_engine, limit)

    def test_empty_population(self, db_engine):
        assert rank(db_engine, 5) == []
        assert count_participants(db_engine) == 0


class TestRankOf:
    def test_matches_full_ranking(self, db_engine):
        _seed(db_engine, [
            ("carol", 100, D),
            ("alice", 100, D + timedelta(hours=1)),
            ("bob", 100, D),
            ("zed", 500, D),
            ("newbie", 100, None),
            ("ghosty", 100, None),
        ])
        for entry in rank(db_engine, 100):
            assert rank_of(db_engine, entry.user_id) == entry.rank

    def test_unknown_participant(self, db_engine):
        with pytest.raises(UserNotFound):
            rank_of(db_engine, "nobody")


class TestLeaderboardFeed:
    def test_refresh_notifies_subscribers_on_change(self, db_engine):
        register_participant(db_engine, "u-1")
        feed = LeaderboardFeed(db_engine, limit=10)
        callback = MagicMock()
        feed.subscribe(callback)

        assert feed.refresh() is True
        callback.assert_called_once()
        assert [e.user_id for e in callback.call_args.args[0]] == ["u-1"]

    def test_unchanged_ranking_is_not_pushed(self, db_engine):
        register_participant(db_engine, "u-1")
        feed = LeaderboardFeed(db_engine)
        callback = MagicMock()
        feed.subscribe(callback)
        feed.refresh()
        assert feed.refresh() is False
        assert callback.call_count == 1

    def test_applied_event_changes_ranking(self, db_engine):
        register_participant(db_engine, "u-1")
        register_participant(db_engine, "u-2")
        feed = LeaderboardFeed(db_engine)
        feed.refresh()
        assert feed.latest[0].user_id == "u-1"

        apply_event(db_engine, Donation(user_id="u-2", source_org_id="o", amount=10, occurred_at=D))
        assert feed.refresh() is True
        assert feed.latest[0].user_id == "u-2"

    def test_late_subscriber_gets_latest(self, db_engine):
        register_participant(db_engine, "u-1")
        feed = LeaderboardFeed(db_engine)
        feed.refresh()
        callback = MagicMock()
        feed.subscribe(callback)
        callback.assert_called_once()

    def test_unsubscribe_and_failing_subscriber(self, db_engine):
        register_participant(db_engine, "u-1")
        feed = LeaderboardFeed(db_engine)
        broken = MagicMock(side_effect=RuntimeError("client gone"))
        healthy = MagicMock()
        feed.subscribe(broken)
        unsubscribe = feed.subscribe(healthy)

        feed.refresh()  # the broken subscriber must not stop delivery
        healthy.assert_called_once()

        unsubscribe()
        register_participant(db_engine, "u-2")
        feed.refresh()
        healthy.assert_called_once()

    def test_notify_is_noop_on_sqlite(self, db_engine):
        with Session(db_engine) as session:
            notify_before_commit(session, "u-1")  # must not raise

    def test_listener_needs_postgres(self, db_engine, caplog):
        feed = LeaderboardFeed(db_engine)
        feed.start_listener()
        assert "needs PostgreSQL" in caplog.text
        assert not feed.listener_healthy
        feed.stop_listener()


class TestAsyncBridge:
    def test_run_db_offloads_sync_reads(self, db_engine):
        register_participant(db_engine, "u-1")
        entries = asyncio.run(run_db(rank, db_engine, 5))
        assert [e.user_id for e in entries] == ["u-1"]
