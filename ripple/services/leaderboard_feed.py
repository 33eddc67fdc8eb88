"""
ripple.services.leaderboard_feed — Live Leaderboard via PG LISTEN/NOTIFY
=========================================================================

Continuous-subscription mode for real-time leaderboard views.

Writers call :func:`notify_before_commit` inside the transaction that
changes ranking inputs, so PostgreSQL delivers ``leaderboard_changed`` only
if the write commits.  A :class:`LeaderboardFeed` listens on that channel
from a background thread, recomputes the top *limit* and calls subscribers
whenever the ranked list actually changed.

Delivery is eventually consistent: notifications are coalesced, and the
listener also refreshes on every idle poll timeout, so a missed NOTIFY is
picked up on the next tick.
"""

from __future__ import annotations

import logging
import random
import select as _select
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.orm import Session

from ripple.database.engine import is_postgres
from ripple.engine.ranking import LeaderboardEntry
from ripple.services.leaderboard_service import rank

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# The PG channel carrying ranking-change notifications
NOTIFY_CHANNEL = "leaderboard_changed"

Subscriber = Callable[[list[LeaderboardEntry]], None]


def notify_before_commit(session: Session, user_id: str) -> None:
    """Queue a ``NOTIFY leaderboard_changed`` in the current transaction.

    No-op on databases without LISTEN/NOTIFY (e.g. SQLite in tests).
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(
        text("SELECT pg_notify(:channel, :payload)"),
        {"channel": NOTIFY_CHANNEL, "payload": user_id},
    )


class LeaderboardFeed:
    """Push the current top-*limit* ranking to subscribers on change.

    Usage::

        feed = LeaderboardFeed(engine, limit=50)
        unsubscribe = feed.subscribe(lambda entries: push_to_clients(entries))
        feed.start_listener()
        ...
        feed.stop_listener()
    """

    def __init__(self, engine: Engine, limit: int = 50, poll_seconds: float = 5.0) -> None:
        self._engine = engine
        self._limit = limit
        self._poll_seconds = poll_seconds
        self._lock = threading.Lock()
        self._subscribers: dict[int, Subscriber] = {}
        self._next_token = 0
        self._latest: list[LeaderboardEntry] | None = None

        self._listener_thread: threading.Thread | None = None
        self._listener_healthy = False
        self._listener_failed = False
        self._shutdown_event = threading.Event()

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------
    def subscribe(self, callback: Subscriber, *, replay_latest: bool = True) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it.

        When a ranking has already been computed and *replay_latest* is set,
        the new subscriber receives it immediately.
        """
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            latest = list(self._latest) if self._latest is not None else None

        if replay_latest and latest is not None:
            self._deliver(callback, latest)

        def _unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return _unsubscribe

    @property
    def latest(self) -> list[LeaderboardEntry] | None:
        with self._lock:
            return list(self._latest) if self._latest is not None else None

    def refresh(self) -> bool:
        """Recompute the ranking; notify subscribers if it changed.

        Returns True when subscribers were notified.
        """
        entries = rank(self._engine, self._limit)
        with self._lock:
            if entries == self._latest:
                return False
            self._latest = entries
            subscribers = list(self._subscribers.values())

        logger.debug("Leaderboard changed — notifying %d subscriber(s)", len(subscribers))
        for callback in subscribers:
            self._deliver(callback, list(entries))
        return True

    @staticmethod
    def _deliver(callback: Subscriber, entries: list[LeaderboardEntry]) -> None:
        try:
            callback(entries)
        except Exception:
            logger.exception("Leaderboard subscriber %r raised", callback)

    # -------------------------------------------------------------------
    # Background LISTEN thread
    # -------------------------------------------------------------------
    @property
    def listener_healthy(self) -> bool:
        """Return True if the LISTEN thread is alive and connected."""
        return self._listener_healthy and not self._listener_failed

    @property
    def listener_failed(self) -> bool:
        """Return True if the listener exhausted reconnect attempts."""
        return self._listener_failed

    def stop_listener(self) -> None:
        """Signal the listener thread to stop and wait for it to exit."""
        self._shutdown_event.set()
        if self._listener_thread is not None and self._listener_thread.is_alive():
            self._listener_thread.join(timeout=5)
            logger.info("Leaderboard listener thread stopped")

    def _safe_refresh(self) -> None:
        try:
            self.refresh()
        except Exception:
            logger.exception("Leaderboard refresh failed")

    def start_listener(self) -> None:
        """Start a background thread that LISTENs on ``leaderboard_changed``.

        Uses a raw psycopg2 connection + ``select()``; reconnects with
        exponential backoff + jitter and gives up after 10 attempts.
        """
        if not is_postgres(self._engine):
            logger.warning(
                "LISTEN/NOTIFY needs PostgreSQL (got %s) — call refresh() manually",
                self._engine.dialect.name,
            )
            return

        import psycopg2

        max_backoff = 60.0
        base_backoff = 1.0
        max_reconnect_attempts = 10

        def _listen_thread() -> None:
            raw_url = self._engine.url.render_as_string(hide_password=False)
            dsn = raw_url.replace("postgresql+psycopg2://", "postgresql://")
            attempt = 0

            while not self._shutdown_event.is_set():
                conn = None
                try:
                    conn = psycopg2.connect(dsn)
                    conn.set_isolation_level(0)  # autocommit
                    cur = conn.cursor()
                    cur.execute(f"LISTEN {NOTIFY_CHANNEL};")
                    logger.info("PG LISTEN started on channel '%s'", NOTIFY_CHANNEL)

                    attempt = 0
                    self._listener_healthy = True
                    self._safe_refresh()

                    while not self._shutdown_event.is_set():
                        if _select.select([conn], [], [], self._poll_seconds) == ([], [], []):
                            # Idle tick: catch anything a dropped NOTIFY missed.
                            self._safe_refresh()
                            continue
                        conn.poll()
                        if conn.notifies:
                            # Coalesce a burst of notifications into one refresh.
                            logger.debug(
                                "%d NOTIFY(s) on '%s'", len(conn.notifies), NOTIFY_CHANNEL,
                            )
                            conn.notifies.clear()
                            self._safe_refresh()

                except Exception:
                    self._listener_healthy = False
                    attempt += 1

                    if attempt >= max_reconnect_attempts:
                        logger.critical(
                            "PG LISTEN exhausted %d retries. Live leaderboard disabled.",
                            max_reconnect_attempts,
                        )
                        self._listener_failed = True
                        break

                    backoff = min(base_backoff * (2 ** (attempt - 1)), max_backoff)
                    wait = backoff + random.uniform(0, backoff * 0.5)
                    logger.exception(
                        "PG LISTEN connection lost (attempt %d/%d). "
                        "Reconnecting in %.1fs…",
                        attempt, max_reconnect_attempts, wait,
                    )
                    if self._shutdown_event.wait(timeout=wait):
                        break
                finally:
                    if conn is not None:
                        try:
                            conn.close()
                        except Exception:
                            logger.debug("Error closing LISTEN connection", exc_info=True)

        thread = threading.Thread(
            target=_listen_thread, daemon=True, name="leaderboard-listener",
        )
        self._listener_thread = thread
        thread.start()
        logger.info("Leaderboard listener thread started")
