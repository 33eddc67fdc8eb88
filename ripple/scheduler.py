"""
ripple.scheduler — Scheduled Jobs & ``python -m ripple.scheduler``
===================================================================

Three cron jobs on an APScheduler ``BackgroundScheduler`` (UTC):

- **Streak sweep** — daily, resets streaks lapsed beyond the grace window.
- **Weekly snapshot** — captures the top-N for the current ISO week.
- **Monthly snapshot** — captures the top-N for the current month.

Each job runs on a worker thread and logs its own failures; a failing run
never takes the scheduler down, and the next firing simply tries again.

Wiring for the standalone process:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Start the scheduler and block until Ctrl+C / SIGTERM.

Run with::

    python -m ripple.scheduler
"""

from __future__ import annotations

import logging
import signal
import threading
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from sqlalchemy import Engine

from ripple.config import RippleConfig, load_config
from ripple.database.engine import create_db_engine, init_db
from ripple.database.models import SnapshotKind
from ripple.services.snapshot_service import capture_snapshot
from ripple.services.streak_service import run_streak_sweep

logger = logging.getLogger(__name__)

STREAK_SWEEP_JOB = "streak_sweep"
WEEKLY_SNAPSHOT_JOB = "weekly_snapshot"
MONTHLY_SNAPSHOT_JOB = "monthly_snapshot"


# ---------------------------------------------------------------------------
# Job bodies
# ---------------------------------------------------------------------------
def streak_sweep_job(engine: Engine, cfg: RippleConfig) -> None:
    """Reset lapsed streaks."""
    try:
        result = run_streak_sweep(
            engine,
            batch_size=cfg.sweep_batch_size,
            grace=timedelta(hours=cfg.streak_grace_hours),
            rules=cfg.rules,
        )
        logger.info("Streak sweep job finished: %s", result, extra={"task": "streak_sweep"})
    except Exception:
        logger.exception("Streak sweep job failed", extra={"task": "streak_sweep"})


def snapshot_job(engine: Engine, cfg: RippleConfig, kind: SnapshotKind) -> None:
    """Capture the *kind* leaderboard snapshot for the current period."""
    try:
        result = capture_snapshot(engine, kind, size=cfg.snapshot_size)
        logger.info(
            "%s snapshot job finished: id=%d created=%s entries=%d",
            kind.value, result.snapshot_id, result.created, result.entry_count,
            extra={"task": f"{kind.value}_snapshot"},
        )
    except Exception:
        logger.exception("%s snapshot job failed", kind.value, extra={"task": f"{kind.value}_snapshot"})


# ---------------------------------------------------------------------------
# Scheduler wiring
# ---------------------------------------------------------------------------
def build_scheduler(engine: Engine, cfg: RippleConfig) -> BackgroundScheduler:
    """Create (but don't start) a scheduler with the three cron jobs."""
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        streak_sweep_job,
        "cron",
        args=[engine, cfg],
        id=STREAK_SWEEP_JOB,
        coalesce=True,
        max_instances=1,
        **cfg.streak_sweep.trigger_kwargs(),
    )
    scheduler.add_job(
        snapshot_job,
        "cron",
        args=[engine, cfg, SnapshotKind.WEEKLY],
        id=WEEKLY_SNAPSHOT_JOB,
        coalesce=True,
        max_instances=1,
        **cfg.weekly_snapshot.trigger_kwargs(),
    )
    scheduler.add_job(
        snapshot_job,
        "cron",
        args=[engine, cfg, SnapshotKind.MONTHLY],
        id=MONTHLY_SNAPSHOT_JOB,
        coalesce=True,
        max_instances=1,
        **cfg.monthly_snapshot.trigger_kwargs(),
    )
    return scheduler


def install_shutdown_handler(stop: threading.Event) -> None:
    """Make SIGTERM (container stop, systemd) end the worker like Ctrl+C."""
    def _on_sigterm(signum, frame):
        logger.info("Received signal %s", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _on_sigterm)


def main() -> None:
    """Bootstrap and run the job scheduler."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Scheduler (blocks until Ctrl+C or SIGTERM).
    scheduler = build_scheduler(engine, cfg)
    stop = threading.Event()
    install_shutdown_handler(stop)
    scheduler.start()
    for job in scheduler.get_jobs():
        logger.info("Scheduled %s → next run %s", job.id, job.next_run_time)

    try:
        stop.wait()
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down gracefully…")
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    main()
