"""
Ripple — Volunteer Impact Ledger & Leaderboard Engine
======================================================
Turns volunteer activity (completed events, donations, referrals) into
durable participant stats — points, level, badges, streak — and ranks the
whole community on a deterministic, periodically snapshotted leaderboard.

Package layout::

    ripple/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Badge catalog + presentation constants
    ├── errors.py          # Error taxonomy shared by services and API
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (participants, activity_log, snapshots, admin_log)
    ├── engine/
    │   ├── rules.py       # RuleTables — injectable point/level/badge rules
    │   ├── events.py      # ActivityEvent variants + deterministic ids
    │   ├── reward.py      # Points + level calculators
    │   ├── badges.py      # Exclusive-tier badge deriver
    │   ├── streaks.py     # UTC-day streak tracker
    │   ├── ledger.py      # Pure stats update for one event
    │   └── ranking.py     # Deterministic dense ranking
    ├── services/
    │   ├── stats_service.py       # Transactional, idempotent aggregator
    │   ├── leaderboard_service.py # Point-in-time ranking queries
    │   ├── leaderboard_feed.py    # Live ranking via PG LISTEN/NOTIFY
    │   ├── streak_service.py      # Daily batched streak sweep
    │   ├── snapshot_service.py    # Weekly/monthly snapshots
    │   └── admin_service.py       # Audited admin job triggers
    ├── scheduler.py       # APScheduler cron wiring (+ __main__ worker)
    └── api/
        ├── main.py        # FastAPI app
        ├── __main__.py    # uvicorn launcher (python -m ripple.api)
        ├── deps.py        # Engine/config/admin JWT dependencies
        └── routes/        # Public, ingestion and admin endpoints
"""

__version__ = "0.1.0"
