"""
ripple.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for soft settings: job schedules, batch sizes,
aggregator retry tuning, and point/badge rule overrides.  Secrets
(``DATABASE_URL``, ``JWT_SECRET``) come from the environment instead.

Usage::

    from ripple.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.weekly_snapshot.day_of_week)   # "sun"
    print(cfg.rules.referral_bonus)          # 25
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ripple.engine.rules import DEFAULT_RULES, RuleTables, rules_from_mapping

# Hard ceiling for any batched write in a scheduled job.
MAX_BATCH_SIZE = 500


# ---------------------------------------------------------------------------
# Schedule entries — all times are UTC
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CronSpec:
    """Keyword arguments for an APScheduler ``cron`` trigger."""

    hour: int = 0
    minute: int = 0
    day_of_week: str | None = None
    day: int | None = None

    def trigger_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"hour": self.hour, "minute": self.minute}
        if self.day_of_week is not None:
            kwargs["day_of_week"] = self.day_of_week
        if self.day is not None:
            kwargs["day"] = self.day
        return kwargs


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RippleConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    community_name: str = "Ripple"
    api_port: int = 8000

    # Scheduling (UTC)
    streak_sweep: CronSpec = field(default_factory=CronSpec)
    weekly_snapshot: CronSpec = field(
        default_factory=lambda: CronSpec(day_of_week="sun")
    )
    monthly_snapshot: CronSpec = field(default_factory=lambda: CronSpec(day=1))

    # Jobs
    sweep_batch_size: int = MAX_BATCH_SIZE
    snapshot_size: int = 100
    streak_grace_hours: int = 24

    # Aggregator retry tuning
    max_attempts: int = 5
    backoff_base_seconds: float = 0.05
    backoff_max_seconds: float = 1.0

    rules: RuleTables = DEFAULT_RULES

    def __post_init__(self) -> None:
        if not 1 <= self.sweep_batch_size <= MAX_BATCH_SIZE:
            raise ValueError(
                f"sweep_batch_size must be between 1 and {MAX_BATCH_SIZE}"
            )
        if self.snapshot_size < 1:
            raise ValueError("snapshot_size must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


def _cron(raw: dict | None, default: CronSpec) -> CronSpec:
    if not raw:
        return default
    return CronSpec(
        hour=int(raw.get("hour", default.hour)),
        minute=int(raw.get("minute", default.minute)),
        day_of_week=raw.get("day_of_week", default.day_of_week),
        day=int(raw["day"]) if raw.get("day") is not None else default.day,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_config(raw: dict[str, Any]) -> RippleConfig:
    """Build a :class:`RippleConfig` from an already-parsed YAML mapping."""
    defaults = RippleConfig()
    schedule = raw.get("schedule") or {}
    jobs = raw.get("jobs") or {}
    aggregator = raw.get("aggregator") or {}

    return RippleConfig(
        community_name=raw.get("community_name", defaults.community_name),
        api_port=int(raw.get("api_port", defaults.api_port)),
        streak_sweep=_cron(schedule.get("streak_sweep"), defaults.streak_sweep),
        weekly_snapshot=_cron(schedule.get("weekly_snapshot"), defaults.weekly_snapshot),
        monthly_snapshot=_cron(schedule.get("monthly_snapshot"), defaults.monthly_snapshot),
        sweep_batch_size=int(jobs.get("sweep_batch_size", defaults.sweep_batch_size)),
        snapshot_size=int(jobs.get("snapshot_size", defaults.snapshot_size)),
        streak_grace_hours=int(jobs.get("streak_grace_hours", defaults.streak_grace_hours)),
        max_attempts=int(aggregator.get("max_attempts", defaults.max_attempts)),
        backoff_base_seconds=float(
            aggregator.get("backoff_base_seconds", defaults.backoff_base_seconds)
        ),
        backoff_max_seconds=float(
            aggregator.get("backoff_max_seconds", defaults.backoff_max_seconds)
        ),
        rules=rules_from_mapping(raw.get("rules")),
    )


def load_config(path: str | Path | None = "config.yaml") -> RippleConfig:
    """Read *path* and return a :class:`RippleConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  ``None`` skips the
        file and returns defaults.  ``RIPPLE_CONFIG`` overrides the default
        ``config.yaml`` location.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    """
    if path is None:
        return RippleConfig()
    if path == "config.yaml":
        path = os.getenv("RIPPLE_CONFIG", path)

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)
