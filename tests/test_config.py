"""
tests/test_config.py — YAML Configuration & Presentation Constants
===================================================================
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from ripple.config import MAX_BATCH_SIZE, CronSpec, RippleConfig, load_config, parse_config
from ripple.constants import describe_badge, medal_for_rank


class TestParseConfig:
    def test_defaults(self):
        cfg = parse_config({})
        assert cfg.sweep_batch_size == MAX_BATCH_SIZE
        assert cfg.snapshot_size == 100
        assert cfg.streak_grace_hours == 24
        assert cfg.weekly_snapshot.day_of_week == "sun"
        assert cfg.monthly_snapshot.day == 1
        assert cfg.rules.referral_bonus == 25

    def test_overrides(self):
        cfg = parse_config({
            "community_name": "Helpers",
            "schedule": {"streak_sweep": {"hour": 3, "minute": 15}},
            "jobs": {"snapshot_size": 25},
            "aggregator": {"max_attempts": 8},
            "rules": {"referral_bonus": 40},
        })
        assert cfg.community_name == "Helpers"
        assert cfg.streak_sweep == CronSpec(hour=3, minute=15)
        assert cfg.snapshot_size == 25
        assert cfg.max_attempts == 8
        assert cfg.rules.referral_bonus == 40

    def test_batch_size_above_cap_rejected(self):
        with pytest.raises(ValueError, match="sweep_batch_size"):
            parse_config({"jobs": {"sweep_batch_size": 501}})

    def test_cron_kwargs(self):
        assert CronSpec(hour=1, day=1).trigger_kwargs() == {"hour": 1, "minute": 0, "day": 1}
        assert CronSpec(day_of_week="sun").trigger_kwargs()["day_of_week"] == "sun"


class TestLoadConfig:
    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("community_name: Riverside\njobs:\n  streak_grace_hours: 36\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg.community_name == "Riverside"
        assert cfg.streak_grace_hours == 36

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == RippleConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "absent.yaml")

    def test_env_override(self, tmp_path):
        path = tmp_path / "alt.yaml"
        path.write_text("api_port: 9100\n", encoding="utf-8")
        with patch.dict(os.environ, {"RIPPLE_CONFIG": str(path)}):
            assert load_config().api_port == 9100

    def test_none_skips_file(self):
        assert load_config(None) == RippleConfig()


class TestConstants:
    def test_known_badge(self):
        meta = describe_badge("streak-7")
        assert meta["name"] == "Week Warrior"
        assert meta["category"] == "streak"

    def test_unknown_badge_falls_back(self):
        assert describe_badge("custom-1") == {
            "id": "custom-1", "name": "custom-1", "icon": "", "category": "",
        }

    def test_medals(self):
        assert medal_for_rank(1) == "\U0001f947"
        assert medal_for_rank(4) is None
