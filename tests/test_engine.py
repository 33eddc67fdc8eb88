"""
tests/test_engine.py — Unit Tests for the Pure Calculators
===========================================================

Points, levels, badges and the rule tables (no I/O, no database).
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from ripple.engine.badges import BadgeCategory, badge_category, derive_badges
from ripple.engine.events import (
    Donation,
    EventCompletion,
    EventKind,
    Referral,
    event_from_payload,
)
from ripple.engine.ledger import StatsSnapshot
from ripple.engine.reward import (
    calculate_points,
    hours_for_event,
    level_for_points,
    points_to_next_level,
    validate_event,
)
from ripple.engine.rules import DEFAULT_RULES, RuleTables, rules_from_mapping
from ripple.errors import InvalidPayload

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _completion(hours=2, **kw) -> EventCompletion:
    kw.setdefault("user_id", "u-1")
    kw.setdefault("source_event_id", "opp-1")
    kw.setdefault("source_org_id", "org-1")
    return EventCompletion(hours_spent=hours, occurred_at=T0, **kw)


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------
class TestCalculatePoints:
    def test_completion_is_base_plus_hours(self):
        assert calculate_points(_completion(hours=2)) == 70

    def test_completion_with_zero_hours_earns_base(self):
        assert calculate_points(_completion(hours=0)) == 50

    def test_fractional_hours_are_floored(self):
        # 50 + 1.25 * 10 = 62.5
        assert calculate_points(_completion(hours=Decimal("1.25"))) == 62

    def test_donation_is_amount(self):
        event = Donation(user_id="u-1", source_org_id="org-1", amount=250, occurred_at=T0)
        assert calculate_points(event) == 250

    def test_donation_multiplier_and_floor(self):
        rules = RuleTables(donation_multiplier=Decimal("0.5"))
        event = Donation(user_id="u-1", source_org_id="org-1", amount=25, occurred_at=T0)
        assert calculate_points(event, rules) == 12

    def test_referral_is_flat_bonus(self):
        event = Referral(referrer_id="u-1", referred_user_id="u-2", occurred_at=T0)
        assert calculate_points(event) == 25

    def test_custom_rules(self):
        rules = RuleTables(base_event_points=10, hour_multiplier=3)
        assert calculate_points(_completion(hours=4), rules) == 22

    def test_only_completions_contribute_hours(self):
        assert hours_for_event(_completion(hours=3)) == Decimal(3)
        donation = Donation(user_id="u-1", source_org_id="org-1", amount=10, occurred_at=T0)
        assert hours_for_event(donation) == 0


class TestValidation:
    def test_negative_hours_rejected(self):
        with pytest.raises(InvalidPayload, match="hours_spent"):
            validate_event(_completion(hours=-1))

    @pytest.mark.parametrize("hours", [Decimal("9.996"), "0.001", 1.005])
    def test_hours_finer_than_hundredths_rejected(self, hours):
        with pytest.raises(InvalidPayload, match="2 decimal places"):
            validate_event(_completion(hours=hours))

    @pytest.mark.parametrize("hours", [Decimal("2.50"), Decimal("2.500"), "0.25", 100])
    def test_hours_at_hundredths_accepted(self, hours):
        validate_event(_completion(hours=hours))

    def test_donation_needs_a_timestamp(self):
        with pytest.raises(TypeError):
            Donation(user_id="u-1", source_org_id="org-1", amount=10)
        with pytest.raises(InvalidPayload, match="occurred_at"):
            validate_event(Donation(user_id="u-1", source_org_id="org-1", amount=10, occurred_at=None))

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidPayload, match="amount"):
            calculate_points(Donation(user_id="u-1", source_org_id="o", amount=-5, occurred_at=T0))

    def test_empty_user_rejected(self):
        with pytest.raises(InvalidPayload, match="user_id"):
            validate_event(_completion(user_id=""))

    def test_self_referral_rejected(self):
        with pytest.raises(InvalidPayload, match="refer themselves"):
            validate_event(Referral(referrer_id="u-1", referred_user_id="u-1", occurred_at=T0))

    @pytest.mark.parametrize("bad", ["NaN", "abc", True])
    def test_non_numeric_hours_rejected(self, bad):
        with pytest.raises(InvalidPayload):
            validate_event(_completion(hours=bad))


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------
class TestLevels:
    @pytest.mark.parametrize("points,level", [(0, 1), (99, 1), (100, 2), (250, 3), (1000, 11)])
    def test_level_curve(self, points, level):
        assert level_for_points(points) == level

    def test_level_cap(self):
        rules = RuleTables(max_level=5)
        assert level_for_points(10_000, rules) == 5
        assert points_to_next_level(10_000, rules) is None

    def test_points_to_next_level(self):
        assert points_to_next_level(0) == 100
        assert points_to_next_level(170) == 30

    def test_negative_total_rejected(self):
        with pytest.raises(InvalidPayload):
            level_for_points(-1)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
class TestBadges:
    def test_fresh_participant_has_none(self):
        assert derive_badges(StatsSnapshot(id="u-1")) == []

    def test_first_event(self):
        assert derive_badges(StatsSnapshot(id="u-1", completed_events=1)) == ["first-event"]

    def test_only_highest_hours_tier_kept(self):
        stats = StatsSnapshot(id="u-1", completed_events=5, volunteer_hours=Decimal(55))
        assert derive_badges(stats) == ["first-event", "volunteer-50"]

    def test_only_highest_streak_tier_kept(self):
        stats = StatsSnapshot(id="u-1", completed_events=40, streak=31)
        assert derive_badges(stats) == ["first-event", "streak-30"]

    def test_regressed_stats_drop_badge(self):
        stats = StatsSnapshot(id="u-1", completed_events=1, volunteer_hours=Decimal("9.5"))
        assert "volunteer-10" not in derive_badges(stats)

    def test_at_most_one_badge_per_category(self):
        stats = StatsSnapshot(
            id="u-1", completed_events=50, volunteer_hours=Decimal(120), streak=45,
        )
        badges = derive_badges(stats)
        categories = [badge_category(b) for b in badges]
        assert len(categories) == len(set(categories)) == 3

    def test_badge_category_lookup(self):
        assert badge_category("streak-7") is BadgeCategory.STREAK
        assert badge_category("volunteer-100") is BadgeCategory.VOLUNTEER_HOURS
        assert badge_category("nope") is None


# ---------------------------------------------------------------------------
# Rule tables & payload round-trip
# ---------------------------------------------------------------------------
class TestRuleTables:
    def test_empty_mapping_is_default(self):
        assert rules_from_mapping(None) is DEFAULT_RULES

    def test_overrides_and_tiers(self):
        rules = rules_from_mapping({
            "referral_bonus": 40,
            "streak_tiers": {7: "streak-7", 3: "streak-3"},
        })
        assert rules.referral_bonus == 40
        assert [t.badge_id for t in rules.streak_tiers] == ["streak-3", "streak-7"]

    def test_unknown_key_rejected(self):
        with pytest.raises(KeyError, match="referal_bonus"):
            rules_from_mapping({"referal_bonus": 10})

    def test_descending_tiers_rejected(self):
        from ripple.engine.rules import BadgeTier

        with pytest.raises(ValueError, match="ascending"):
            RuleTables(streak_tiers=(BadgeTier(Decimal(30), "a"), BadgeTier(Decimal(7), "b")))

    def test_zero_points_per_level_rejected(self):
        with pytest.raises(ValueError):
            RuleTables(points_per_level=0)


class TestEventKeys:
    def test_explicit_event_id_wins(self):
        assert _completion(event_id="evt-9").event_key == "evt-9"

    def test_completion_key_is_deterministic(self):
        a = _completion()
        b = EventCompletion(
            user_id="u-1", source_event_id="opp-1", source_org_id="org-1", hours_spent=5,
        )
        assert a.event_key == b.event_key
        assert a.event_key.startswith("event_completion:")

    def test_payload_rebuilds_event(self):
        original = Referral(referrer_id="u-1", referred_user_id="u-2", occurred_at=T0)
        rebuilt = event_from_payload(
            EventKind.REFERRAL.value, original.payload(), T0, original.event_key,
        )
        assert rebuilt.user_id == "u-1"
        assert rebuilt.event_key == original.event_key
