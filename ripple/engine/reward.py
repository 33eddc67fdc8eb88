"""
ripple.engine.reward — Points & Level Calculators
==================================================

Pure calculation only: no database I/O.  Deterministic for a given
:class:`RuleTables`, so the same functions serve live updates and
activity-log replays.

Pipeline for one event::

    ActivityEvent → validate → points delta → (ledger adds) → level
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation

from ripple.engine.events import (
    ActivityEvent,
    Donation,
    EventCompletion,
    EventKind,
    Referral,
)
from ripple.engine.rules import DEFAULT_RULES, RuleTables
from ripple.errors import InvalidPayload

__all__ = [
    "calculate_points",
    "hours_for_event",
    "level_for_points",
    "points_to_next_level",
    "to_decimal",
    "validate_event",
]

# Scale of participants.volunteer_hours (Numeric(12, 2)).
HOURS_QUANTUM = Decimal("0.01")


def to_decimal(value: Decimal | float | int | str, field_name: str) -> Decimal:
    """Coerce a numeric payload field to a finite :class:`Decimal`."""
    if isinstance(value, bool):
        raise InvalidPayload(f"{field_name} must be a number, got bool")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidPayload(f"{field_name} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidPayload(f"{field_name} must be finite, got {value!r}")
    return result


def _require_id(value: str, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayload(f"{field_name} must be a non-empty string")


def validate_event(event: ActivityEvent) -> None:
    """Raise :class:`InvalidPayload` if *event* can't be applied."""
    match event:
        case EventCompletion():
            _require_id(event.user_id, "user_id")
            _require_id(event.source_event_id, "source_event_id")
            _require_id(event.source_org_id, "source_org_id")
            hours = to_decimal(event.hours_spent, "hours_spent")
            if hours < 0:
                raise InvalidPayload("hours_spent must be >= 0")
            if hours.normalize().as_tuple().exponent < HOURS_QUANTUM.as_tuple().exponent:
                raise InvalidPayload(
                    f"hours_spent allows at most 2 decimal places, got {event.hours_spent!r}"
                )
        case Donation():
            _require_id(event.user_id, "user_id")
            _require_id(event.source_org_id, "source_org_id")
            if to_decimal(event.amount, "amount") < 0:
                raise InvalidPayload("amount must be >= 0")
            if not isinstance(event.occurred_at, datetime):
                raise InvalidPayload("donations need an explicit occurred_at")
        case Referral():
            _require_id(event.referrer_id, "referrer_id")
            _require_id(event.referred_user_id, "referred_user_id")
            if event.referrer_id == event.referred_user_id:
                raise InvalidPayload("a participant cannot refer themselves")
        case _:
            raise InvalidPayload(f"Unsupported event type: {type(event).__name__}")


def _floor_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def calculate_points(
    event: ActivityEvent, rules: RuleTables = DEFAULT_RULES
) -> int:
    """Points delta earned by *event*.

    * completion: ``base_event_points + hours_spent * hour_multiplier``
    * donation:   ``floor(amount * donation_multiplier)``
    * referral:   ``referral_bonus``

    Fractional results are floored — points are whole numbers.
    """
    validate_event(event)

    match event.kind:
        case EventKind.EVENT_COMPLETION:
            hours = to_decimal(event.hours_spent, "hours_spent")
            return _floor_int(rules.base_event_points + hours * rules.hour_multiplier)
        case EventKind.DONATION:
            amount = to_decimal(event.amount, "amount")
            return _floor_int(amount * rules.donation_multiplier)
        case EventKind.REFERRAL:
            return rules.referral_bonus
    raise InvalidPayload(f"Unknown event kind: {event.kind!r}")


def hours_for_event(event: ActivityEvent) -> Decimal:
    """Volunteer hours contributed by *event* (only completions count)."""
    if event.kind is EventKind.EVENT_COMPLETION:
        return to_decimal(event.hours_spent, "hours_spent")
    return Decimal(0)


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------
def level_for_points(total_points: int, rules: RuleTables = DEFAULT_RULES) -> int:
    """``floor(total_points / points_per_level) + 1``, capped at ``max_level``."""
    if total_points < 0:
        raise InvalidPayload(f"total_points must be >= 0, got {total_points}")
    level = total_points // rules.points_per_level + 1
    if rules.max_level is not None:
        level = min(level, rules.max_level)
    return level


def points_to_next_level(
    total_points: int, rules: RuleTables = DEFAULT_RULES
) -> int | None:
    """Points still needed to reach the next level (``None`` at the cap)."""
    level = level_for_points(total_points, rules)
    if rules.max_level is not None and level >= rules.max_level:
        return None
    return level * rules.points_per_level - total_points
