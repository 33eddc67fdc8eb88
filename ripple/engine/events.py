"""
ripple.engine.events — ActivityEvent Variants
==============================================

The three point-earning actions a producer can report.  Every variant is
an immutable record; the aggregator dispatches on :class:`EventKind`
through a single entry point instead of one handler per source.

Event ids are either supplied by the producer or derived deterministically
so that at-least-once redelivery of the same action maps to the same id:

* completion — ``(user, source event)``: a volunteer completes an
  opportunity once.
* referral — ``(referrer, referred user)``.
* donation — no natural key, so the org, amount and ``occurred_at`` are
  hashed.  ``occurred_at`` is therefore required on donations; a clock
  default would give every redelivery a fresh id.
"""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar

__all__ = [
    "ActivityEvent",
    "Donation",
    "EventCompletion",
    "EventKind",
    "Referral",
    "event_from_payload",
]


class EventKind(enum.StrEnum):
    """Discriminator stored in ``activity_log.kind``."""
    EVENT_COMPLETION = "EVENT_COMPLETION"
    DONATION = "DONATION"
    REFERRAL = "REFERRAL"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _digest(*parts: object) -> str:
    raw = "|".join(str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:40]


class _EventMixin:
    """Behaviour shared by every variant."""

    __slots__ = ()

    kind: ClassVar[EventKind]
    event_id: str | None
    occurred_at: datetime
    user_id: str  # the credited participant

    @property
    def event_key(self) -> str:
        """Caller-supplied id, or the deterministic derived one."""
        if self.event_id:
            return self.event_id
        return f"{self.kind.value.lower()}:{self._natural_key()}"

    def _natural_key(self) -> str:
        raise NotImplementedError

    def payload(self) -> dict[str, Any]:
        """JSON-safe payload logged verbatim to ``activity_log``."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class EventCompletion(_EventMixin):
    """A volunteer finished an opportunity and logged ``hours_spent``."""

    kind: ClassVar[EventKind] = EventKind.EVENT_COMPLETION

    user_id: str
    source_event_id: str
    source_org_id: str
    hours_spent: Decimal | float | int
    occurred_at: datetime = field(default_factory=_utcnow)
    event_id: str | None = None

    def _natural_key(self) -> str:
        return _digest(self.user_id, self.source_event_id)

    def payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "source_event_id": self.source_event_id,
            "source_org_id": self.source_org_id,
            "hours_spent": str(self.hours_spent),
        }


@dataclass(frozen=True, slots=True)
class Donation(_EventMixin):
    """A participant donated ``amount`` (pre-validated upstream) to an org."""

    kind: ClassVar[EventKind] = EventKind.DONATION

    user_id: str
    source_org_id: str
    amount: Decimal | float | int
    occurred_at: datetime
    event_id: str | None = None

    def _natural_key(self) -> str:
        return _digest(
            self.user_id, self.source_org_id, self.amount,
            self.occurred_at.isoformat(),
        )

    def payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "source_org_id": self.source_org_id,
            "amount": str(self.amount),
        }


@dataclass(frozen=True, slots=True)
class Referral(_EventMixin):
    """``referrer_id`` brought ``referred_user_id`` onto the platform."""

    kind: ClassVar[EventKind] = EventKind.REFERRAL

    referrer_id: str
    referred_user_id: str
    occurred_at: datetime = field(default_factory=_utcnow)
    event_id: str | None = None

    @property
    def user_id(self) -> str:
        return self.referrer_id

    def _natural_key(self) -> str:
        return _digest(self.referrer_id, self.referred_user_id)

    def payload(self) -> dict[str, Any]:
        return {
            "referrer_id": self.referrer_id,
            "referred_user_id": self.referred_user_id,
        }


ActivityEvent = EventCompletion | Donation | Referral


def event_from_payload(
    kind: str,
    payload: dict[str, Any],
    occurred_at: datetime,
    event_id: str | None = None,
) -> ActivityEvent:
    """Rebuild an event from a logged ``(kind, payload)`` pair.

    Used when replaying the activity log.
    """
    match EventKind(kind):
        case EventKind.EVENT_COMPLETION:
            return EventCompletion(
                user_id=payload["user_id"],
                source_event_id=payload["source_event_id"],
                source_org_id=payload["source_org_id"],
                hours_spent=Decimal(payload["hours_spent"]),
                occurred_at=occurred_at,
                event_id=event_id,
            )
        case EventKind.DONATION:
            return Donation(
                user_id=payload["user_id"],
                source_org_id=payload["source_org_id"],
                amount=Decimal(payload["amount"]),
                occurred_at=occurred_at,
                event_id=event_id,
            )
        case EventKind.REFERRAL:
            return Referral(
                referrer_id=payload["referrer_id"],
                referred_user_id=payload["referred_user_id"],
                occurred_at=occurred_at,
                event_id=event_id,
            )
