"""
ripple.api.routes.events — Activity ingestion endpoints
========================================================

The upstream platform posts one request per domain event.  Redelivering the
same event (same ``event_id``, or the same natural key when no id is given)
is safe: the response carries ``duplicate: true`` and the stats persisted by
the first delivery.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from ripple.api.deps import ConfigDep, EngineDep
from ripple.engine.events import ActivityEvent, Donation, EventCompletion, Referral
from ripple.services.stats_service import ApplyOutcome, apply_event, register_participant

router = APIRouter(tags=["events"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class ParticipantCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    display_name: str | None = Field(None, max_length=100)


class _EventBody(BaseModel):
    event_id: str | None = Field(None, min_length=1, max_length=100)
    occurred_at: datetime | None = None


class CompletionBody(_EventBody):
    user_id: str = Field(..., min_length=1, max_length=64)
    source_event_id: str = Field(..., min_length=1)
    source_org_id: str = Field(..., min_length=1)
    hours_spent: Decimal


class DonationBody(_EventBody):
    user_id: str = Field(..., min_length=1, max_length=64)
    source_org_id: str = Field(..., min_length=1)
    amount: Decimal

    @model_validator(mode="after")
    def _needs_stable_key(self) -> "DonationBody":
        # Donations have no natural key; without an id the timestamp is hashed.
        if self.event_id is None and self.occurred_at is None:
            raise ValueError("donations need event_id or occurred_at")
        return self


class ReferralBody(_EventBody):
    referrer_id: str = Field(..., min_length=1, max_length=64)
    referred_user_id: str = Field(..., min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _timing(body: _EventBody) -> dict:
    """Only forward ``occurred_at`` when given, so the event default applies."""
    kwargs: dict = {"event_id": body.event_id}
    if body.occurred_at is not None:
        kwargs["occurred_at"] = body.occurred_at
    return kwargs


def _apply(engine, cfg, event: ActivityEvent) -> JSONResponse:
    outcome: ApplyOutcome = apply_event(
        engine,
        event,
        rules=cfg.rules,
        max_attempts=cfg.max_attempts,
        backoff_base=cfg.backoff_base_seconds,
        backoff_max=cfg.backoff_max_seconds,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if outcome.duplicate else status.HTTP_201_CREATED,
        content={
            "event_id": outcome.event_id,
            "duplicate": outcome.duplicate,
            "points_delta": outcome.points_delta,
            "hours_delta": str(outcome.hours_delta),
            "new_badges": list(outcome.new_badges),
            "leveled_up": outcome.leveled_up,
            "stats": outcome.stats.to_dict(),
        },
    )


# ---------------------------------------------------------------------------
# POST /participants
# ---------------------------------------------------------------------------
@router.post("/participants")
def create_participant(body: ParticipantCreate, engine: EngineDep):
    stats, created = register_participant(engine, body.user_id, body.display_name)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content={"created": created, "stats": stats.to_dict()},
    )


# ---------------------------------------------------------------------------
# POST /events/*
# ---------------------------------------------------------------------------
@router.post("/events/completion")
def post_completion(body: CompletionBody, engine: EngineDep, cfg: ConfigDep):
    return _apply(engine, cfg, EventCompletion(
        user_id=body.user_id,
        source_event_id=body.source_event_id,
        source_org_id=body.source_org_id,
        hours_spent=body.hours_spent,
        **_timing(body),
    ))


@router.post("/events/donation")
def post_donation(body: DonationBody, engine: EngineDep, cfg: ConfigDep):
    return _apply(engine, cfg, Donation(
        user_id=body.user_id,
        source_org_id=body.source_org_id,
        amount=body.amount,
        event_id=body.event_id,
        occurred_at=body.occurred_at or datetime.now(UTC),
    ))


@router.post("/events/referral")
def post_referral(body: ReferralBody, engine: EngineDep, cfg: ConfigDep):
    return _apply(engine, cfg, Referral(
        referrer_id=body.referrer_id,
        referred_user_id=body.referred_user_id,
        **_timing(body),
    ))
