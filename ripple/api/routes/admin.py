"""
ripple.api.routes.admin — Admin job triggers (JWT‑protected)
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel

from ripple.api.deps import AdminDep, ConfigDep, EngineDep
from ripple.database.models import SnapshotKind
from ripple.services import admin_service

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminActionBody(BaseModel):
    reason: str | None = None


def _actor(admin: dict) -> str:
    return str(admin["sub"])


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
@router.post("/jobs/streak-sweep")
def trigger_streak_sweep(
    engine: EngineDep,
    cfg: ConfigDep,
    admin: AdminDep,
    body: AdminActionBody | None = None,
):
    return admin_service.trigger_streak_sweep(
        engine, cfg, actor_id=_actor(admin), reason=body.reason if body else None,
    )


@router.post("/jobs/snapshot/{kind}")
def trigger_snapshot(
    kind: SnapshotKind,
    engine: EngineDep,
    cfg: ConfigDep,
    admin: AdminDep,
    body: AdminActionBody | None = None,
):
    return admin_service.trigger_snapshot(
        engine, cfg, kind, actor_id=_actor(admin), reason=body.reason if body else None,
    )


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------
@router.post("/participants/{user_id}/recompute")
def recompute(
    user_id: str,
    engine: EngineDep,
    cfg: ConfigDep,
    admin: AdminDep,
    body: AdminActionBody | None = None,
):
    return admin_service.trigger_recompute(
        engine, cfg, user_id, actor_id=_actor(admin), reason=body.reason if body else None,
    )


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    engine: EngineDep,
    admin: AdminDep,
    limit: int = Query(50, ge=1, le=500),
):
    return {"entries": admin_service.list_admin_log(engine, limit)}
