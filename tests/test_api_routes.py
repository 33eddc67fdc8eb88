"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================
Public reads, event ingestion, error mapping and the admin auth guards,
all against the in-memory SQLite engine from conftest.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from conftest import make_admin_token
from ripple.database.models import Participant


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register(client, user_id: str, name: str | None = None):
    return client.post("/api/participants", json={"user_id": user_id, "display_name": name})


def _complete(client, user_id="u-1", hours=2, **extra):
    body = {
        "user_id": user_id,
        "source_event_id": extra.pop("source_event_id", "opp-1"),
        "source_org_id": "org-1",
        "hours_spent": hours,
        **extra,
    }
    return client.post("/api/events/completion", json=body)


# ===========================================================================
# Health
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Ingestion
# ===========================================================================
class TestEventIngestion:
    def test_register_then_complete(self, client):
        assert _register(client, "u-1", "Ada").status_code == 201
        resp = _complete(client, hours=2, event_id="evt-1")
        assert resp.status_code == 201
        body = resp.json()
        assert body["points_delta"] == 70
        assert body["new_badges"] == ["first-event"]
        assert body["stats"]["total_points"] == 70

    def test_register_twice_is_ok(self, client):
        _register(client, "u-1")
        resp = _register(client, "u-1")
        assert resp.status_code == 200
        assert resp.json()["created"] is False

    def test_duplicate_delivery(self, client):
        _register(client, "u-1")
        _complete(client, event_id="evt-1")
        resp = _complete(client, event_id="evt-1")
        assert resp.status_code == 200
        assert resp.json()["duplicate"] is True
        assert client.get("/api/participants/u-1").json()["total_points"] == 70

    def test_donation_and_referral(self, client):
        _register(client, "u-1")
        _register(client, "u-2")
        resp = client.post("/api/events/donation", json={
            "user_id": "u-1", "source_org_id": "org-1", "amount": "250",
            "event_id": "don-1",
        })
        assert resp.json()["stats"]["level"] == 3
        resp = client.post("/api/events/referral", json={
            "referrer_id": "u-2", "referred_user_id": "u-1",
        })
        assert resp.json()["points_delta"] == 25

    def test_unknown_participant_is_404(self, client):
        resp = _complete(client, user_id="ghost")
        assert resp.status_code == 404
        assert resp.json()["error"] == "UserNotFound"

    def test_negative_hours_is_422(self, client):
        _register(client, "u-1")
        resp = _complete(client, hours=-1)
        assert resp.status_code == 422

    def test_self_referral_is_422(self, client):
        _register(client, "u-1")
        resp = client.post("/api/events/referral", json={
            "referrer_id": "u-1", "referred_user_id": "u-1",
        })
        assert resp.status_code == 422

    def test_missing_field_is_422(self, client):
        resp = client.post("/api/events/donation", json={"user_id": "u-1"})
        assert resp.status_code == 422

    def test_donation_without_id_or_timestamp_is_422(self, client):
        _register(client, "u-1")
        resp = client.post("/api/events/donation", json={
            "user_id": "u-1", "source_org_id": "org-1", "amount": "250",
        })
        assert resp.status_code == 422
        assert client.get("/api/participants/u-1").json()["total_points"] == 0

    def test_redelivered_donation_is_counted_once(self, client):
        _register(client, "u-1")
        body = {
            "user_id": "u-1", "source_org_id": "org-1", "amount": "250",
            "occurred_at": "2026-03-02T09:00:00Z",
        }
        first = client.post("/api/events/donation", json=body)
        second = client.post("/api/events/donation", json=body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["duplicate"] is True
        assert second.json()["event_id"] == first.json()["event_id"]
        assert second.json()["stats"]["total_points"] == 250


# ===========================================================================
# Public reads
# ===========================================================================
class TestPublicEndpoints:
    def test_leaderboard(self, client):
        for uid in ("u-1", "u-2", "u-3"):
            _register(client, uid)
        _complete(client, user_id="u-2", hours=5)
        body = client.get("/api/leaderboard", params={"limit": 2}).json()
        assert body["total"] == 3
        assert [e["user_id"] for e in body["entries"]] == ["u-2", "u-1"]
        assert body["entries"][0]["medal"] == "\U0001f947"

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_leaderboard_limit_bounds(self, client, limit):
        assert client.get("/api/leaderboard", params={"limit": limit}).status_code == 422

    def test_profile(self, client):
        _register(client, "u-1", "Ada")
        _complete(client, hours=2)
        body = client.get("/api/participants/u-1").json()
        assert body["display_name"] == "Ada"
        assert body["rank"] == 1
        assert body["points_to_next_level"] == 30
        assert body["badges"][0]["name"] == "First Step"

    def test_profile_unknown(self, client):
        assert client.get("/api/participants/ghost").status_code == 404

    def test_activity(self, client):
        _register(client, "u-1")
        _complete(client, source_event_id="a")
        _complete(client, source_event_id="b")
        body = client.get("/api/participants/u-1/activity").json()
        assert len(body["activity"]) == 2

    def test_snapshots(self, client, admin_token):
        _register(client, "u-1")
        resp = client.post("/api/admin/jobs/snapshot/weekly", headers=_auth(admin_token))
        snapshot_id = resp.json()["snapshot_id"]

        listing = client.get("/api/snapshots", params={"kind": "weekly"}).json()
        assert listing["snapshots"][0]["id"] == snapshot_id
        detail = client.get(f"/api/snapshots/{snapshot_id}").json()
        assert detail["entries"][0]["user_id"] == "u-1"
        assert client.get("/api/snapshots/9999").status_code == 404

    def test_snapshots_bad_kind(self, client):
        assert client.get("/api/snapshots", params={"kind": "daily"}).status_code == 422


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminAuthGuards:
    ADMIN_POST_ENDPOINTS = [
        "/api/admin/jobs/streak-sweep",
        "/api/admin/jobs/snapshot/weekly",
        "/api/admin/participants/u-1/recompute",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_no_auth(self, client, endpoint):
        assert client.post(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_invalid_token(self, client, endpoint):
        resp = client.post(endpoint, headers={"Authorization": "Bearer invalid"})
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_rejects_non_admin(self, client, endpoint):
        token = make_admin_token(sub="u-9", is_admin=False)
        assert client.post(endpoint, headers=_auth(token)).status_code == 403

    def test_rejects_token_without_subject(self, client):
        token = make_admin_token(sub="")
        resp = client.post("/api/admin/jobs/streak-sweep", headers=_auth(token))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token has no subject"

    def test_rejects_non_bearer_scheme(self, client, admin_token):
        resp = client.post("/api/admin/jobs/streak-sweep", headers={"Authorization": f"Token {admin_token}"})
        assert resp.status_code == 401


class TestAdminActions:
    def test_streak_sweep(self, client, db_engine, admin_token):
        with Session(db_engine) as session:
            session.add(Participant(
                id="u-1", streak=4, last_activity=datetime.now(UTC) - timedelta(days=3),
            ))
            session.commit()
        resp = client.post(
            "/api/admin/jobs/streak-sweep", headers=_auth(admin_token), json={"reason": "test"},
        )
        assert resp.status_code == 200
        assert resp.json()["reset"] == 1

        audit = client.get("/api/admin/audit", headers=_auth(admin_token)).json()
        assert audit["entries"][0]["action_type"] == "STREAK_SWEEP"
        assert audit["entries"][0]["actor_id"] == "admin-1"

    def test_recompute(self, client, admin_token):
        _register(client, "u-1")
        _complete(client, hours=1)
        resp = client.post("/api/admin/participants/u-1/recompute", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["after"]["total_points"] == 60

    def test_recompute_unknown(self, client, admin_token):
        resp = client.post("/api/admin/participants/ghost/recompute", headers=_auth(admin_token))
        assert resp.status_code == 404
