"""Tests for the public results, admin and health endpoints.

The app runs with its real lifespan: without GCP credentials it uses the
in-memory store seeded with the 300-seat catalogue and has no extraction
backend configured.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from config.settings import settings
from src.models.reconciliation import PendingUpdate, ReportedConstituency

ADMIN_HEADERS = {"X-Admin-API-Key": "test-admin-key"}


@pytest.fixture
def client():
    from src.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_key():
    with patch.object(settings, "admin_api_key", "test-admin-key"):
        yield


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_liveness(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_readiness_without_backend_is_degraded(self, client):
        resp = client.get("/api/v1/health/ready")
        assert resp.status_code == 200
        data = resp.json()
        assert data["checks"]["store"] == "ok"
        assert data["checks"]["extraction"] == "not_configured"
        assert data["status"] == "degraded"

    def test_api_info(self, client):
        resp = client.get("/api")
        assert resp.status_code == 200
        assert resp.json()["endpoints"]["summary"] == "/api/v1/summary"


# ---------------------------------------------------------------------------
# Public results
# ---------------------------------------------------------------------------


class TestResults:
    def test_constituencies_seeded(self, client):
        resp = client.get("/api/v1/constituencies")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 300
        assert data[0]["number"] == 1
        assert data[0]["name"] == "Dhaka-1"

    def test_constituency_filters(self, client):
        postponed = client.get("/api/v1/constituencies", params={"status": "postponed"}).json()
        assert [c["name"] for c in postponed] == ["Sherpur-3"]
        sylhet = client.get("/api/v1/constituencies", params={"division": "sylhet"}).json()
        assert len(sylhet) == 19

    def test_invalid_status_filter(self, client):
        assert client.get("/api/v1/constituencies", params={"status": "won"}).status_code == 422

    def test_single_constituency(self, client):
        assert client.get("/api/v1/constituencies/12").json()["name"] == "Dhaka-12"
        assert client.get("/api/v1/constituencies/999").status_code == 404

    def test_summary(self, client):
        data = client.get("/api/v1/summary").json()
        assert data["totalSeats"] == 300
        assert data["seatsDeclared"] == 0
        assert len(data["parties"]) == 11

    def test_referendum_not_published(self, client):
        assert client.get("/api/v1/referendum").status_code == 404

    def test_status(self, client):
        data = client.get("/api/v1/status").json()
        assert data["seatsTotal"] == 300
        assert data["isCollecting"] is False
        assert "scheduler" in data

    def test_sources(self, client):
        data = client.get("/api/v1/sources").json()
        assert [s["id"] for s in data][:2] == ["ec-bss", "bdnews24"]
        assert all(s["isActive"] for s in data)

    def test_feeds_start_empty(self, client):
        assert client.get("/api/v1/updates").json() == []
        assert client.get("/api/v1/news").json() == []


# ---------------------------------------------------------------------------
# Admin authentication
# ---------------------------------------------------------------------------


class TestAdminAuth:
    def test_missing_key(self, client, admin_key):
        assert client.get("/api/v1/admin/pending").status_code == 401

    def test_wrong_key(self, client, admin_key):
        resp = client.get("/api/v1/admin/pending", headers={"X-Admin-API-Key": "nope"})
        assert resp.status_code == 403

    def test_valid_key(self, client, admin_key):
        resp = client.get("/api/v1/admin/pending", headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json() == []

    def test_production_without_key_refuses(self, client):
        with patch.object(settings, "admin_api_key", ""), patch.object(settings, "env", "production"):
            assert client.get("/api/v1/admin/pending").status_code == 503

    def test_development_without_key_allows(self, client):
        with patch.object(settings, "admin_api_key", ""):
            assert client.get("/api/v1/admin/audit").status_code == 200


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------


class TestAdminOperations:
    def test_override_updates_canonical_state_and_summary(self, client, admin_key):
        body = {
            "number": 12,
            "status": "declared",
            "candidates": [
                {"name": "Abdul Karim", "party": "bnp", "votes": 90000},
                {"name": "Rafiqul Islam", "party": "jamaat", "votes": 70000},
            ],
        }
        resp = client.post("/api/v1/admin/constituencies/override", json=body, headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["trustScore"] == 100
        assert resp.json()["source"] == "admin_override"

        record = client.get("/api/v1/constituencies/12").json()
        assert record["status"] == "declared"
        assert record["totalVotes"] == 160000
        assert client.get("/api/v1/summary").json()["seatsDeclared"] == 1

        audit = client.get("/api/v1/admin/audit", headers=ADMIN_HEADERS).json()
        assert audit[0]["action"] == "manual_override"
        updates = client.get("/api/v1/updates").json()
        assert updates[0]["type"] == "result_declared"

    def test_manual_entry_rejects_invalid_number(self, client, admin_key):
        resp = client.post("/api/v1/admin/constituencies/manual", json={"number": 0}, headers=ADMIN_HEADERS)
        assert resp.status_code == 422

    def test_pending_review(self, client, admin_key):
        store = client.app.state.store
        pending_id = asyncio.run(
            store.add_pending_update(
                PendingUpdate(
                    constituency_id="dhaka-3",
                    constituency_number=3,
                    source_id="bdnews24",
                    source_name="bdnews24.com",
                    tier=2,
                    data=ReportedConstituency(number=3, status="counting", total_votes=1234),
                    trust_score=35,
                )
            )
        )

        listed = client.get("/api/v1/admin/pending", headers=ADMIN_HEADERS).json()
        assert [p["id"] for p in listed] == [pending_id]

        approved = client.post(f"/api/v1/admin/pending/{pending_id}/approve", headers=ADMIN_HEADERS)
        assert approved.status_code == 200
        assert approved.json()["totalVotes"] == 1234
        assert approved.json()["source"] == "bdnews24.com (admin approved)"

        again = client.post(f"/api/v1/admin/pending/{pending_id}/approve", headers=ADMIN_HEADERS)
        assert again.status_code == 409

    def test_unknown_ids_are_404(self, client, admin_key):
        assert client.post("/api/v1/admin/pending/missing/reject", headers=ADMIN_HEADERS).status_code == 404
        resp = client.post(
            "/api/v1/admin/conflicts/missing/resolve",
            json={"resolution": "checked"},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 404
        assert client.post("/api/v1/admin/errors/missing/resolve", headers=ADMIN_HEADERS).status_code == 404
        assert client.post(
            "/api/v1/admin/sources/nope/toggle", json={"active": False}, headers=ADMIN_HEADERS
        ).status_code == 404

    def test_toggle_source(self, client, admin_key):
        resp = client.post("/api/v1/admin/sources/international/toggle", json={"active": False}, headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["isActive"] is False
        sources = {s["id"]: s for s in client.get("/api/v1/sources").json()}
        assert sources["international"]["isActive"] is False

    def test_manual_fetch_without_backend(self, client, admin_key):
        resp = client.post("/api/v1/admin/fetch", json={"max_sources": 2}, headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["result"]["reports"] == 0

    def test_collection_start_stop(self, client, admin_key):
        started = client.post("/api/v1/admin/collection/start", headers=ADMIN_HEADERS)
        assert started.status_code == 200
        assert started.json()["result"]["isRunning"] is True
        assert client.get("/api/v1/status").json()["isCollecting"] is True

        stopped = client.post("/api/v1/admin/collection/stop", headers=ADMIN_HEADERS)
        assert stopped.status_code == 200
        assert stopped.json()["result"]["isRunning"] is False
        assert client.get("/api/v1/status").json()["isCollecting"] is False

    def test_referendum(self, client, admin_key):
        resp = client.post(
            "/api/v1/admin/referendum",
            json={"yes_votes": 750, "no_votes": 250, "total_centers": 100, "centers_reported": 10},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        data = client.get("/api/v1/referendum").json()
        assert data["totalVotesCast"] == 1000
        assert data["percentYes"] == 75.0

    def test_news(self, client, admin_key):
        resp = client.post(
            "/api/v1/admin/news",
            json={"headline": "EC begins gazette publication", "category": "breaking"},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["id"]
        news = client.get("/api/v1/news").json()
        assert news[0]["headline"] == "EC begins gazette publication"
        assert news[0]["isVerified"] is True

    def test_news_controls(self, client, admin_key):
        collected = client.post("/api/v1/admin/news/collect", headers=ADMIN_HEADERS).json()
        assert collected["status"] == "skipped"
        assert collected["message"] == "No extraction backend configured"

        toggled = client.post("/api/v1/admin/news/auto", json={"enabled": False}, headers=ADMIN_HEADERS).json()
        assert toggled["result"]["autoEnabled"] is False

    def test_seed(self, client, admin_key):
        client.post(
            "/api/v1/admin/constituencies/manual",
            json={"number": 1, "totalVotes": 10},
            headers=ADMIN_HEADERS,
        )
        resp = client.post("/api/v1/admin/seed", headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["result"] == {"constituencies": 300, "postponed": 1}
        assert client.get("/api/v1/constituencies/1").json()["totalVotes"] == 0

    def test_errors_listing(self, client, admin_key):
        resp = client.get("/api/v1/admin/errors", headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json() == []
